"""Two-phase response writing: one status line, then body bytes."""

import logging
import socket
from typing import Optional, Union

from gemini.domain.correlation_id import component_logger
from gemini.domain.status import format_status_line

WRITER_LOGGER = component_logger("pipeline.response")

BytesLike = Union[bytes, bytearray, memoryview]


class ResponseStateError(RuntimeError):
    """Raised when a handler breaks the status-then-body ordering."""


class StatusAlreadySent(ResponseStateError):
    """Raised on a second status write."""


class StatusNotWritten(ResponseStateError):
    """Raised when body bytes are written before the status line."""


class ResponseWriteError(ConnectionError):
    """Transport failure while writing; sticky for the rest of the response."""


class ResponseWriter:
    """Writes a single response to a connection.

    The writer moves from awaiting-status to body-open exactly once. The
    first transport failure is kept in ``error`` and re-raised by every later
    write without touching the connection again.

    ``write`` makes the writer a byte sink, so helpers such as
    ``shutil.copyfileobj`` can stream into it directly.
    """

    def __init__(self, connection: socket.socket) -> None:
        self._connection = connection
        self.header_written = False
        self.status: Optional[int] = None
        self.bytes_written = 0
        self.error: Optional[ResponseWriteError] = None

    def write_status(self, status: int, message: str) -> None:
        """Send ``<status> <message>\\r\\n``; allowed once per response."""
        if self.header_written:
            raise StatusAlreadySent("status has been sent already")
        if self.error is not None:
            raise self.error
        try:
            self._connection.sendall(format_status_line(status, message))
        except OSError as exc:
            self.error = ResponseWriteError(
                f"failed to write response status message: {exc}"
            )
            raise self.error from exc
        self.header_written = True
        self.status = int(status)
        if WRITER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WRITER_LOGGER.debug(
                "Status line sent",
                extra={"event": "status_sent", "status_code": self.status},
            )

    def write_body(self, body: BytesLike) -> int:
        """Send raw body bytes and return how many were written."""
        if not self.header_written:
            raise StatusNotWritten("status message is not written")
        if self.error is not None:
            raise self.error
        try:
            self._connection.sendall(body)
        except OSError as exc:
            self.error = ResponseWriteError(f"failed to write response body: {exc}")
            raise self.error from exc
        count = len(body)
        if isinstance(body, memoryview):
            count = body.nbytes
        self.bytes_written += count
        return count

    def write(self, body: BytesLike) -> int:
        """Byte-sink alias for ``write_body``."""
        return self.write_body(body)

    def flush(self) -> None:
        """Nothing is buffered; present for file-like callers."""
