"""CRLF-terminated line reading with a hard length bound."""

from typing import Protocol

CRLF = b"\r\n"
MAX_LINE_LENGTH = 1024


class LineTooLong(ValueError):
    """Raised when no delimiter appears within the allowed length."""


class UnexpectedEOF(ConnectionError):
    """Raised when the peer closes the stream before the expected bytes arrive."""


class ByteSource(Protocol):  # pylint: disable=too-few-public-methods
    """Anything exposing a socket-style ``recv``."""

    def recv(self, bufsize: int) -> bytes: ...


def read_line(source: ByteSource, limit: int = MAX_LINE_LENGTH) -> bytes:
    """Return the bytes before the first CRLF, consuming the delimiter.

    The stream is read one byte at a time so nothing past the delimiter is
    taken from the connection; whatever follows (an upload payload or a
    response body) is left for the next reader.
    """
    line = bytearray()
    while True:
        chunk = source.recv(1)
        if not chunk:
            raise UnexpectedEOF("connection closed before line delimiter")
        line += chunk
        if line.endswith(CRLF):
            return bytes(line[: -len(CRLF)])
        # A trailing CR may still turn into the delimiter.
        pending = len(line) - 1 if line.endswith(b"\r") else len(line)
        if pending > limit:
            raise LineTooLong(f"line exceeds {limit} bytes")
