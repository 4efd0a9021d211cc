"""Worker logic for a single accepted connection.

Each worker serves exactly one request: read the request line, decode it,
hand it to the handler with a fresh ResponseWriter, then close. Anything
that goes wrong before a request is decoded closes the connection without
a response.
"""

import logging
import socket
import threading
import time
from typing import Optional

from gemini.domain.context import with_cancel
from gemini.domain.correlation_id import (
    clear_correlation_id,
    component_logger,
    generate_correlation_id,
    set_correlation_id,
)
from gemini.domain.request import Request, target_string
from gemini.pipeline.decoder import RequestDecodeError, decode_request
from gemini.pipeline.line_reader import LineTooLong, UnexpectedEOF, read_line
from gemini.pipeline.response_writer import ResponseWriter
from gemini.transport.context import WorkerContext
from gemini.transport.tls_connection import TlsConnection

WORKER_LOGGER = component_logger("transport.worker")


def _format_address(client_address) -> str:
    return f"{client_address[0]}:{client_address[1]}"


def _complete_handshake(connection: TlsConnection, client_addr_str: str) -> bool:
    if not isinstance(connection, TlsConnection):
        return True
    try:
        connection.do_handshake()
    except OSError as error:
        WORKER_LOGGER.info(
            "TLS handshake failed",
            extra={
                "event": "tls_handshake_failed",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
        return False
    return True


def read_request(
    connection: TlsConnection, client_addr_str: str
) -> Optional[Request]:
    """Read and decode one request, or return None when it must be dropped."""
    try:
        raw = read_line(connection)
    except LineTooLong:
        WORKER_LOGGER.warning(
            "Request line too long",
            extra={"event": "request_rejected", "client": client_addr_str},
        )
        return None
    except UnexpectedEOF:
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Client disconnected before sending a request",
                extra={"event": "client_disconnected", "client": client_addr_str},
            )
        return None

    if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
        WORKER_LOGGER.debug(
            "Request line read",
            extra={
                "event": "request_line_read",
                "client": client_addr_str,
                "bytes_in": len(raw),
            },
        )

    try:
        return decode_request(connection, raw)
    except RequestDecodeError as error:
        WORKER_LOGGER.warning(
            "Malformed request received",
            extra={
                "event": "request_rejected",
                "client": client_addr_str,
                "error": str(error),
            },
        )
        return None


def _close_connection(connection: TlsConnection, client_addr_str: str) -> None:
    """Close with a TLS close_notify; it is the only end-of-body marker."""
    try:
        connection.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    connection.close()
    WORKER_LOGGER.debug(
        "Socket closed",
        extra={"event": "socket_closed", "client": client_addr_str},
    )


def handle_client(
    connection: TlsConnection,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> None:
    """Serve one request on ``connection`` and close it."""
    client_addr_str = _format_address(client_address)
    set_correlation_id(generate_correlation_id())
    cancel_context = with_cancel()
    started = time.monotonic()

    try:
        connection.settimeout(context.config.connection_timeout)
        WORKER_LOGGER.debug(
            "Request processing started",
            extra={"event": "request_started", "client": client_addr_str},
        )
        if not _complete_handshake(connection, client_addr_str):
            return

        request = read_request(connection, client_addr_str)
        if request is None:
            return

        WORKER_LOGGER.info(
            "Request decoded",
            extra={
                "event": "request_decoded",
                "client": client_addr_str,
                "scheme": request.scheme,
                "route": request.path,
                "target": target_string(request),
            },
        )

        writer = ResponseWriter(connection)
        context.handler(writer, request.with_context(cancel_context))

        WORKER_LOGGER.info(
            "Request processing complete",
            extra={
                "event": "request_complete",
                "client": client_addr_str,
                "status_code": writer.status,
                "bytes_out": writer.bytes_written,
                "duration_ms": round((time.monotonic() - started) * 1000, 3),
            },
        )
    except (ConnectionError, TimeoutError, OSError) as error:
        WORKER_LOGGER.error(
            "Error handling client connection",
            extra={
                "event": "connection_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
                "error": str(error),
            },
            exc_info=True,
        )
    finally:
        cancel_context.cancel()
        if context.lifecycle is not None:
            context.lifecycle.release_worker(threading.current_thread())
        _close_connection(connection, client_addr_str)
        clear_correlation_id()
