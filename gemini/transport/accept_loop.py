"""Connection acceptance loop."""

import argparse
import logging
import socket
import threading
import time
from typing import Optional

from gemini.bootstrap.config import ServerConfig
from gemini.bootstrap.socket_factory import (
    build_server_tls_context,
    create_server_socket,
    listen,
)
from gemini.domain.correlation_id import component_logger
from gemini.handlers.base import Handler
from gemini.lifecycle.state import ServerLifecycle
from gemini.transport.context import WorkerContext
from gemini.transport.tls_connection import TlsConnection, TlsListener
from gemini.transport.worker import handle_client

ACCEPT_LOGGER = component_logger("transport.accept")

ACCEPT_ERROR_BACKOFF_SECONDS = 0.01


def _dispatch(
    connection: TlsConnection,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> Optional[threading.Thread]:
    """Start a worker thread for a newly accepted connection.

    Returns None when the thread cannot be started; the connection is closed.
    """
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ACCEPT_LOGGER.debug(
            "Client connection accepted",
            extra={"event": "client_accepted", "client": client_addr_str},
        )
    thread = threading.Thread(
        target=handle_client,
        args=(connection, client_address, context),
        daemon=False,
    )
    if context.lifecycle is not None:
        context.lifecycle.register_worker(thread)
    try:
        thread.start()
    except RuntimeError as error:
        if context.lifecycle is not None:
            context.lifecycle.release_worker(thread)
        connection.close()
        ACCEPT_LOGGER.error(
            "Failed to start worker thread",
            extra={
                "event": "worker_start_failed",
                "client": client_addr_str,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        return None
    return thread


def serve(server_socket: TlsListener, context: WorkerContext) -> None:
    """Accept connections until the lifecycle asks to stop.

    Accept failures are logged and the loop carries on; without a
    lifecycle the loop never returns.
    """
    lifecycle = context.lifecycle
    while lifecycle is None or not lifecycle.should_stop():
        try:
            connection, client_address = server_socket.accept()
        except socket.timeout:
            continue
        except OSError as error:
            if lifecycle is not None and lifecycle.should_stop():
                break
            ACCEPT_LOGGER.error(
                "Socket accept failed",
                extra={"event": "accept_error", "error_type": type(error).__name__},
            )
            time.sleep(ACCEPT_ERROR_BACKOFF_SECONDS)
            continue

        if lifecycle is not None and lifecycle.is_draining():
            connection.close()
            continue

        _dispatch(connection, client_address, context)


def _serve_until_stopped(
    server_socket: TlsListener, context: WorkerContext, host: str, port: int
) -> None:
    ACCEPT_LOGGER.info(
        "Server listening for connections",
        extra={"event": "server_listening", "host": host, "port": port},
    )
    try:
        serve(server_socket, context)
    finally:
        server_socket.close()
        if context.lifecycle is not None:
            ACCEPT_LOGGER.info(
                "Waiting for active connections to complete",
                extra={
                    "event": "shutdown_waiting",
                    "shutdown_grace_seconds": context.config.shutdown_grace_seconds,
                },
            )
            context.lifecycle.wait_for_workers(context.config.shutdown_grace_seconds)
        ACCEPT_LOGGER.info("Server shutdown complete", extra={"event": "server_stopped"})


def run_server(
    args: argparse.Namespace,
    config: ServerConfig,
    lifecycle: ServerLifecycle,
    handler: Handler,
) -> None:
    """Create the listening socket from CLI arguments and serve ``handler``."""
    server_socket = create_server_socket(args)
    context = WorkerContext(handler=handler, lifecycle=lifecycle, config=config)
    _serve_until_stopped(server_socket, context, args.host, args.port)


def listen_and_serve(
    address: tuple[str, int],
    cert_file: str,
    key_file: str,
    handler: Handler,
    client_ca: Optional[str] = None,
    config: Optional[ServerConfig] = None,
    lifecycle: Optional[ServerLifecycle] = None,
) -> None:
    """Serve ``handler`` on ``address``; raises CredentialError on bad certificates."""
    host, port = address
    tls_context = build_server_tls_context(cert_file, key_file, client_ca)
    server_socket = listen(host, port, tls_context)
    context = WorkerContext(
        handler=handler,
        lifecycle=lifecycle,
        config=config if config is not None else ServerConfig(),
    )
    _serve_until_stopped(server_socket, context, host, port)
