"""Gemini/Titan server entry point serving the example capsule."""

import signal
import sys

from gemini.bootstrap.config import config_from_args, parse_cli_args
from gemini.bootstrap.logging_setup import configure_logging
from gemini.domain.correlation_id import component_logger
from gemini.handlers.base import trap_panic
from gemini.handlers.example import ExampleHandler
from gemini.lifecycle.state import ServerLifecycle
from gemini.transport.accept_loop import run_server

SERVER_LOGGER = component_logger("server")


def main() -> None:
    """Start the server and spawn one worker thread per connection."""
    args = parse_cli_args(sys.argv[1:])
    configure_logging(args.log_level, args.log_destination)

    config = config_from_args(args)
    lifecycle = ServerLifecycle()

    def shutdown_handler(signum: int, _frame) -> None:
        SERVER_LOGGER.info(
            "Received shutdown signal", extra={"event": "signal", "signal": signum}
        )
        lifecycle.begin_draining()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    SERVER_LOGGER.info(
        "Starting Gemini server",
        extra={
            "event": "server_starting",
            "host": args.host,
            "port": args.port,
            "directory": args.directory,
            "client_ca": args.client_ca,
            "log_destination": args.log_destination,
            "log_level": args.log_level,
            "socket_timeout": config.socket_timeout,
            "shutdown_grace_seconds": config.shutdown_grace_seconds,
        },
    )
    handler = trap_panic(ExampleHandler(args.directory, config.max_upload_bytes))
    run_server(args, config, lifecycle, handler)


if __name__ == "__main__":
    main()
