"""Server configuration and CLI argument parsing."""

import argparse
import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    return value if value else default


DEFAULT_HOST = os.getenv("GEMINI_SERVER_HOST", "localhost")
DEFAULT_PORT = _env_int("GEMINI_SERVER_PORT", 1965)
DEFAULT_CERT_FILE = _env_str("GEMINI_SERVER_CERT", "server.crt.pem")
DEFAULT_KEY_FILE = _env_str("GEMINI_SERVER_KEY", "server.key.pem")
DEFAULT_CLIENT_CA = _env_str("GEMINI_SERVER_CLIENT_CA", None)
DEFAULT_SOCKET_TIMEOUT = _env_int("GEMINI_SERVER_SOCKET_TIMEOUT", 30)
DEFAULT_SHUTDOWN_GRACE_SECONDS = _env_int("GEMINI_SERVER_SHUTDOWN_GRACE_SECONDS", 10)
DEFAULT_MAX_UPLOAD_BYTES = _env_int("GEMINI_SERVER_MAX_UPLOAD_BYTES", 5 * 1024 * 1024)

ACCEPT_POLL_SECONDS = 0.5


@dataclass
class ServerConfig:
    """Runtime settings shared by the acceptor and its workers."""

    socket_timeout: int = DEFAULT_SOCKET_TIMEOUT
    shutdown_grace_seconds: int = DEFAULT_SHUTDOWN_GRACE_SECONDS
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    @property
    def connection_timeout(self) -> Optional[float]:
        """Per-connection socket timeout, None when disabled."""
        return float(self.socket_timeout) if self.socket_timeout > 0 else None


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    return ServerConfig(
        socket_timeout=args.socket_timeout,
        shutdown_grace_seconds=args.shutdown_grace_seconds,
        max_upload_bytes=args.max_upload_bytes,
    )


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(description="Gemini and Titan server")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument(
        "--cert", default=DEFAULT_CERT_FILE, help="Path to TLS certificate file"
    )
    parser.add_argument(
        "--key", default=DEFAULT_KEY_FILE, help="Path to TLS private key file"
    )
    parser.add_argument(
        "--client-ca",
        default=DEFAULT_CLIENT_CA,
        help="CA bundle client certificates must chain to (default: accept any)",
    )
    parser.add_argument(
        "--directory", default=".", help="Directory served by the example capsule"
    )
    default_log_level = os.getenv("GEMINI_SERVER_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("GEMINI_SERVER_LOG_DESTINATION", "stdout")
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--socket-timeout",
        type=int,
        default=DEFAULT_SOCKET_TIMEOUT,
        help="Socket timeout in seconds for each connection (0 to disable)",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        type=int,
        default=DEFAULT_SHUTDOWN_GRACE_SECONDS,
        help="Grace period in seconds for graceful shutdown",
    )
    parser.add_argument(
        "--max-upload-bytes",
        type=int,
        default=DEFAULT_MAX_UPLOAD_BYTES,
        help="Largest titan payload the example capsule accepts",
    )
    return parser.parse_args(argv)
