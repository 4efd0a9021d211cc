"""Listening socket creation and server TLS configuration."""

import argparse
import os
import socket
import sys
from typing import Optional

from OpenSSL import SSL

from gemini.bootstrap.config import ACCEPT_POLL_SECONDS
from gemini.domain.correlation_id import component_logger
from gemini.transport.tls_connection import TlsListener

SOCKET_LOGGER = component_logger("socket")

SESSION_ID_CONTEXT = b"gemini-server"


class CredentialError(Exception):
    """Raised when the server certificate/key pair cannot be loaded."""


def _accept_any_certificate(*_verify_args) -> bool:
    # Any certificate, self-signed included, is accepted as an identity.
    return True


def build_server_tls_context(
    cert_file: str, key_file: str, client_ca: Optional[str] = None
) -> SSL.Context:
    """Load the server credential pair into a TLS server context.

    Every client is asked for a certificate and may decline. Without
    ``client_ca`` any certificate is accepted, self-signed included. With it,
    a presented certificate must chain to that bundle.
    """
    tls_context = SSL.Context(SSL.TLS_METHOD)
    tls_context.set_min_proto_version(SSL.TLS1_2_VERSION)
    tls_context.set_session_id(SESSION_ID_CONTEXT)
    try:
        tls_context.use_certificate_chain_file(os.fspath(cert_file))
        tls_context.use_privatekey_file(os.fspath(key_file))
        tls_context.check_privatekey()
    except (SSL.Error, OSError) as error:
        raise CredentialError(f"failed to load certificates: {error}") from error

    if client_ca:
        try:
            tls_context.load_verify_locations(os.fspath(client_ca))
        except (SSL.Error, OSError) as error:
            raise CredentialError(
                f"failed to load client CA bundle: {error}"
            ) from error
        tls_context.set_verify(SSL.VERIFY_PEER, None)
    else:
        tls_context.set_verify(SSL.VERIFY_PEER, _accept_any_certificate)
    return tls_context


def listen(host: str, port: int, tls_context: SSL.Context) -> TlsListener:
    """Bind a TLS listening socket; handshakes are left to the workers."""
    server_socket = socket.create_server((host, port), reuse_port=True)
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    return TlsListener(server_socket, tls_context)


def create_server_socket(args: argparse.Namespace) -> TlsListener:
    """Create the listening socket from CLI arguments, exiting on bad credentials."""
    try:
        tls_context = build_server_tls_context(
            args.cert, args.key, getattr(args, "client_ca", None)
        )
    except CredentialError as error:
        SOCKET_LOGGER.critical(
            "Failed to load TLS certificates",
            extra={"event": "tls_credentials_failed", "error": str(error)},
        )
        sys.exit(1)
    return listen(args.host, args.port, tls_context)
