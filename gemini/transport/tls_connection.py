"""Server-side TLS connections on top of pyOpenSSL.

The raw socket stays non-blocking; every TLS call is retried after waiting
on ``select`` so the per-connection timeout bounds each operation.
"""

import select
import socket
import time
from typing import Callable, Optional, TypeVar

from cryptography.hazmat.primitives import serialization
from OpenSSL import SSL

T = TypeVar("T")


class TlsConnection:
    """Socket-like wrapper around one accepted ``SSL.Connection``."""

    def __init__(self, connection: SSL.Connection, raw: socket.socket) -> None:
        self._tls = connection
        self._raw = raw
        self._timeout: Optional[float] = None
        self._close_notify_sent = False

    def settimeout(self, timeout: Optional[float]) -> None:
        self._timeout = timeout

    def gettimeout(self) -> Optional[float]:
        return self._timeout

    def fileno(self) -> int:
        return self._raw.fileno()

    def _wait(self, readable: bool, deadline: Optional[float]) -> None:
        remaining = None
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError("TLS connection timed out")
        if readable:
            ready, _, _ = select.select([self._raw], [], [], remaining)
        else:
            _, ready, _ = select.select([], [self._raw], [], remaining)
        if not ready:
            raise TimeoutError("TLS connection timed out")

    def _retry(self, operation: Callable[..., T], *args) -> T:
        deadline = None
        if self._timeout is not None:
            deadline = time.monotonic() + self._timeout
        while True:
            try:
                return operation(*args)
            except SSL.WantReadError:
                self._wait(True, deadline)
            except SSL.WantWriteError:
                self._wait(False, deadline)
            except SSL.SysCallError as exc:
                raise ConnectionResetError(f"TLS transport failed: {exc}") from exc
            except SSL.ZeroReturnError:
                raise
            except SSL.Error as exc:
                raise ConnectionError(f"TLS error: {exc}") from exc

    def do_handshake(self) -> None:
        self._retry(self._tls.do_handshake)

    def recv(self, bufsize: int) -> bytes:
        """Read up to ``bufsize`` bytes; b"" once the peer has closed or reset."""
        try:
            return self._retry(self._tls.recv, bufsize)
        except (SSL.ZeroReturnError, ConnectionError):
            return b""

    def recv_into(self, buffer, nbytes: int = 0) -> int:
        try:
            return self._retry(self._tls.recv_into, buffer, nbytes or len(buffer))
        except (SSL.ZeroReturnError, ConnectionError):
            return 0

    def sendall(self, data) -> None:
        view = memoryview(data).cast("B")
        while view:
            sent = self._retry(self._tls.send, view)
            view = view[sent:]

    def getpeercert(self, binary_form: bool = False):
        """Return the client certificate as DER, or None when none was sent."""
        certificate = self._tls.get_peer_certificate()
        if certificate is None:
            return None
        if not binary_form:
            return {}
        return certificate.to_cryptography().public_bytes(serialization.Encoding.DER)

    def _send_close_notify(self) -> None:
        if self._close_notify_sent:
            return
        self._close_notify_sent = True
        try:
            self._retry(self._tls.shutdown)
        except (OSError, SSL.Error):
            pass

    def shutdown(self, how: int) -> None:
        """Send the TLS close_notify alert, then shut the socket down."""
        self._send_close_notify()
        self._raw.shutdown(how)

    def close(self) -> None:
        self._send_close_notify()
        self._raw.close()


def accept_tls(tls_context: SSL.Context, raw: socket.socket) -> TlsConnection:
    """Wrap an accepted socket for a server-side handshake still to be done."""
    raw.setblocking(False)
    connection = SSL.Connection(tls_context, raw)
    connection.set_accept_state()
    return TlsConnection(connection, raw)


class TlsListener:
    """Listening socket handing out TLS connections with handshakes pending."""

    def __init__(self, server_socket: socket.socket, tls_context: SSL.Context) -> None:
        self._sock = server_socket
        self._context = tls_context

    def accept(self) -> tuple[TlsConnection, tuple[str, int]]:
        raw, address = self._sock.accept()
        return accept_tls(self._context, raw), address

    def getsockname(self):
        return self._sock.getsockname()

    def close(self) -> None:
        self._sock.close()
