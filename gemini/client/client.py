"""Client side: build requests, send them, read the status line back."""

import io
import logging
import re
import socket
import ssl
from dataclasses import dataclass, field
from typing import BinaryIO, Optional, Union

from gemini.domain.context import Context
from gemini.domain.correlation_id import component_logger
from gemini.domain.request import (
    SCHEME_TITAN,
    Request,
    TitanParameters,
    format_request_line,
)
from gemini.domain.status import simplify_status
from gemini.pipeline.decoder import (
    RequestDecodeError,
    parse_target,
    percent_decode,
    split_titan_parameters,
)
from gemini.pipeline.line_reader import read_line

CLIENT_LOGGER = component_logger("client")

DEFAULT_TIMEOUT = 30.0
UPLOAD_CHUNK = 65536

_STATUS_CODE = re.compile(r"[0-9]{2}")

Body = Union[bytes, bytearray, memoryview, io.BytesIO]


class StatusLineError(ValueError):
    """Raised when the server's status line is malformed."""


class UnknownPayloadSize(ValueError):
    """Raised when a titan body's length cannot be determined up front."""


def _payload_size(body: Optional[Body]) -> int:
    if body is None:
        return 0
    if isinstance(body, (bytes, bytearray)):
        return len(body)
    if isinstance(body, memoryview):
        return body.nbytes
    if isinstance(body, io.BytesIO):
        return len(body.getbuffer()) - body.tell()
    raise UnknownPayloadSize("can't handle unknown size titan payloads")


def new_request(
    url: str,
    body: Optional[Body] = None,
    mime: str = "",
    token: str = "",
    context: Optional[Context] = None,
) -> Request:
    """Build an outgoing request, validating ``url`` as the server would."""
    try:
        target = parse_target(percent_decode(url))
    except RequestDecodeError as exc:
        raise ValueError(str(exc)) from exc

    if target.scheme != SCHEME_TITAN:
        if body is not None:
            raise ValueError(f"{target.scheme} requests cannot carry a body")
        if not target.path:
            target = target._replace(path="/")
        return Request(target, None, None, context)

    try:
        path, params = split_titan_parameters(target.path, required=False)
    except RequestDecodeError as exc:
        raise ValueError(str(exc)) from exc
    params.size = _payload_size(body)
    params.body = body
    if mime:
        params.mime = mime
    if token:
        params.token = token
    return Request(target._replace(path=path), params, None, context)


def parse_status_line(line: bytes) -> tuple[int, str]:
    """Split ``<code> <meta>`` into its status code and meta text."""
    try:
        text = line.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise StatusLineError(f"status line is not valid UTF-8: {line!r}") from exc
    code, _, meta = text.partition(" ")
    if not _STATUS_CODE.fullmatch(code):
        raise StatusLineError(f"unexpected status value {code!r}")
    return int(code), meta


@dataclass
class Response:
    """A server response whose body streams from the open connection.

    The response owns the connection; close it (or use it as a context
    manager) once the body has been consumed.
    """

    status: int
    meta: str
    body: BinaryIO = field(repr=False)
    request: Optional[Request] = field(default=None, repr=False)
    connection: Optional[socket.socket] = field(default=None, repr=False)

    @property
    def message(self) -> str:
        return self.meta

    @property
    def family(self) -> int:
        return simplify_status(self.status)

    def read(self, size: int = -1) -> bytes:
        return self.body.read(size)

    def close(self) -> None:
        self.body.close()
        if self.connection is not None:
            self.connection.close()

    def __enter__(self) -> "Response":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _write_payload(connection: socket.socket, params: TitanParameters) -> None:
    body = params.body
    if body is None or params.size == 0:
        return
    if isinstance(body, io.BytesIO):
        while True:
            chunk = body.read(UPLOAD_CHUNK)
            if not chunk:
                break
            connection.sendall(chunk)
        return
    connection.sendall(body)


class Client:
    """Fetches resources from Gemini and Titan servers."""

    def __init__(
        self,
        insecure_skip_verify: bool = False,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        cert_file: Optional[str] = None,
        key_file: Optional[str] = None,
    ) -> None:
        self.insecure_skip_verify = insecure_skip_verify
        self.timeout = timeout
        self.cert_file = cert_file
        self.key_file = key_file

    def tls_context(self) -> ssl.SSLContext:
        """Build the client TLS context for one connection."""
        tls_context = ssl.create_default_context()
        tls_context.minimum_version = ssl.TLSVersion.TLSv1_2
        if self.insecure_skip_verify:
            tls_context.check_hostname = False
            tls_context.verify_mode = ssl.CERT_NONE
        if self.cert_file:
            tls_context.load_cert_chain(self.cert_file, self.key_file)
        return tls_context

    def _connect(self, request: Request) -> ssl.SSLSocket:
        raw = socket.create_connection((request.host, request.port), self.timeout)
        try:
            return self.tls_context().wrap_socket(raw, server_hostname=request.host)
        except (ssl.SSLError, OSError):
            raw.close()
            raise

    def do(self, request: Request) -> Response:
        """Send ``request`` and return the response once its status line is read."""
        line = format_request_line(request)
        connection = self._connect(request)
        try:
            connection.sendall(line)
            if request.titan is not None:
                _write_payload(connection, request.titan)
            status, meta = parse_status_line(read_line(connection))
        except (OSError, ValueError):
            connection.close()
            raise

        if CLIENT_LOGGER.logger.isEnabledFor(logging.DEBUG):
            CLIENT_LOGGER.debug(
                "Response status received",
                extra={
                    "event": "response_status",
                    "host": request.host,
                    "route": request.path,
                    "status_code": status,
                },
            )
        return Response(
            status=status,
            meta=meta,
            body=connection.makefile("rb"),
            request=request,
            connection=connection,
        )

    def fetch(self, url: str) -> Response:
        """Fetch ``url`` with a plain request."""
        return self.do(new_request(url))

    def upload(self, url: str, body: Body, mime: str = "", token: str = "") -> Response:
        """Send ``body`` to a titan ``url``."""
        request = new_request(url, body, mime=mime, token=token)
        if request.titan is None:
            raise ValueError("uploads require the titan scheme")
        return self.do(request)
