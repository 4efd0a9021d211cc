"""Request model shared by the server and client paths."""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol
from urllib.parse import SplitResult, quote, urlunsplit

from cryptography import x509
from cryptography.x509.oid import NameOID

from gemini.domain.context import Context, background

SCHEME_GEMINI = "gemini"
SCHEME_TITAN = "titan"
DEFAULT_PORT = 1965
MAX_REQUEST_LENGTH = 1024

_PATH_SAFE = "/"
_QUERY_SAFE = "=&/:@!$'()*,;?"
_PARAM_SAFE = "/"


class PeerConnection(Protocol):
    """The accepted connection a request was read from."""

    def recv(self, bufsize: int) -> bytes: ...

    def recv_into(self, buffer, nbytes: int = 0) -> int: ...

    def getpeercert(self, binary_form: bool = False) -> Any: ...


@dataclass
class TitanParameters:
    """Upload parameters carried as ``;key=value`` path segments."""

    token: str = ""
    mime: str = ""
    # -1 marks an unknown size and only appears on the client construction path.
    size: int = 0
    body: Any = field(default=None, repr=False, compare=False)


@dataclass
class Request:
    """A decoded request, owned by exactly one connection."""

    url: SplitResult
    titan: Optional[TitanParameters] = None
    connection: Optional[PeerConnection] = field(
        default=None, repr=False, compare=False
    )
    cancel_context: Optional[Context] = field(default=None, repr=False, compare=False)

    @property
    def scheme(self) -> str:
        return self.url.scheme

    @property
    def host(self) -> str:
        return self.url.hostname or ""

    @property
    def port(self) -> int:
        return self.url.port or DEFAULT_PORT

    @property
    def path(self) -> str:
        return self.url.path

    @property
    def query(self) -> str:
        return self.url.query

    @property
    def is_titan(self) -> bool:
        return self.titan is not None

    def context(self) -> Context:
        """Return the cancellation context, never None."""
        if self.cancel_context is not None:
            return self.cancel_context
        return background()

    def with_context(self, context: Context) -> "Request":
        """Return a shallow copy of the request carrying ``context``."""
        if context is None:
            raise ValueError("context must not be None")
        return dataclasses.replace(self, cancel_context=context)

    def certificate(self) -> Optional[x509.Certificate]:
        """Return the first certificate the peer presented, if any."""
        if self.connection is None:
            return None
        der = self.connection.getpeercert(binary_form=True)
        if not der:
            return None
        return x509.load_der_x509_certificate(der)

    def user_name(self) -> list[str]:
        """Describe the peer identity as name, serial and validity window."""
        cert = self.certificate()
        if cert is None:
            return [""]
        names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        common_name = str(names[0].value) if names else ""
        return [
            common_name,
            str(cert.serial_number),
            _to_base36(int(cert.not_valid_before_utc.timestamp())),
            _to_base36(int(cert.not_valid_after_utc.timestamp())),
        ]


def _to_base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    out = []
    while value:
        value, remainder = divmod(value, 36)
        out.append(digits[remainder])
    return sign + "".join(reversed(out))


def target_string(request: Request) -> str:
    """Render the request target in percent-encoded wire form, without CRLF."""
    url = request.url
    path = quote(url.path, safe=_PATH_SAFE)
    if request.titan is not None:
        params = request.titan
        if params.mime:
            path += ";mime=" + quote(params.mime, safe=_PARAM_SAFE)
        path += f";size={params.size}"
        if params.token:
            path += ";token=" + quote(params.token, safe=_PARAM_SAFE)
    query = quote(url.query, safe=_QUERY_SAFE)
    return urlunsplit((url.scheme, url.netloc, path, query, ""))


def format_request_line(request: Request) -> bytes:
    """Serialize the request line sent by a client."""
    target = target_string(request).encode("utf-8")
    if len(target) > MAX_REQUEST_LENGTH:
        raise ValueError(f"request exceeds {MAX_REQUEST_LENGTH} bytes")
    return target + b"\r\n"
