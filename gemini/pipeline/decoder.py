"""Decoding of raw request lines into Request objects."""

import re
from typing import Optional, Union
from urllib.parse import SplitResult, unquote_plus, urlsplit

from gemini.domain.request import (
    SCHEME_TITAN,
    PeerConnection,
    Request,
    TitanParameters,
)

_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_DECIMAL = re.compile(r"[0-9]+")


class RequestDecodeError(ValueError):
    """Raised when a request line cannot be turned into a Request."""


def percent_decode(raw: Union[bytes, str]) -> str:
    """Unescape a request line the way query strings are unescaped."""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise RequestDecodeError(f"request is not valid UTF-8: {raw!r}") from exc
    if _BAD_ESCAPE.search(raw):
        raise RequestDecodeError(f"failed to unescape request: {raw}")
    try:
        return unquote_plus(raw, errors="strict")
    except UnicodeDecodeError as exc:
        raise RequestDecodeError(f"failed to unescape request: {raw}") from exc


def parse_target(text: str) -> SplitResult:
    """Parse an absolute URI, insisting on a scheme."""
    try:
        url = urlsplit(text)
        # Accessing the port validates it.
        _ = url.port
    except ValueError as exc:
        raise RequestDecodeError(
            f"failed to parse request: {text}, error: {exc}"
        ) from exc
    if not url.scheme:
        raise RequestDecodeError(f"request is missing scheme: {text}")
    return url


def split_titan_parameters(
    path: str, required: bool = True
) -> tuple[str, TitanParameters]:
    """Split ``/path;key=value;...`` into the canonical path and its parameters."""
    parts = path.split(";")
    if required and len(parts) < 2:
        raise RequestDecodeError("titan parameters expected")

    params = TitanParameters()
    for part in parts[1:]:
        pair = part.split("=")
        if len(pair) != 2:
            continue
        key, value = pair
        if key == "token":
            params.token = value
        elif key == "mime":
            params.mime = value
        elif key == "size":
            if not _DECIMAL.fullmatch(value):
                raise RequestDecodeError(
                    f"failed to parse titan size parameter: {value}"
                )
            params.size = int(value)
    return parts[0], params


def decode_request(
    connection: Optional[PeerConnection], raw: Union[bytes, str]
) -> Request:
    """Build a Request from a raw request line read off ``connection``."""
    text = percent_decode(raw)
    url = parse_target(text)

    if url.scheme == SCHEME_TITAN:
        path, params = split_titan_parameters(url.path)
        return Request(url._replace(path=path), params, connection)

    # Unrecognized schemes keep their scheme; dispatch decides what to do.
    if not url.path:
        url = url._replace(path="/")
    return Request(url, None, connection)
