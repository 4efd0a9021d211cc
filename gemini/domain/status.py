"""Gemini status codes."""

from enum import IntEnum


class StatusCode(IntEnum):
    """Two-digit response status codes grouped by family."""

    PLAIN_INPUT = 10
    SENSITIVE_INPUT = 11
    SUCCESS = 20
    TEMPORARY_REDIRECT = 30
    PERMANENT_REDIRECT = 31
    UNSPECIFIED = 40
    SERVER_UNAVAILABLE = 41
    CGI_ERROR = 42
    PROXY_ERROR = 43
    SLOW_DOWN = 44
    GENERAL_PERM_FAIL = 50
    NOT_FOUND = 51
    GONE = 52
    PROXY_REFUSED = 53
    BAD_REQUEST = 59
    CERT_REQUIRED = 60
    CERT_NOT_AUTHORIZED = 61
    CERT_NOT_VALID = 62


def simplify_status(status: int) -> int:
    """Drop the detail digit, leaving the status family (e.g. 51 -> 50)."""
    return (int(status) // 10) * 10


def format_status_line(status: int, message: str) -> bytes:
    return f"{int(status)} {message}\r\n".encode("utf-8")
