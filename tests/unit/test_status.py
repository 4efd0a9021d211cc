"""Unit tests for status codes and status lines."""

import pytest

from gemini.domain.status import StatusCode, format_status_line, simplify_status


@pytest.mark.parametrize(
    "status, family",
    [(10, 10), (11, 10), (20, 20), (31, 30), (44, 40), (51, 50), (59, 50), (62, 60)],
)
def test_simplify_status_keeps_family(status, family):
    """The detail digit is dropped."""
    assert simplify_status(status) == family


def test_status_codes_are_ints():
    """Enum members compare equal to their wire values."""
    assert StatusCode.NOT_FOUND == 51
    assert StatusCode.CERT_REQUIRED == 60


def test_format_status_line():
    """Status lines are '<code> <meta>' terminated by CRLF."""
    assert format_status_line(StatusCode.SUCCESS, "text/gemini") == (
        b"20 text/gemini\r\n"
    )
    assert format_status_line(51, "") == b"51 \r\n"
