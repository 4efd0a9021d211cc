"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import logging

import pytest

from tests.utils.certs import CertificatePair, write_self_signed


@pytest.fixture(autouse=True)
def enable_log_propagation():
    """Ensure logs propagate to root so caplog can catch them."""

    logger = logging.getLogger("gemini")
    old_propagate = logger.propagate
    old_level = logger.level
    logger.propagate = True
    yield
    logger.propagate = old_propagate
    logger.setLevel(old_level)


@pytest.fixture(scope="session")
def server_certificate(tmp_path_factory: pytest.TempPathFactory) -> CertificatePair:
    """A self-signed server certificate for 127.0.0.1/localhost."""

    return write_self_signed(tmp_path_factory.mktemp("server-certs"), "localhost")


@pytest.fixture(scope="session")
def client_certificate(tmp_path_factory: pytest.TempPathFactory) -> CertificatePair:
    """A self-signed client identity."""

    return write_self_signed(tmp_path_factory.mktemp("client-certs"), "alice")
