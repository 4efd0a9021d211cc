"""Titan upload payload intake."""

import logging
from typing import Optional

from gemini.domain.correlation_id import component_logger
from gemini.domain.request import Request
from gemini.pipeline.line_reader import UnexpectedEOF

PAYLOAD_LOGGER = component_logger("pipeline.payload")
RECV_CHUNK = 65536


class IncompletePayload(UnexpectedEOF):
    """Raised when the connection ends before the declared payload size."""


class PayloadTooLarge(ValueError):
    """Raised when the declared payload size exceeds the configured limit."""


def read_titan_payload(request: Request, max_size: Optional[int] = None) -> bytes:
    """Read exactly ``request.titan.size`` bytes from the request connection."""
    if request.titan is None:
        raise ValueError("request carries no titan parameters")
    if request.connection is None:
        raise ValueError("request has no connection to read from")
    size = request.titan.size
    if size < 0:
        raise ValueError(f"invalid titan payload size: {size}")
    if max_size is not None and size > max_size:
        raise PayloadTooLarge(f"titan payload of {size} bytes exceeds {max_size}")

    buffer = bytearray(size)
    view = memoryview(buffer)
    received = 0
    while received < size:
        count = request.connection.recv_into(
            view[received:], min(RECV_CHUNK, size - received)
        )
        if not count:
            raise IncompletePayload(
                f"titan payload incomplete: received {received} of {size} bytes"
            )
        received += count

    if PAYLOAD_LOGGER.logger.isEnabledFor(logging.DEBUG):
        PAYLOAD_LOGGER.debug(
            "Titan payload received",
            extra={"event": "payload_received", "bytes_in": size},
        )
    return bytes(buffer)
