"""Handler contract and shared wrappers."""

import functools
import logging
from typing import Callable, Optional, Union

from gemini.domain.correlation_id import CorrelationLoggerAdapter, component_logger
from gemini.domain.request import Request
from gemini.domain.status import StatusCode
from gemini.pipeline.response_writer import ResponseStateError, ResponseWriter

HANDLER_LOGGER = component_logger("handlers")

Handler = Callable[[ResponseWriter, Request], None]
Logger = Union[logging.Logger, CorrelationLoggerAdapter]


def trap_panic(handler: Handler, logger: Optional[Logger] = None) -> Handler:
    """Wrap ``handler`` so an escaping exception becomes a status 40 response."""
    log = logger if logger is not None else HANDLER_LOGGER

    @functools.wraps(handler)
    def trapped(writer: ResponseWriter, request: Request) -> None:
        try:
            handler(writer, request)
        except Exception as error:  # pylint: disable=broad-except
            log.error(
                "Handler raised an exception",
                extra={
                    "event": "handler_panic",
                    "route": request.path,
                    "error_type": type(error).__name__,
                },
                exc_info=True,
            )
            try:
                writer.write_status(StatusCode.UNSPECIFIED, "Internal Server Error")
            except (ResponseStateError, ConnectionError):
                pass

    return trapped


def not_found(writer: ResponseWriter, request: Request) -> None:
    """Answer with 51."""
    del request
    writer.write_status(StatusCode.NOT_FOUND, "404 Resource Not Found")
