"""Static file handlers."""

import logging
import mimetypes
import shutil
from pathlib import Path
from typing import BinaryIO, Union

from gemini.domain.correlation_id import component_logger
from gemini.domain.request import Request
from gemini.domain.sandbox import ForbiddenPath, resolve_capsule_path
from gemini.domain.status import StatusCode
from gemini.handlers.base import Handler, not_found
from gemini.pipeline.response_writer import ResponseWriter

FILE_LOGGER = component_logger("handlers.file")

GEMINI_MIME = "text/gemini"
_GEMINI_SUFFIXES = {".gmi", ".gemini"}
COPY_CHUNK = 65536


def content_type_for_path(filepath: Path) -> str:
    """Guess a MIME type, treating gemtext files as text/gemini."""
    if filepath.suffix.lower() in _GEMINI_SUFFIXES:
        return GEMINI_MIME
    mime_type, _ = mimetypes.guess_type(filepath.as_posix())
    return mime_type or "application/octet-stream"


def serve_file(stream: BinaryIO, mime_type: str) -> Handler:
    """Return a handler that sends ``stream`` as a success response."""

    def handler(writer: ResponseWriter, request: Request) -> None:
        del request
        writer.write_status(StatusCode.SUCCESS, mime_type)
        shutil.copyfileobj(stream, writer, COPY_CHUNK)

    return handler


def serve_file_name(name: Union[str, Path], mime_type: str) -> Handler:
    """Return a handler that opens ``name`` per request and sends it.

    A missing file raises, leaving the response to ``trap_panic``.
    """

    def handler(writer: ResponseWriter, request: Request) -> None:
        with open(name, "rb") as stream:
            serve_file(stream, mime_type)(writer, request)

    return handler


def serve_directory(directory: str, prefix: str = "/") -> Handler:
    """Return a handler serving files below ``directory`` for paths under ``prefix``."""

    def handler(writer: ResponseWriter, request: Request) -> None:
        relative = request.path[len(prefix) :] if request.path.startswith(prefix) else ""
        try:
            target = resolve_capsule_path(directory, relative)
        except ForbiddenPath:
            FILE_LOGGER.warning(
                "Path escapes capsule directory",
                extra={"event": "forbidden_path", "route": request.path},
            )
            writer.write_status(StatusCode.BAD_REQUEST, "Invalid path")
            return
        if not target.is_file():
            FILE_LOGGER.info(
                "File not found",
                extra={"event": "file_not_found", "route": request.path},
            )
            not_found(writer, request)
            return

        with open(target, "rb") as stream:
            serve_file(stream, content_type_for_path(target))(writer, request)
        if FILE_LOGGER.logger.isEnabledFor(logging.DEBUG):
            FILE_LOGGER.debug(
                "File served",
                extra={
                    "event": "file_served",
                    "route": request.path,
                    "bytes_out": writer.bytes_written,
                },
            )

    return handler
