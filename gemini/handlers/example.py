"""Demonstration capsule wired up by ``main.py``."""

import os
from typing import Optional

from gemini.domain.correlation_id import component_logger
from gemini.domain.request import SCHEME_TITAN, Request
from gemini.domain.status import StatusCode
from gemini.handlers.file_handler import GEMINI_MIME, serve_directory, serve_file_name
from gemini.pipeline.payload import read_titan_payload
from gemini.pipeline.response_writer import ResponseWriter

EXAMPLE_LOGGER = component_logger("handlers.example")

FILES_PREFIX = "/files/"
HELLO_FILE = "hello.gmi"


class ExampleHandler:  # pylint: disable=too-few-public-methods
    """Routes a handful of fixed paths; everything else is 51."""

    def __init__(self, directory: str = ".", max_upload_bytes: Optional[int] = None):
        self.directory = directory
        self.max_upload_bytes = max_upload_bytes
        self._files = serve_directory(directory, FILES_PREFIX)

    def __call__(self, writer: ResponseWriter, request: Request) -> None:
        EXAMPLE_LOGGER.info(
            "Request received",
            extra={
                "event": "example_request",
                "route": request.path,
                "user": " ".join(request.user_name()),
            },
        )
        path = request.path
        if path == "/":
            writer.write_status(StatusCode.SUCCESS, GEMINI_MIME)
            writer.write_body(b"Hello, world!")
        elif path == "/user":
            self._user(writer, request)
        elif path == "/die":
            raise RuntimeError("must die")
        elif path == "/file":
            hello = os.path.join(self.directory, HELLO_FILE)
            serve_file_name(hello, GEMINI_MIME)(writer, request)
        elif path.startswith(FILES_PREFIX):
            self._files(writer, request)
        elif path == "/post":
            self._post(writer, request)
        else:
            writer.write_status(StatusCode.NOT_FOUND, path)

    @staticmethod
    def _user(writer: ResponseWriter, request: Request) -> None:
        common_name = request.user_name()[0]
        if request.certificate() is None:
            writer.write_status(StatusCode.CERT_REQUIRED, "Authentication Required")
            return
        writer.write_status(StatusCode.SUCCESS, GEMINI_MIME)
        writer.write_body(common_name.encode("utf-8"))

    def _post(self, writer: ResponseWriter, request: Request) -> None:
        if request.scheme != SCHEME_TITAN or request.titan is None:
            writer.write_status(StatusCode.SUCCESS, GEMINI_MIME)
            writer.write_body(b"Use titan scheme to upload data")
            return

        payload = read_titan_payload(request, self.max_upload_bytes)
        params = request.titan
        writer.write_status(StatusCode.SUCCESS, GEMINI_MIME)
        writer.write_body(b"Titan Upload Parameters\r\n")
        writer.write_body(f"Upload MIME Type: {params.mime}\r\n".encode("utf-8"))
        writer.write_body(f"Token: {params.token}\r\n".encode("utf-8"))
        writer.write_body(f"Size: {params.size}\r\n".encode("utf-8"))
        writer.write_body(b"Payload:\r\n")
        writer.write_body(payload)
