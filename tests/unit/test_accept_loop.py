"""Unit tests for the accept loop and its lifecycle interplay."""

import logging
import socket
import threading
from unittest.mock import MagicMock, patch

from gemini.lifecycle.state import ServerLifecycle
from gemini.transport import accept_loop
from gemini.transport.context import WorkerContext
from tests.utils.fakes import FakeConnection


def _noop_handler(writer, request):
    writer.write_status(20, "text/gemini")


class ScriptedListener:
    """Listening socket stub replaying accept() outcomes."""

    def __init__(self, outcomes, lifecycle):
        self._outcomes = list(outcomes)
        self._lifecycle = lifecycle
        self.closed = False

    def accept(self):
        if not self._outcomes:
            self._lifecycle.begin_draining()
            raise socket.timeout("idle")
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


def test_accept_errors_are_logged_and_retried(caplog):
    """A failing accept does not end the loop."""
    caplog.set_level(logging.ERROR)
    lifecycle = ServerLifecycle()
    conn = FakeConnection(b"gemini://x/\r\n")
    listener = ScriptedListener(
        [OSError("too many open files"), (conn, ("127.0.0.1", 4000))], lifecycle
    )
    context = WorkerContext(handler=_noop_handler, lifecycle=lifecycle)

    with patch.object(accept_loop.time, "sleep") as mock_sleep:
        accept_loop.serve(listener, context)

    mock_sleep.assert_called_once_with(accept_loop.ACCEPT_ERROR_BACKOFF_SECONDS)
    assert any(getattr(r, "event", None) == "accept_error" for r in caplog.records)
    assert lifecycle.wait_for_workers(5)
    assert bytes(conn.sent) == b"20 text/gemini\r\n"


def test_connections_accepted_while_draining_are_closed():
    """Once draining, new connections are dropped without a worker."""
    lifecycle = ServerLifecycle()
    conn = FakeConnection(b"gemini://x/\r\n")

    class DrainingListener(ScriptedListener):
        """Begins draining as the connection arrives."""

        def accept(self):
            result = super().accept()
            self._lifecycle.begin_draining()
            return result

    listener = DrainingListener([(conn, ("127.0.0.1", 4001))], lifecycle)
    context = WorkerContext(handler=_noop_handler, lifecycle=lifecycle)
    with patch.object(accept_loop, "_dispatch") as mock_dispatch:
        accept_loop.serve(listener, context)

    mock_dispatch.assert_not_called()
    assert conn.closed
    assert bytes(conn.sent) == b""


def test_dispatch_registers_worker_before_start():
    """Workers are tracked by the lifecycle as soon as they are created."""
    lifecycle = ServerLifecycle()
    started = threading.Event()
    release = threading.Event()

    def blocking_handler(writer, request):
        started.set()
        release.wait(5)
        writer.write_status(20, "text/gemini")

    context = WorkerContext(handler=blocking_handler, lifecycle=lifecycle)
    conn = FakeConnection(b"gemini://x/\r\n")
    thread = accept_loop._dispatch(conn, ("127.0.0.1", 4002), context)

    assert started.wait(5)
    assert lifecycle.has_worker(thread)
    assert not thread.daemon
    release.set()
    thread.join(5)
    assert not lifecycle.has_worker(thread)


def test_serve_until_stopped_logs_and_waits(caplog):
    """The wrapper announces the listener, closes it and waits for workers."""
    caplog.set_level(logging.INFO)
    lifecycle = ServerLifecycle()
    listener = ScriptedListener([], lifecycle)
    context = WorkerContext(handler=_noop_handler, lifecycle=lifecycle)

    with patch.object(lifecycle, "wait_for_workers", return_value=True) as mock_wait:
        accept_loop._serve_until_stopped(listener, context, "localhost", 1965)

    events = [getattr(r, "event", None) for r in caplog.records]
    assert "server_listening" in events
    assert "server_stopped" in events
    assert listener.closed
    mock_wait.assert_called_once_with(context.config.shutdown_grace_seconds)


def test_listen_and_serve_builds_tls_listener():
    """listen_and_serve wires credentials, listener and handler together."""
    lifecycle = ServerLifecycle()
    listener = ScriptedListener([], lifecycle)

    with patch.object(
        accept_loop, "build_server_tls_context"
    ) as mock_tls, patch.object(
        accept_loop, "listen", return_value=listener
    ) as mock_listen:
        accept_loop.listen_and_serve(
            ("127.0.0.1", 1965),
            "cert.pem",
            "key.pem",
            _noop_handler,
            lifecycle=lifecycle,
        )

    mock_tls.assert_called_once_with("cert.pem", "key.pem", None)
    mock_listen.assert_called_once_with("127.0.0.1", 1965, mock_tls.return_value)
    assert listener.closed


def test_run_server_uses_cli_arguments():
    """run_server creates its socket from parsed arguments."""
    lifecycle = ServerLifecycle()
    listener = ScriptedListener([], lifecycle)
    args = MagicMock(host="localhost", port=1965)

    with patch.object(
        accept_loop, "create_server_socket", return_value=listener
    ) as mock_create:
        accept_loop.run_server(
            args, accept_loop.ServerConfig(), lifecycle, _noop_handler
        )

    mock_create.assert_called_once_with(args)
    assert listener.closed


def test_worker_start_failure_keeps_loop_running(caplog):
    """A thread that cannot start closes its connection and the loop goes on."""
    caplog.set_level(logging.ERROR)
    lifecycle = ServerLifecycle()
    refused = FakeConnection(b"gemini://x/\r\n")
    served = FakeConnection(b"gemini://x/\r\n")
    listener = ScriptedListener(
        [(refused, ("127.0.0.1", 4003)), (served, ("127.0.0.1", 4004))], lifecycle
    )
    context = WorkerContext(handler=_noop_handler, lifecycle=lifecycle)
    real_start = threading.Thread.start
    attempts = []

    def flaky_start(thread):
        attempts.append(thread)
        if len(attempts) == 1:
            raise RuntimeError("can't start new thread")
        real_start(thread)

    with patch.object(threading.Thread, "start", flaky_start):
        accept_loop.serve(listener, context)

    assert lifecycle.wait_for_workers(5)
    assert refused.closed
    assert bytes(refused.sent) == b""
    assert bytes(served.sent) == b"20 text/gemini\r\n"
    assert not lifecycle.has_worker(attempts[0])
    failures = [
        r for r in caplog.records if getattr(r, "event", None) == "worker_start_failed"
    ]
    assert len(failures) == 1
    assert failures[0].error_type == "RuntimeError"
