"""Server lifecycle: stop/drain flags and worker tracking."""

import threading
import time

from gemini.domain.correlation_id import component_logger

LIFECYCLE_LOGGER = component_logger("lifecycle")


class ServerLifecycle:
    """Tracks worker threads and the accept loop's stop signal."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._draining = threading.Event()
        self._workers: set[threading.Thread] = set()

    def should_stop(self) -> bool:
        """True once the accept loop should exit."""
        return self._draining.is_set()

    def is_draining(self) -> bool:
        return self._draining.is_set()

    def begin_draining(self) -> None:
        """Stop accepting; in-flight workers run to completion."""
        if self._draining.is_set():
            return
        self._draining.set()
        LIFECYCLE_LOGGER.info(
            "Beginning graceful shutdown",
            extra={
                "event": "shutdown_started",
                "active_workers": self.active_worker_count(),
            },
        )

    def register_worker(self, thread: threading.Thread) -> None:
        """Track ``thread``; called before the thread starts."""
        with self._lock:
            self._workers.add(thread)

    def release_worker(self, thread: threading.Thread) -> None:
        with self._lock:
            self._workers.discard(thread)

    def has_worker(self, thread: threading.Thread) -> bool:
        with self._lock:
            return thread in self._workers

    def active_worker_count(self) -> int:
        with self._lock:
            return len(self._workers)

    def wait_for_workers(self, timeout: float) -> bool:
        """Join tracked workers; False if some outlive ``timeout`` seconds."""
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                active = [worker for worker in self._workers if worker.is_alive()]
            if not active:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                LIFECYCLE_LOGGER.warning(
                    "Shutdown timeout exceeded",
                    extra={"event": "shutdown_timeout", "active_workers": len(active)},
                )
                return False
            active[0].join(timeout=min(0.1, remaining))
