"""Cancellation contexts carried by requests.

Cancellation is advisory: transport reads and writes never consult the
context. Handlers that want to stop early poll ``cancelled()`` or block on
``wait()``.
"""

import threading
import time
from typing import Optional


class Context:
    """A cancellation signal with an optional monotonic deadline."""

    def __init__(
        self,
        parent: Optional["Context"] = None,
        deadline: Optional[float] = None,
        cancelable: bool = True,
    ) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: list["Context"] = []
        self._cancelable = cancelable
        if parent is not None and parent.deadline is not None:
            deadline = (
                parent.deadline if deadline is None else min(deadline, parent.deadline)
            )
        self._deadline = deadline
        if parent is not None:
            parent._adopt(self)

    @property
    def deadline(self) -> Optional[float]:
        """Monotonic deadline in seconds, or None when there is none."""
        return self._deadline

    def _adopt(self, child: "Context") -> None:
        if not self._cancelable:
            return
        with self._lock:
            self._children.append(child)
        if self._event.is_set():
            child.cancel()

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        if not self._cancelable:
            return
        self._event.set()
        with self._lock:
            children, self._children = self._children, []
        for child in children:
            child.cancel()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancelled(self) -> bool:
        """Return True once cancelled or past the deadline."""
        if self._event.is_set():
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancellation, the deadline, or ``timeout`` elapses."""
        remaining = self.remaining()
        if remaining is not None:
            timeout = remaining if timeout is None else min(timeout, remaining)
        self._event.wait(timeout)
        return self.cancelled()


_BACKGROUND = Context(cancelable=False)


def background() -> Context:
    """Return the shared context that is never cancelled."""
    return _BACKGROUND


def with_cancel(parent: Optional[Context] = None) -> Context:
    """Derive a context that can be cancelled independently of its parent."""
    return Context(parent if parent is not None else _BACKGROUND)


def with_timeout(parent: Optional[Context], seconds: float) -> Context:
    """Derive a context that also expires ``seconds`` from now."""
    return Context(
        parent if parent is not None else _BACKGROUND,
        deadline=time.monotonic() + seconds,
    )
