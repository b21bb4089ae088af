"""Cancellation scope passed through blocking SDK calls.

A ``Context`` is done when it is canceled, when its deadline passes or when its
parent is done. Deadlines are plain monotonic timestamps checked on access, so
no timer thread is involved.
"""

from __future__ import annotations

import threading
import time
from types import TracebackType
from typing import Callable

from pypolaris.core.errors import Canceled, DeadlineExceeded


class Context:
    """Cancelable scope with an optional deadline.

    Example:
        with Context.background().with_timeout(300) as ctx:
            cdm.bootstrap.wait_for_bootstrap(ctx, request_id)
    """

    def __init__(self, parent: Context | None = None, deadline: float | None = None) -> None:
        """Initialize a context.

        Args:
            parent: Parent context. The child is done whenever the parent is.
            deadline: Monotonic timestamp after which the context is done.
        """
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)

        self._parent = parent
        self._deadline = deadline
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._err: Canceled | None = None
        self._callbacks: list[Callable[[], None]] = []
        self._remove_from_parent: Callable[[], None] | None = None

        if parent is not None:
            self._remove_from_parent = parent.add_done_callback(self._on_parent_done)

    @classmethod
    def background(cls) -> Context:
        """Return a context that is never done on its own."""
        return cls()

    def with_cancel(self) -> Context:
        """Return a child context that can be canceled independently."""
        return Context(parent=self)

    def with_timeout(self, seconds: float) -> Context:
        """Return a child context that is done after ``seconds``.

        Args:
            seconds: Relative timeout in seconds.

        Returns:
            Context: Child context.
        """
        return Context(parent=self, deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> float | None:
        """Monotonic deadline, or ``None`` when unbounded."""
        return self._deadline

    def remaining(self) -> float | None:
        """Return seconds left before the deadline, ``None`` when unbounded."""
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def cancel(self, cause: BaseException | None = None) -> None:
        """Cancel the context and all of its children.

        Args:
            cause: Optional cause exposed on the resulting ``Canceled`` error.
        """
        self._finish(Canceled(cause=cause))

    def err(self) -> Canceled | None:
        """Return the cancellation error, or ``None`` while the context is live."""
        if self._err is None and self._deadline is not None and time.monotonic() >= self._deadline:
            self._finish(DeadlineExceeded())
        return self._err

    def done(self) -> bool:
        """Return True when the context is done."""
        return self.err() is not None

    def raise_if_done(self) -> None:
        """Raise the cancellation error when the context is done."""
        err = self.err()
        if err is not None:
            raise err

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the context is done or ``timeout`` elapses.

        Args:
            timeout: Maximum seconds to wait. ``None`` waits until done.

        Returns:
            bool: True when the context is done.
        """
        if self.done():
            return True
        end = None if timeout is None else time.monotonic() + timeout
        while True:
            wait_s = self.remaining()
            if end is not None:
                left = end - time.monotonic()
                wait_s = left if wait_s is None else min(wait_s, left)
            if wait_s is not None and wait_s <= 0:
                return self.done()
            self._event.wait(wait_s)
            if self.done():
                return True

    def add_done_callback(self, fn: Callable[[], None]) -> Callable[[], None]:
        """Register ``fn`` to run once when the context is canceled.

        Callbacks run on cancellation and on a deadline observed through
        ``err``; a callback registered on a done context runs immediately.

        Args:
            fn: Callback without arguments.

        Returns:
            Callable[[], None]: Function that unregisters the callback.
        """
        with self._lock:
            if self._err is None:
                self._callbacks.append(fn)
                return lambda: self._remove_callback(fn)
        fn()
        return lambda: None

    def _remove_callback(self, fn: Callable[[], None]) -> None:
        with self._lock:
            if fn in self._callbacks:
                self._callbacks.remove(fn)

    def _on_parent_done(self) -> None:
        parent_err = self._parent.err() if self._parent is not None else None
        if isinstance(parent_err, DeadlineExceeded):
            self._finish(DeadlineExceeded())
            return
        self._finish(Canceled(cause=parent_err.cause if parent_err is not None else None))

    def _finish(self, err: Canceled) -> None:
        with self._lock:
            if self._err is not None:
                return
            self._err = err
            callbacks, self._callbacks = self._callbacks, []
        self._event.set()
        if self._remove_from_parent is not None:
            self._remove_from_parent()
        for callback in callbacks:
            callback()

    def __enter__(self) -> Context:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cancel()
