"""Bounded-retry polling with error latching.

Both wait functions call a probe on a fixed cadence, starting immediately.
Probe failures are transient: they are latched on a ``RetryTimer`` and only
surface as ``TimeoutExceededError`` once they have persisted for the whole grace
period. A single successful probe ends the failure streak. The caller's
``Context`` is observed between ticks and while a probe is in flight.
"""

from __future__ import annotations

import logging
import math
import threading
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Tuple, TypeVar

from pypolaris.core.context import Context
from pypolaris.core.errors import (
    Canceled,
    TerminalFailureError,
    TimeoutExceededError,
    TransientProbeError,
)
from pypolaris.core.errtimer import RetryTimer

T = TypeVar("T")

_LOGGER = logging.getLogger(__name__)

_PROBE_THREAD_NAME = "pypolaris-probe"
# How long a canceled poll waits for its in-flight probe to notice.
_PROBE_EXIT_GRACE_S = 0.2


class Status(str, Enum):
    """Status reported by a terminal-mode probe."""

    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


@dataclass(frozen=True)
class ProbeStatus:
    """Result of one terminal-mode probe.

    Attributes:
        status: Reported status.
        message: Progress message, or the failure reason for ``FAILURE``.
    """

    status: Status
    message: str = ""

    @classmethod
    def in_progress(cls, message: str = "") -> ProbeStatus:
        """Operation still running; keep polling."""
        return cls(Status.IN_PROGRESS, message)

    @classmethod
    def success(cls, message: str = "") -> ProbeStatus:
        """Operation finished successfully."""
        return cls(Status.SUCCESS, message)

    @classmethod
    def failure(cls, reason: str) -> ProbeStatus:
        """Operation failed for good; ``reason`` becomes the error message."""
        return cls(Status.FAILURE, reason)


def wait_until_ready(
    ctx: Context,
    probe: Callable[[Context], bool],
    *,
    grace_timeout: float,
    poll_interval: float,
    description: str = "condition",
) -> bool:
    """Poll ``probe`` until it reports ready.

    Args:
        ctx: Cancellation scope, also passed to every probe call.
        probe: Returns True when the awaited condition holds and False
            otherwise. Any other return type is a programming error.
        grace_timeout: Seconds of continuous probe failure tolerated.
        poll_interval: Seconds between probe calls.
        description: What is being waited for, used in error messages.

    Returns:
        bool: Always True; failures are raised.

    Raises:
        TimeoutExceededError: Probe failures persisted for ``grace_timeout``.
        TerminalFailureError: The probe raised a terminal failure.
        Canceled: ``ctx`` was canceled or its deadline passed.
        ValueError: Invalid timeout or interval.
        TypeError: The probe returned something other than a bool.
    """

    def evaluate(ready: bool) -> Tuple[bool, bool]:
        if not isinstance(ready, bool):
            raise TypeError(f"{description} probe must return bool, got {type(ready).__name__}")
        return ready, True

    return _poll(
        ctx,
        probe,
        evaluate,
        grace_timeout=grace_timeout,
        poll_interval=poll_interval,
        description=description,
        outcome="ready",
    )


def wait_until_terminal(
    ctx: Context,
    probe: Callable[[Context], ProbeStatus],
    *,
    grace_timeout: float,
    poll_interval: float,
    description: str = "operation",
) -> ProbeStatus:
    """Poll ``probe`` until it reports a terminal status.

    ``IN_PROGRESS`` keeps polling, ``SUCCESS`` returns and ``FAILURE`` raises
    immediately regardless of the remaining grace period.

    Args:
        ctx: Cancellation scope, also passed to every probe call.
        probe: Returns the current ``ProbeStatus`` of the operation.
        grace_timeout: Seconds of continuous probe failure tolerated.
        poll_interval: Seconds between probe calls.
        description: What is being waited for, used in error messages.

    Returns:
        ProbeStatus: The successful status.

    Raises:
        TerminalFailureError: The probe reported ``FAILURE``.
        TimeoutExceededError: Probe failures persisted for ``grace_timeout``.
        Canceled: ``ctx`` was canceled or its deadline passed.
        ValueError: Invalid timeout or interval.
    """

    def evaluate(status: ProbeStatus) -> Tuple[bool, ProbeStatus | None]:
        if status.status is Status.FAILURE:
            raise TerminalFailureError(f"{description} failed: {status.message}", reason=status.message)
        if status.status is Status.SUCCESS:
            return True, status
        _LOGGER.debug("%s in progress: %s", description, status.message)
        return False, None

    return _poll(
        ctx,
        probe,
        evaluate,
        grace_timeout=grace_timeout,
        poll_interval=poll_interval,
        description=description,
        outcome="success",
    )


def _poll(
    ctx: Context,
    probe: Callable[[Context], T],
    evaluate: Callable[[T], Tuple[bool, Any]],
    *,
    grace_timeout: float,
    poll_interval: float,
    description: str,
    outcome: str,
) -> Any:
    """Drive the shared polling state machine.

    Args:
        ctx: Cancellation scope.
        probe: Probe operation.
        evaluate: Maps a probe result to ``(done, value)``; may raise
            ``TerminalFailureError``.
        grace_timeout: Seconds of continuous probe failure tolerated.
        poll_interval: Seconds between probe calls.
        description: What is being waited for.
        outcome: Result logged when the wait ends successfully.

    Returns:
        Any: ``value`` from the first evaluation that reports done.
    """
    if grace_timeout <= 0:
        raise ValueError(f"grace_timeout must be positive: {grace_timeout}")
    if poll_interval <= 0:
        raise ValueError(f"poll_interval must be positive: {poll_interval}")

    task_id = uuid.uuid4().hex[:8]
    timer = RetryTimer(grace_timeout)
    started_at = time.monotonic()
    attempt = 0
    last_status: Any = None

    def timed_out() -> TimeoutExceededError:
        return TimeoutExceededError(
            f"timeout waiting for {description}: {timer.err}",
            last_error=timer.err,
        )

    try:
        while True:
            ctx.raise_if_done()

            attempt += 1
            attempt_started_at = time.monotonic()
            try:
                result = _run_probe(ctx, probe)
            except TerminalFailureError:
                raise
            except Exception as exc:
                ctx.raise_if_done()
                err = TransientProbeError(
                    f"attempt {attempt}: {exc}",
                    attempt=attempt,
                    last_status=last_status,
                )
                err.__cause__ = exc
                timer.record(err)
                _log_step(
                    logging.DEBUG,
                    task_id=task_id,
                    target=description,
                    result=f"attempt_{attempt}_error_{exc.__class__.__name__}",
                    started_at=attempt_started_at,
                )
            else:
                last_status = result
                timer.record(None)
                done, value = evaluate(result)
                _log_step(
                    logging.DEBUG,
                    task_id=task_id,
                    target=description,
                    result=f"attempt_{attempt}_{'done' if done else 'pending'}",
                    started_at=attempt_started_at,
                )
                if done:
                    _log_step(logging.INFO, task_id=task_id, target=description, result=outcome, started_at=started_at)
                    return value

            if timer.expired():
                raise timed_out() from timer.err

            wait_s = _next_tick(started_at, poll_interval) - time.monotonic()
            remaining = timer.remaining()
            if remaining is not None:
                wait_s = min(wait_s, remaining)
            if ctx.wait(max(wait_s, 0.0)):
                ctx.raise_if_done()
            if timer.expired():
                raise timed_out() from timer.err
    except Canceled:
        _log_step(logging.INFO, task_id=task_id, target=description, result="canceled", started_at=started_at)
        raise
    except TimeoutExceededError:
        _log_step(logging.INFO, task_id=task_id, target=description, result="timeout", started_at=started_at)
        raise
    except TerminalFailureError:
        _log_step(logging.INFO, task_id=task_id, target=description, result="terminal", started_at=started_at)
        raise


def _run_probe(ctx: Context, probe: Callable[[Context], T]) -> T:
    """Run one probe on its own daemon thread while watching ``ctx``.

    When ``ctx`` finishes first the probe is abandoned. A probe that honours
    ``ctx`` gets ``_PROBE_EXIT_GRACE_S`` to return before this raises; one
    that does not is left to finish on a daemon thread, which never holds up
    interpreter exit.

    Args:
        ctx: Cancellation scope.
        probe: Probe operation.

    Returns:
        T: Probe result.

    Raises:
        Canceled: ``ctx`` finished before the probe returned.
    """
    outcome: Dict[str, Any] = {}
    finished = threading.Event()
    wake = threading.Event()

    def target() -> None:
        try:
            outcome["result"] = probe(ctx)
        except BaseException as exc:
            # re-raised on the polling thread
            outcome["error"] = exc
        finally:
            finished.set()
            wake.set()

    thread = threading.Thread(target=target, name=_PROBE_THREAD_NAME, daemon=True)
    remove_callback = ctx.add_done_callback(wake.set)
    try:
        thread.start()
        while not finished.is_set():
            ctx.raise_if_done()
            wake.wait(ctx.remaining())
    finally:
        remove_callback()
        if thread.is_alive():
            thread.join(_PROBE_EXIT_GRACE_S)

    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]


def _next_tick(started_at: float, interval: float) -> float:
    """Return the first tick after now, ticks being spaced from ``started_at``."""
    elapsed = time.monotonic() - started_at
    return started_at + (math.floor(elapsed / interval) + 1) * interval


def _log_step(level: int, *, task_id: str, target: str, result: str, started_at: float) -> None:
    """Write a key-step poll log.

    Args:
        level: Logging level.
        task_id: Poll operation id.
        target: What is being waited for.
        result: Result summary.
        started_at: Monotonic start of the step.
    """
    duration_ms = int((time.monotonic() - started_at) * 1000)
    _LOGGER.log(
        level,
        "[poll] task_id=%s target=%s result=%s duration_ms=%s",
        task_id,
        target,
        result,
        duration_ms,
    )
