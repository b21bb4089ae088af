#!/usr/bin/env python3

"""Behaviour tests for the bounded-retry pollers.

These run against the real clock with short intervals, so the timing bounds
are deliberately loose.
"""

from __future__ import annotations

import os
from pathlib import Path
import subprocess
import sys
import textwrap
import threading
import time
from typing import List, Set

import pytest

from pypolaris.core.context import Context
from pypolaris.core.errors import (
    APIError,
    Canceled,
    DeadlineExceeded,
    TerminalFailureError,
    TimeoutExceededError,
    TransientProbeError,
)
from pypolaris.core.poll import ProbeStatus, Status, wait_until_ready, wait_until_terminal


class ScriptedProbe:
    """Probe replaying a script of results; exceptions are raised."""

    def __init__(self, script: List[object], default: object = None) -> None:
        self.script = list(script)
        self.default = default
        self.calls: List[float] = []

    def __call__(self, _ctx: Context) -> object:
        self.calls.append(time.monotonic())
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, BaseException):
            raise item
        return item


def test_ready_on_first_call_probes_once() -> None:
    probe = ScriptedProbe([True])

    assert wait_until_ready(Context.background(), probe, grace_timeout=1.0, poll_interval=0.1) is True
    assert len(probe.calls) == 1


def test_probe_cadence_starts_immediately() -> None:
    probe = ScriptedProbe([False, False, False, True])
    started = time.monotonic()

    wait_until_ready(Context.background(), probe, grace_timeout=1.0, poll_interval=0.05)

    assert len(probe.calls) == 4
    assert probe.calls[0] - started < 0.03
    gaps = [b - a for a, b in zip(probe.calls, probe.calls[1:])]
    assert all(0.03 <= gap <= 0.15 for gap in gaps), gaps


def test_errors_then_not_ready_keeps_polling() -> None:
    script: List[object] = [APIError("Service Unavailable (503)")] * 5 + [False, False, True]
    probe = ScriptedProbe(script)

    assert wait_until_ready(Context.background(), probe, grace_timeout=1.0, poll_interval=0.1) is True
    assert len(probe.calls) == 8


def test_persistent_errors_time_out_after_grace() -> None:
    probe = ScriptedProbe([], default=APIError("Not Found (404)"))
    started = time.monotonic()

    with pytest.raises(TimeoutExceededError) as exc_info:
        wait_until_ready(
            Context.background(),
            probe,
            grace_timeout=1.0,
            poll_interval=0.1,
            description="bootstrap status",
        )

    elapsed = time.monotonic() - started
    assert 0.95 <= elapsed < 1.5
    assert str(exc_info.value).startswith("timeout waiting for bootstrap status: ")
    assert "Not Found (404)" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, TransientProbeError)
    assert exc_info.value.last_error is exc_info.value.__cause__
    assert isinstance(exc_info.value.last_error.__cause__, APIError)


def test_grace_period_is_independent_of_interval() -> None:
    probe = ScriptedProbe([], default=RuntimeError("connection refused"))
    started = time.monotonic()

    with pytest.raises(TimeoutExceededError):
        wait_until_ready(Context.background(), probe, grace_timeout=0.3, poll_interval=5.0)

    assert time.monotonic() - started < 1.0
    assert len(probe.calls) == 1


def test_single_success_resets_grace_period() -> None:
    # Each failure streak lasts about 0.7 s of a 1 s grace period.
    failures: List[object] = [RuntimeError("rebooting")] * 15
    probe = ScriptedProbe(failures + [False] + failures + [True])
    started = time.monotonic()

    assert wait_until_ready(Context.background(), probe, grace_timeout=1.0, poll_interval=0.05) is True
    assert len(probe.calls) == 32
    assert time.monotonic() - started > 1.0


def test_transient_error_records_attempt_and_last_status() -> None:
    probe = ScriptedProbe([ProbeStatus.in_progress("step 1")], default=RuntimeError("gone"))

    with pytest.raises(TimeoutExceededError) as exc_info:
        wait_until_terminal(Context.background(), probe, grace_timeout=0.2, poll_interval=0.05)

    last_error = exc_info.value.last_error
    assert isinstance(last_error, TransientProbeError)
    assert last_error.attempt >= 2
    assert last_error.last_status == ProbeStatus.in_progress("step 1")


def test_terminal_failure_after_progress() -> None:
    script: List[object] = [ProbeStatus.in_progress("configuring")] * 4 + [ProbeStatus.failure("invalid configuration")]
    probe = ScriptedProbe(script)

    with pytest.raises(TerminalFailureError) as exc_info:
        wait_until_terminal(
            Context.background(),
            probe,
            grace_timeout=10.0,
            poll_interval=0.02,
            description="bootstrap",
        )

    assert len(probe.calls) == 5
    assert str(exc_info.value) == "bootstrap failed: invalid configuration"
    assert exc_info.value.reason == "invalid configuration"


def test_terminal_failure_ignores_remaining_grace() -> None:
    probe = ScriptedProbe([RuntimeError("blip"), ProbeStatus.failure("disk error")])
    started = time.monotonic()

    with pytest.raises(TerminalFailureError, match="disk error"):
        wait_until_terminal(Context.background(), probe, grace_timeout=60.0, poll_interval=0.02)

    assert time.monotonic() - started < 0.5


def test_terminal_error_raised_by_probe_is_not_retried() -> None:
    probe = ScriptedProbe([TerminalFailureError("undecodable", reason="bad json")])

    with pytest.raises(TerminalFailureError, match="undecodable"):
        wait_until_ready(Context.background(), probe, grace_timeout=60.0, poll_interval=0.02)

    assert len(probe.calls) == 1


def test_wait_until_terminal_returns_success_status() -> None:
    probe = ScriptedProbe([ProbeStatus.in_progress(), ProbeStatus.success("done")])

    status = wait_until_terminal(Context.background(), probe, grace_timeout=1.0, poll_interval=0.02)

    assert status.status is Status.SUCCESS
    assert status.message == "done"


def test_precanceled_context_never_probes() -> None:
    ctx = Context.background().with_cancel()
    ctx.cancel()
    probe = ScriptedProbe([True])

    with pytest.raises(Canceled):
        wait_until_ready(ctx, probe, grace_timeout=1.0, poll_interval=0.1)

    assert probe.calls == []


def test_cancel_between_ticks() -> None:
    ctx = Context.background().with_cancel()
    probe = ScriptedProbe([], default=False)
    threading.Timer(0.1, ctx.cancel, args=(RuntimeError("stop"),)).start()
    started = time.monotonic()

    with pytest.raises(Canceled) as exc_info:
        wait_until_ready(ctx, probe, grace_timeout=60.0, poll_interval=5.0)

    assert time.monotonic() - started < 1.0
    assert str(exc_info.value.cause) == "stop"


def test_cancel_during_probe() -> None:
    ctx = Context.background().with_cancel()
    release = threading.Event()

    def blocking_probe(_ctx: Context) -> bool:
        release.wait(5.0)
        return True

    threading.Timer(0.1, ctx.cancel).start()
    started = time.monotonic()
    try:
        with pytest.raises(Canceled):
            wait_until_ready(ctx, blocking_probe, grace_timeout=60.0, poll_interval=0.05)
        assert time.monotonic() - started < 1.0
    finally:
        release.set()


def _probe_threads(exclude: Set[threading.Thread]) -> List[threading.Thread]:
    return [t for t in threading.enumerate() if t.name == "pypolaris-probe" and t.is_alive() and t not in exclude]


def test_cancel_during_probe_leaves_no_probe_thread() -> None:
    ctx = Context.background().with_cancel()
    existing = set(threading.enumerate())

    def context_aware_probe(probe_ctx: Context) -> bool:
        probe_ctx.wait(3.0)
        return True

    threading.Timer(0.1, ctx.cancel).start()
    started = time.monotonic()

    with pytest.raises(Canceled):
        wait_until_ready(ctx, context_aware_probe, grace_timeout=60.0, poll_interval=0.05)

    assert time.monotonic() - started < 1.0
    assert _probe_threads(existing) == []


def test_abandoned_probe_runs_on_daemon_thread() -> None:
    ctx = Context.background().with_cancel()
    release = threading.Event()
    existing = set(threading.enumerate())

    def stuck_probe(_ctx: Context) -> bool:
        release.wait(5.0)
        return True

    threading.Timer(0.1, ctx.cancel).start()
    try:
        with pytest.raises(Canceled):
            wait_until_ready(ctx, stuck_probe, grace_timeout=60.0, poll_interval=0.05)
        leftover = _probe_threads(existing)
        assert len(leftover) == 1
        assert leftover[0].daemon is True
    finally:
        release.set()


STUCK_PROBE_SCRIPT = textwrap.dedent(
    """
    import threading
    import time

    from pypolaris.core.context import Context
    from pypolaris.core.errors import Canceled
    from pypolaris.core.poll import wait_until_ready


    def stuck_probe(_ctx):
        time.sleep(10.0)
        return True


    ctx = Context.background().with_cancel()
    threading.Timer(0.1, ctx.cancel).start()
    try:
        wait_until_ready(ctx, stuck_probe, grace_timeout=60.0, poll_interval=0.05)
    except Canceled:
        print("canceled")
    """
)


def test_stuck_probe_does_not_block_interpreter_exit() -> None:
    src = str(Path(__file__).resolve().parents[2] / "src")
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(p for p in (src, env.get("PYTHONPATH")) if p)
    started = time.monotonic()

    result = subprocess.run(
        [sys.executable, "-c", STUCK_PROBE_SCRIPT],
        capture_output=True,
        text=True,
        env=env,
        timeout=30,
    )

    assert result.returncode == 0, result.stderr
    assert result.stdout.strip() == "canceled"
    assert time.monotonic() - started < 5.0


def test_cancel_wins_over_grace_expiry() -> None:
    ctx = Context.background().with_cancel()
    probe = ScriptedProbe([], default=RuntimeError("down"))
    threading.Timer(0.15, ctx.cancel).start()

    with pytest.raises(Canceled) as exc_info:
        wait_until_ready(ctx, probe, grace_timeout=0.3, poll_interval=0.05)

    assert not isinstance(exc_info.value, TimeoutExceededError)


def test_context_deadline_is_not_a_grace_timeout() -> None:
    ctx = Context.background().with_timeout(0.2)
    probe = ScriptedProbe([], default=RuntimeError("down"))

    with pytest.raises(DeadlineExceeded):
        wait_until_ready(ctx, probe, grace_timeout=5.0, poll_interval=0.05)


@pytest.mark.parametrize(
    ("grace_timeout", "poll_interval"),
    [(0, 1.0), (-1.0, 1.0), (1.0, 0), (1.0, -0.5)],
)
def test_rejects_non_positive_configuration(grace_timeout: float, poll_interval: float) -> None:
    with pytest.raises(ValueError):
        wait_until_ready(
            Context.background(),
            ScriptedProbe([True]),
            grace_timeout=grace_timeout,
            poll_interval=poll_interval,
        )


def test_ready_probe_must_return_bool() -> None:
    probe = ScriptedProbe(["yes"])

    with pytest.raises(TypeError, match="cluster probe must return bool, got str"):
        wait_until_ready(
            Context.background(),
            probe,
            grace_timeout=1.0,
            poll_interval=0.05,
            description="cluster",
        )

    assert len(probe.calls) == 1


def test_probe_status_constructors() -> None:
    assert ProbeStatus.in_progress("step 2") == ProbeStatus(Status.IN_PROGRESS, "step 2")
    assert ProbeStatus.success() == ProbeStatus(Status.SUCCESS, "")
    assert ProbeStatus.failure("bad dns") == ProbeStatus(Status.FAILURE, "bad dns")
