from pypolaris.core.context import Context
from pypolaris.core.errors import (
    APIError,
    BootstrapError,
    Canceled,
    ConfigError,
    DeadlineExceeded,
    PolarisError,
    PreconditionFailedError,
    RequestFailedError,
    ResponseDecodeError,
    TerminalFailureError,
    TimeoutExceededError,
    TransientProbeError,
)
from pypolaris.core.errtimer import RetryTimer
from pypolaris.core.poll import ProbeStatus, Status, wait_until_ready, wait_until_terminal

__all__ = [
    "APIError",
    "BootstrapError",
    "Canceled",
    "ConfigError",
    "Context",
    "DeadlineExceeded",
    "PolarisError",
    "PreconditionFailedError",
    "ProbeStatus",
    "RequestFailedError",
    "ResponseDecodeError",
    "RetryTimer",
    "Status",
    "TerminalFailureError",
    "TimeoutExceededError",
    "TransientProbeError",
    "wait_until_ready",
    "wait_until_terminal",
]
