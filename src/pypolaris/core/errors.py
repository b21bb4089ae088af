"""Error taxonomy shared by the polling core and the CDM client."""

from __future__ import annotations

from typing import Any


class PolarisError(Exception):
    """Base error for pypolaris."""


class TransientProbeError(PolarisError):
    """A single probe attempt failed.

    Counts against the grace period of the poll operation and is only surfaced
    as the cause of a ``TimeoutExceededError``.
    """

    def __init__(self, message: str, *, attempt: int, last_status: Any = None) -> None:
        """Initialize the error.

        Args:
            message: Error message.
            attempt: 1-based probe attempt number that failed.
            last_status: Last status observed from a successful probe, if any.
        """
        super().__init__(message)
        self.attempt = attempt
        self.last_status = last_status


class TimeoutExceededError(PolarisError):
    """Transient probe errors persisted for the whole grace period."""

    def __init__(self, message: str, *, last_error: BaseException | None = None) -> None:
        """Initialize the error.

        Args:
            message: Error message.
            last_error: Most recent transient error.
        """
        super().__init__(message)
        self.last_error = last_error


class TerminalFailureError(PolarisError):
    """The target reported an authoritative, non-retryable failure."""

    def __init__(self, message: str, *, reason: str = "") -> None:
        """Initialize the error.

        Args:
            message: Error message.
            reason: Failure reason as reported by the target.
        """
        super().__init__(message)
        self.reason = reason


class ResponseDecodeError(TerminalFailureError):
    """A successful response carried a payload that could not be decoded."""


class PreconditionFailedError(PolarisError):
    """The target is already in a state that makes waiting meaningless."""


class Canceled(PolarisError):
    """The caller's context was canceled."""

    def __init__(self, message: str = "context canceled", *, cause: BaseException | None = None) -> None:
        """Initialize the error.

        Args:
            message: Error message.
            cause: Cause supplied to ``Context.cancel``.
        """
        super().__init__(message)
        self.cause = cause


class DeadlineExceeded(Canceled):
    """The caller's context deadline passed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class RequestFailedError(PolarisError):
    """An HTTP request could not be performed."""


class APIError(PolarisError):
    """An HTTP request returned an unexpected status code."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialize the error.

        Args:
            message: Error message.
            status_code: HTTP status code returned by the endpoint.
        """
        super().__init__(message)
        self.status_code = status_code


class BootstrapError(PolarisError):
    """The cluster bootstrap could not be started."""


class ConfigError(PolarisError):
    """A configuration document is invalid."""
