"""HTTP client for the CDM appliance REST API."""

from __future__ import annotations

from enum import Enum
from http import HTTPStatus
import json
import logging
import os
import posixpath
import time
from types import TracebackType
from typing import Any, Tuple, Type
import uuid

import requests
from requests.auth import AuthBase, HTTPBasicAuth
from requests.exceptions import RequestException

from pypolaris.core.context import Context
from pypolaris.core.errors import RequestFailedError

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
    "User-Agent": "pypolaris",
}


class APIVersion(str, Enum):
    """CDM API versions."""

    V1 = "v1"
    V2 = "v2"
    INTERNAL = "internal"


class BearerAuth(AuthBase):
    """Bearer token authorization for ``requests``."""

    def __init__(self, token: str) -> None:
        self.token = token

    def __call__(self, r: requests.PreparedRequest) -> requests.PreparedRequest:
        r.headers["Authorization"] = f"Bearer {self.token}"
        return r


def status_text(code: int) -> str:
    """Return the standard reason phrase for an HTTP status code.

    Args:
        code: HTTP status code.

    Returns:
        str: Reason phrase, empty for unknown codes.
    """
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return ""


def error_message(body: bytes, code: int) -> str:
    """Build an error message from a CDM response.

    CDM error bodies are JSON objects with ``errorType`` and ``message``. When
    both are present they are used, otherwise the raw body is appended.

    Args:
        body: Raw response body.
        code: HTTP status code.

    Returns:
        str: Error message, e.g. ``Not Found (404): errorType: message``.
    """
    msg = f"{status_text(code)} ({code})"

    try:
        payload = json.loads(body)
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error_type = payload.get("errorType")
        message = payload.get("message")
        if error_type and message:
            return f"{msg}: {error_type}: {message}"

    text = body.decode("utf-8", errors="replace") if body else ""
    if text:
        msg = f"{msg}: {text}"
    return msg


def _from_env(name: str) -> str:
    """Read an environment variable, trying the lower-case name first."""
    return os.getenv(name.lower()) or os.getenv(name.upper()) or ""


class Client:
    """Client used to make API calls to a CDM node.

    Example:
        client = Client.from_token("10.0.0.10", "token")
        body, code = client.get(ctx, APIVersion.V1, "/cluster/me")
    """

    def __init__(
        self,
        node_ip: str,
        *,
        auth: AuthBase | None = None,
        allow_insecure_tls: bool = False,
        timeout_s: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            node_ip: Address of a CDM node, optionally with a port.
            auth: ``requests`` authorization applied to every request.
            allow_insecure_tls: Skip TLS certificate verification.
            timeout_s: Timeout in seconds for each request.
            session: Optional pre-built session.

        Raises:
            ValueError: ``node_ip`` is empty.
        """
        if not node_ip:
            raise ValueError("node ip required")

        self.node_ip = node_ip
        self.timeout_s = timeout_s
        self._logger = logging.getLogger(__name__)
        self._session = session if session is not None else requests.Session()
        self._session.headers.update(DEFAULT_HEADERS)
        self._session.verify = not allow_insecure_tls
        if auth is not None:
            self._session.auth = auth

    @classmethod
    def from_credentials(
        cls,
        node_ip: str,
        username: str,
        password: str,
        *,
        allow_insecure_tls: bool = False,
        timeout_s: float = 60.0,
    ) -> Client:
        """Create a client using basic authentication.

        Raises:
            ValueError: A required argument is empty.
        """
        if not node_ip:
            raise ValueError("node ip required")
        if not username:
            raise ValueError("username required")
        if not password:
            raise ValueError("password required")
        return cls(
            node_ip,
            auth=HTTPBasicAuth(username, password),
            allow_insecure_tls=allow_insecure_tls,
            timeout_s=timeout_s,
        )

    @classmethod
    def from_token(
        cls,
        node_ip: str,
        token: str,
        *,
        allow_insecure_tls: bool = False,
        timeout_s: float = 60.0,
    ) -> Client:
        """Create a client using a bearer token.

        Raises:
            ValueError: A required argument is empty.
        """
        if not node_ip:
            raise ValueError("node ip required")
        if not token:
            raise ValueError("authentication token required")
        return cls(
            node_ip,
            auth=BearerAuth(token),
            allow_insecure_tls=allow_insecure_tls,
            timeout_s=timeout_s,
        )

    @classmethod
    def from_env(cls, *, allow_insecure_tls: bool = False, timeout_s: float = 60.0) -> Client:
        """Create a client from the environment.

        Reads ``RUBRIK_CDM_NODE_IP``, ``RUBRIK_CDM_TOKEN``,
        ``RUBRIK_CDM_USERNAME`` and ``RUBRIK_CDM_PASSWORD``; lower-case names
        win over upper-case ones. A token takes precedence over credentials.

        Args:
            allow_insecure_tls: Skip TLS certificate verification.
            timeout_s: Timeout in seconds for each request.

        Returns:
            Client: Configured client.
        """
        node_ip = _from_env("RUBRIK_CDM_NODE_IP")

        token = _from_env("RUBRIK_CDM_TOKEN")
        if token:
            return cls.from_token(node_ip, token, allow_insecure_tls=allow_insecure_tls, timeout_s=timeout_s)

        return cls.from_credentials(
            node_ip,
            _from_env("RUBRIK_CDM_USERNAME"),
            _from_env("RUBRIK_CDM_PASSWORD"),
            allow_insecure_tls=allow_insecure_tls,
            timeout_s=timeout_s,
        )

    def get(self, ctx: Context, version: APIVersion | str, endpoint: str) -> Tuple[bytes, int]:
        """Send a GET request and return the response body and status code."""
        return self._request(ctx, "GET", version, endpoint)

    def post(self, ctx: Context, version: APIVersion | str, endpoint: str, payload: Any = None) -> Tuple[bytes, int]:
        """Send a POST request and return the response body and status code."""
        return self._request(ctx, "POST", version, endpoint, payload)

    def put(self, ctx: Context, version: APIVersion | str, endpoint: str, payload: Any = None) -> Tuple[bytes, int]:
        """Send a PUT request and return the response body and status code."""
        return self._request(ctx, "PUT", version, endpoint, payload)

    def patch(self, ctx: Context, version: APIVersion | str, endpoint: str, payload: Any = None) -> Tuple[bytes, int]:
        """Send a PATCH request and return the response body and status code."""
        return self._request(ctx, "PATCH", version, endpoint, payload)

    def delete(self, ctx: Context, version: APIVersion | str, endpoint: str) -> Tuple[bytes, int]:
        """Send a DELETE request and return the response body and status code."""
        return self._request(ctx, "DELETE", version, endpoint)

    def url(self, version: APIVersion | str, endpoint: str) -> str:
        """Build the URL of an API endpoint.

        Args:
            version: API version.
            endpoint: Endpoint path, optionally with a query string.

        Returns:
            str: Absolute URL.

        Raises:
            ValueError: ``version`` is not a known API version.
        """
        try:
            api_version = APIVersion(version)
        except ValueError:
            raise ValueError(f"invalid API version: {version}") from None

        path, sep, query = endpoint.partition("?")
        path = posixpath.normpath("/" + path.lstrip("/"))
        return f"https://{self.node_ip}/api/{api_version.value}{path}{sep}{query}"

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()

    def __enter__(self) -> Client:
        return self

    def __exit__(
        self,
        exc_type: Type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _request(
        self,
        ctx: Context,
        method: str,
        version: APIVersion | str,
        endpoint: str,
        payload: Any = None,
    ) -> Tuple[bytes, int]:
        """Send a request bounded by the client timeout and ``ctx``.

        Args:
            ctx: Cancellation scope; its remaining time caps the request timeout.
            method: HTTP method.
            version: API version.
            endpoint: Endpoint path.
            payload: JSON-serialisable body.

        Returns:
            Tuple[bytes, int]: Response body and status code.

        Raises:
            Canceled: ``ctx`` is done before or during the request.
            RequestFailedError: The request could not be performed.
        """
        url = self.url(version, endpoint)
        ctx.raise_if_done()

        timeout = self.timeout_s
        remaining = ctx.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)

        request_kwargs: dict[str, Any] = {"method": method, "url": url, "timeout": timeout}
        if payload is not None:
            request_kwargs["json"] = payload

        task_id = uuid.uuid4().hex[:8]
        target = f"{method} {url}"
        started_at = time.monotonic()
        remove_abort = ctx.add_done_callback(self._abort)
        try:
            response = self._session.request(**request_kwargs)
        except RequestException as exc:
            self._log_step(task_id=task_id, target=target, result=f"error_{exc.__class__.__name__}", started_at=started_at)
            err = ctx.err()
            if err is not None:
                raise err from exc
            raise RequestFailedError(f"failed to perform request: {exc}") from exc
        finally:
            remove_abort()

        self._log_step(task_id=task_id, target=target, result=str(response.status_code), started_at=started_at)
        return response.content, response.status_code

    def _abort(self) -> None:
        """Close the session's connections when the request context is canceled."""
        self._logger.debug("[cdm] context done, closing session connections")
        self._session.close()

    def _log_step(self, *, task_id: str, target: str, result: str, started_at: float) -> None:
        """Write key-step request logs.

        Args:
            task_id: Generated task id.
            target: HTTP method and URL.
            result: Status code or error summary.
            started_at: Monotonic start of the request.
        """
        self._logger.debug(
            "[cdm] task_id=%s target=%s result=%s duration_ms=%s",
            task_id,
            target,
            result,
            int((time.monotonic() - started_at) * 1000),
        )
