#!/usr/bin/env python3

"""Fake HTTP session shared by the CDM tests."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Tuple, Union

import requests

Handler = Callable[[Dict[str, Any]], "DummyResponse"]


class DummyResponse:
    def __init__(self, status_code: int, body: Union[bytes, str, Dict[str, Any], List[Any], None] = None) -> None:
        self.status_code = status_code
        if body is None:
            self.content = b""
        elif isinstance(body, bytes):
            self.content = body
        elif isinstance(body, str):
            self.content = body.encode("utf-8")
        else:
            self.content = json.dumps(body).encode("utf-8")


class FakeSession:
    """Stands in for ``requests.Session``; routes requests to handlers.

    Handlers are keyed by ``(method, path_with_query)`` where the path is the
    part after ``/api``. A handler is either a response or a callable taking
    the request kwargs.
    """

    def __init__(self, routes: Dict[Tuple[str, str], Any] | None = None) -> None:
        self.headers: Dict[str, str] = {}
        self.verify = True
        self.auth: Any = None
        self.routes = routes or {}
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    def request(self, **kwargs: Any) -> DummyResponse:
        self.requests.append(kwargs)
        path = kwargs["url"].split("/api", 1)[1]
        handler = self.routes.get((kwargs["method"], path))
        if handler is None:
            raise requests.ConnectionError(f"no route for {kwargs['method']} {path}")
        if isinstance(handler, list):
            handler = handler.pop(0) if len(handler) > 1 else handler[0]
        if isinstance(handler, BaseException):
            raise handler
        if callable(handler):
            return handler(kwargs)
        return handler

    def close(self) -> None:
        self.closed = True

    def paths(self, method: str | None = None) -> List[str]:
        return [
            r["url"].split("/api", 1)[1]
            for r in self.requests
            if method is None or r["method"] == method
        ]
