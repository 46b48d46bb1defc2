"""
Shared fixtures: an in-memory transport that records calls.
"""

import asyncio
import base64
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest

from authproxy.auth.session import SessionStore
from authproxy.config import DeviceRegistry
from authproxy.network.transport import HttpResponse


CHALLENGE_B64 = base64.urlsafe_b64encode(b"login-challenge-bytes").rstrip(b"=").decode()


def json_response(
    result: Any = None,
    error: Optional[dict] = None,
    status: int = 200,
    set_cookie: Optional[str] = None,
) -> HttpResponse:
    """Build an API envelope response."""
    headers = {"content-type": "application/json"}
    cookies = []
    if set_cookie:
        headers["set-cookie"] = set_cookie
        cookies.append(set_cookie)
    return HttpResponse(
        status=status,
        reason="OK" if status < 400 else "Error",
        headers=headers,
        set_cookies=cookies,
        body=json.dumps({"result": result, "error": error}).encode(),
    )


def status_response(status: int) -> HttpResponse:
    reason = {401: "Unauthorized", 500: "Internal Server Error"}.get(status, "Error")
    return HttpResponse(status=status, reason=reason, body=b"")


@dataclass
class Call:
    path: str
    method: str
    headers: Dict[str, Any]
    body: Any

    @property
    def route(self) -> str:
        return self.path.split("?")[0]


class FakeTransport:
    """
    Scripted transport.

    Responses are queued per route (path without query). The last queued
    response for a route is reused once the queue is down to one item.
    """

    def __init__(self):
        self.routes: Dict[str, List[Any]] = {}
        self.calls: List[Call] = []
        self.stream_calls: List[Call] = []
        self.events: asyncio.Queue = asyncio.Queue()
        self.stream_error: Optional[Exception] = None
        self.closed = False

    def add(self, route: str, *responses: Any) -> None:
        self.routes.setdefault(route, []).extend(responses)

    def calls_to(self, route: str) -> List[Call]:
        return [c for c in self.calls if c.route == route]

    async def request(self, path, method="GET", headers=None, body=None) -> HttpResponse:
        call = Call(path, method, dict(headers or {}), body)
        self.calls.append(call)
        queue = self.routes.get(call.route)
        if not queue:
            raise AssertionError(f"Unexpected request: {method} {path}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def stream(self, path, headers=None):
        self.stream_calls.append(Call(path, "GET", dict(headers or {}), None))
        if self.stream_error is not None:
            raise self.stream_error
        while True:
            item = await self.events.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True


def login_routes(transport: FakeTransport, sid: str = "abc123") -> None:
    """Script a successful login handshake."""
    transport.add(
        "auth/v1/login_options",
        json_response({"challenge": CHALLENGE_B64, "challenge_id": "ch-1"}),
    )
    transport.add(
        "auth/v1/login",
        json_response("Success", set_cookie=f"sid={sid}; Path=/; HttpOnly"),
    )


async def wait_until(predicate, timeout: float = 1.0) -> bool:
    """Poll ``predicate`` until it is true or the timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def registry(tmp_path):
    return DeviceRegistry(tmp_path / "authProxyConfig.json")


@pytest.fixture
def store(registry):
    return SessionStore(registry)
