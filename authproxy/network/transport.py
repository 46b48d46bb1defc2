"""
HTTP transport for the AuthProxy API.

The protocol code only depends on the ``Transport`` interface; the default
implementation is backed by aiohttp.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional, Protocol, Union

import aiohttp

from ..errors import TransportError, UnauthenticatedError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


@dataclass
class HttpResponse:
    """A fully-read HTTP response."""
    status: int
    reason: str = ""
    headers: Dict[str, str] = field(default_factory=dict)  # lower-cased names
    set_cookies: List[str] = field(default_factory=list)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(Protocol):
    """Narrow interface the protocol code talks to."""

    async def request(
        self,
        path: str,
        method: str = "GET",
        headers: Optional[Dict[str, Optional[str]]] = None,
        body: Any = None,
    ) -> HttpResponse:
        ...

    def stream(
        self,
        path: str,
        headers: Optional[Dict[str, Optional[str]]] = None,
    ) -> AsyncIterator[str]:
        ...

    async def close(self) -> None:
        ...


def _clean_headers(*sources: Optional[Dict[str, Optional[str]]]) -> Dict[str, str]:
    merged: Dict[str, str] = {}
    for source in sources:
        for key, value in (source or {}).items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = str(value)
    return merged


async def iter_event_data(lines: AsyncIterable[Union[bytes, str]]) -> AsyncIterator[str]:
    """
    Parse a ``text/event-stream`` into event payloads.

    Yields the joined ``data`` lines of each event when its terminating blank
    line arrives. Comments and non-data fields are skipped; an unterminated
    event at end of stream is dropped.
    """
    data_lines: List[str] = []
    async for raw in lines:
        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")

        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue

        if line.startswith(":"):
            continue

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if name == "data":
            data_lines.append(value)


class AiohttpTransport:
    """
    Transport over a shared aiohttp ClientSession.

    Cookies are managed explicitly by the session store, so the session uses
    a dummy cookie jar.

    Usage:
        transport = AiohttpTransport("https://auth.example.com/")
        response = await transport.request("auth/v1/login_options")
        await transport.close()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                cookie_jar=aiohttp.DummyCookieJar(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            self._owns_session = True
        return self._session

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def request(
        self,
        path: str,
        method: str = "GET",
        headers: Optional[Dict[str, Optional[str]]] = None,
        body: Any = None,
    ) -> HttpResponse:
        """
        Send a request and read the whole response.

        Raises:
            TransportError: if the server cannot be reached
        """
        session = await self._get_session()
        data = None
        if body is not None:
            data = body if isinstance(body, (str, bytes)) else json.dumps(body)

        try:
            async with session.request(
                method,
                self._url(path),
                headers=_clean_headers(DEFAULT_HEADERS, headers),
                data=data,
            ) as resp:
                payload = await resp.read()
                return HttpResponse(
                    status=resp.status,
                    reason=resp.reason or "",
                    headers={k.lower(): v for k, v in resp.headers.items()},
                    set_cookies=resp.headers.getall("Set-Cookie", []),
                    body=payload,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"{method} {path} failed: {e!r}")
            raise TransportError(str(e) or e.__class__.__name__) from e

    async def stream(
        self,
        path: str,
        headers: Optional[Dict[str, Optional[str]]] = None,
    ) -> AsyncIterator[str]:
        """
        Open a server-sent event stream and yield event payloads.

        Raises:
            UnauthenticatedError: if the server rejects the session
            TransportError: on connection failure or a non-200 status
        """
        session = await self._get_session()
        stream_headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}

        try:
            async with session.get(
                self._url(path),
                headers=_clean_headers(stream_headers, headers),
                timeout=aiohttp.ClientTimeout(total=None, sock_read=None),
            ) as resp:
                if resp.status == 401:
                    raise UnauthenticatedError()
                if resp.status != 200:
                    raise TransportError(
                        f"Status: {resp.status}. {resp.reason}", code=resp.status
                    )
                logger.info(f"Event stream opened: {path}")
                async for data in iter_event_data(resp.content):
                    yield data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(str(e) or e.__class__.__name__) from e

    async def close(self) -> None:
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
