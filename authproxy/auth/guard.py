"""
Session guard for protocol calls.

Attaches the session cookie to every call. When the server answers 401 the
session is dropped, one re-authentication is attempted and the call is
retried once. Re-authentication is single-flight: callers that saw the same
expired session wait for the attempt already in progress.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..network.transport import HttpResponse, Transport
from .session import SessionStore

logger = logging.getLogger(__name__)

Reauthenticator = Callable[[], Awaitable[bool]]


class SessionGuard:
    """
    Wraps a transport with cookie injection and a retry-once-on-401 policy.

    Args:
        transport: Raw transport
        store: Session store shared with the handshake
        reauthenticate: Coroutine returning True when a new session was
            established; None disables re-authentication
    """

    def __init__(
        self,
        transport: Transport,
        store: SessionStore,
        reauthenticate: Optional[Reauthenticator] = None,
    ):
        self._transport = transport
        self._store = store
        self._reauthenticate = reauthenticate
        self._lock = asyncio.Lock()
        self.reauth_attempts = 0

    async def _send(
        self,
        path: str,
        method: str,
        headers: Optional[Dict[str, Optional[str]]],
        body: Any,
    ) -> HttpResponse:
        merged = dict(headers or {})
        merged.update(self._store.cookie_header())
        return await self._transport.request(path, method, headers=merged, body=body)

    async def request(
        self,
        path: str,
        method: str = "GET",
        headers: Optional[Dict[str, Optional[str]]] = None,
        body: Any = None,
    ) -> HttpResponse:
        """
        Send a protocol call with the session cookie.

        Returns the retried response after a successful re-authentication,
        otherwise the original 401 response.

        Raises:
            TransportError: if the server cannot be reached
        """
        generation = self._store.generation
        response = await self._send(path, method, headers, body)
        if response.status != 401:
            return response

        logger.info(f"Session expired on {method} {path}")
        if not await self._refresh(generation):
            return response

        return await self._send(path, method, headers, body)

    async def _refresh(self, seen_generation: int) -> bool:
        async with self._lock:
            if self._store.generation != seen_generation:
                # Another caller already handled this expiry.
                return self._store.is_active

            self._store.clear()
            if self._reauthenticate is None:
                return False

            self.reauth_attempts += 1
            refreshed = await self._reauthenticate()
            if refreshed and self._store.is_active:
                logger.info("Re-authenticated after session expiry")
                return True

            logger.warning("Re-authentication failed")
            # Advance the generation so waiting callers reuse this outcome.
            self._store.clear()
            return False
