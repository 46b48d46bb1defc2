"""
AuthProxy client.

One client owns one session: a session store, the sign-in handshake, the
enrollment flow, a session guard for every other call and the push channel.

Example:
    >>> async with AuthProxyClient(user_key, "https://auth.example.com/") as client:
    ...     if await client.connect():
    ...         info = await client.get_info()
"""

import logging
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urlencode

from .auth.enrollment import EnrollmentFlow
from .auth.guard import SessionGuard
from .auth.handshake import AuthHandshake
from .auth.session import SessionStore
from .config import Config, get_config, normalize_base_url
from .errors import AuthProxyError
from .models import ApiResponse, AuthOptions, ServerInfo, UserKey, UserLoginLog, UserSession
from .network.events import EventChannel, ErrorHandler, MessageHandler
from .network.transport import AiohttpTransport, Transport

logger = logging.getLogger(__name__)

GET_INFO_PATH = "auth/v1/get_info"
LOGIN_LOG_PATH = "auth/v1/login_log"
SESSIONS_PATH = "auth/v1/sessions"
CLOSE_SESSIONS_PATH = "auth/v1/close_sessions"
USER_KEYS_PATH = "auth/v1/user_keys"
REMOVE_KEY_PATH = "auth/v1/remove_key"
LOGOUT_PATH = "auth/v1/logout"


class AuthProxyClient:
    """
    Client for the AuthProxy passwordless authentication API.

    Args:
        user_key: Secret used by ``connect()`` and for re-authentication
        base_url: API base URL (defaults to ``AUTH_API_URL``)
        transport: Custom transport; an aiohttp transport is created if None
        config: SDK configuration (defaults to the global config)
        on_event_error: Called when the push channel drops
    """

    def __init__(
        self,
        user_key: Optional[str] = None,
        base_url: Optional[str] = None,
        *,
        transport: Optional[Transport] = None,
        config: Optional[Config] = None,
        on_event_error: Optional[ErrorHandler] = None,
    ):
        self.config = config or get_config()
        self.base_url = normalize_base_url(base_url) if base_url else self.config.base_url
        self._user_key = user_key if user_key is not None else self.config.user_key

        self.transport: Transport = transport or AiohttpTransport(
            self.base_url, timeout=self.config.timeout
        )
        self.store = SessionStore(self.config.device_registry)
        self.handshake = AuthHandshake(self.transport, self.store, self.config.user_agent)
        self.enrollment = EnrollmentFlow(self.transport, self.store, self.config.user_agent)
        self.guard = SessionGuard(self.transport, self.store, self._reauthenticate)
        self.events = EventChannel(self.transport, self.store, on_error=on_event_error)

    async def __aenter__(self) -> "AuthProxyClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ============ Session ============

    def get_session_id(self) -> Optional[str]:
        """Current session id, or None before the first successful sign-in."""
        return self.store.session_id

    @property
    def is_connected(self) -> bool:
        return self.store.is_active

    @property
    def device_id(self) -> str:
        return self.store.device_id

    async def sign_in_user_key(self, user_key: str) -> ApiResponse:
        """
        Start a new session with ``user_key``.

        On success the key is remembered for re-authentication.
        """
        response = await self.handshake.sign_in(user_key)
        if response.ok:
            self._user_key = user_key
        return response

    async def connect(self, force: bool = False) -> bool:
        """
        Ensure a session exists, signing in with the configured user key.

        Args:
            force: Sign in again even if a session is active
        """
        if not force and self.store.is_active:
            return True
        if not self._user_key:
            logger.warning("No user key configured, cannot connect")
            return False
        response = await self.sign_in_user_key(self._user_key)
        return response.ok

    async def _reauthenticate(self) -> bool:
        if not self._user_key:
            return False
        response = await self.handshake.sign_in(self._user_key)
        return response.ok

    async def logout(self) -> ApiResponse:
        """Close the current session on the server and locally."""
        response = await self._call(LOGOUT_PATH)
        if response.ok:
            await self.events.close()
            self.store.clear()
        return response

    # ============ Enrollment ============

    async def reset_password(self, phone: str) -> ApiResponse:
        """Request a reset code for ``phone``; returns the server status."""
        return await self.enrollment.request_reset(phone)

    async def initialize_new_key(self, email_code: str) -> ApiResponse:
        """Fetch registration options; ``result`` is an ``AuthOptions``."""
        return await self.enrollment.initialize_enrollment(email_code)

    async def create_user_key(self, otp: str, options: AuthOptions) -> ApiResponse:
        """Mint and register a new user key; ``result`` is the key."""
        return await self.enrollment.finalize_enrollment(otp, options)

    # ============ Push events ============

    async def subscribe(self, handler: Optional[MessageHandler] = None) -> bool:
        """Open the push channel. Requires an active session."""
        return await self.events.open(handler)

    async def unsubscribe(self) -> bool:
        """Close the push channel."""
        return await self.events.close()

    def messages(self) -> AsyncIterator[Any]:
        """Pushed messages of the current subscription (when no handler is set)."""
        return self.events.messages()

    # ============ Account ============

    async def get_info(self) -> ApiResponse:
        return (await self._call(GET_INFO_PATH)).parse_result(ServerInfo)

    async def get_login_log(self) -> ApiResponse:
        """Last login operations."""
        return (await self._call(LOGIN_LOG_PATH)).parse_result(UserLoginLog, many=True)

    async def get_sessions(self, current: bool = False) -> ApiResponse:
        params = {"current": "true"} if current else {}
        return (await self._call(SESSIONS_PATH, params)).parse_result(UserSession, many=True)

    async def close_sessions(self, session_id: Optional[int] = None) -> ApiResponse:
        """Close one session by id, or all other sessions when None."""
        params = {"id": session_id} if session_id is not None else {}
        return await self._call(CLOSE_SESSIONS_PATH, params)

    async def get_user_keys(self) -> ApiResponse:
        return (await self._call(USER_KEYS_PATH)).parse_result(UserKey, many=True)

    async def remove_key(self, key_id: int) -> ApiResponse:
        return await self._call(REMOVE_KEY_PATH, {"key_id": key_id})

    async def _call(self, path: str, params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        if params:
            path = f"{path}?{urlencode(params)}"
        try:
            http_response = await self.guard.request(path, "GET")
        except AuthProxyError as e:
            return ApiResponse.failure(e)
        return ApiResponse.from_http(http_response)

    async def close(self) -> None:
        """Close the push channel and the transport."""
        await self.events.close()
        await self.transport.close()
