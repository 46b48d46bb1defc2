"""
Sign-in handshake.

    IDLE -> CHALLENGE_REQUESTED -> SIGNED -> SUBMITTED -> AUTHENTICATED
                                                        \\-> FAILED

The login challenge is fetched, signed with the keypair derived from the
user key, and exchanged for a ``sid`` session cookie.
"""

import logging
import re
from enum import Enum
from typing import Iterable, Optional

from ..errors import AuthProxyError, ProtocolFailure, ValidationError
from ..models import ApiResponse, AuthOptions, LoginInfo
from ..network.transport import Transport
from .keys import decode_challenge, derive_keys
from .session import SessionStore

logger = logging.getLogger(__name__)

LOGIN_OPTIONS_PATH = "auth/v1/login_options"
LOGIN_PATH = "auth/v1/login"

_SID_PATTERN = re.compile(r"sid=([^;]+)")


class HandshakeState(Enum):
    IDLE = "idle"
    CHALLENGE_REQUESTED = "challenge_requested"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


def extract_session_id(set_cookies: Iterable[str]) -> Optional[str]:
    """Return the ``sid`` value from the first Set-Cookie header carrying one."""
    for header in set_cookies:
        match = _SID_PATTERN.search(header or "")
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def client_headers(store: SessionStore, user_agent: str) -> dict:
    """Device and client identity headers sent with sign-in style requests."""
    return {
        "resolution": "console",
        "device_guid": store.device_id,
        "User-Agent": user_agent,
    }


class AuthHandshake:
    """
    Establishes a session from a user key.

    Talks to the raw transport, never through the session guard, so that
    re-authentication cannot recurse.
    """

    def __init__(self, transport: Transport, store: SessionStore, user_agent: str):
        self._transport = transport
        self._store = store
        self._user_agent = user_agent
        self.state = HandshakeState.IDLE

    async def sign_in(self, user_key: str) -> ApiResponse:
        """
        Run one handshake attempt.

        Returns:
            ApiResponse with the server status string on success, or a
            structured error. The session store is only written on success.
        """
        self.state = HandshakeState.IDLE
        try:
            response = await self._run(user_key)
        except AuthProxyError as e:
            self.state = HandshakeState.FAILED
            logger.warning(f"Sign-in failed: {e.message}")
            return ApiResponse.failure(e)

        if not response.ok:
            self.state = HandshakeState.FAILED
            reason = response.error.message if response.error else response.result
            logger.warning(f"Sign-in rejected: {reason}")
        return response

    async def _run(self, user_key: str) -> ApiResponse:
        if not user_key or not user_key.strip():
            raise ValidationError("User key must be not empty")

        self.state = HandshakeState.CHALLENGE_REQUESTED
        options_response = ApiResponse.from_http(
            await self._transport.request(LOGIN_OPTIONS_PATH, "GET")
        ).parse_result(AuthOptions)
        if options_response.error is not None:
            return ApiResponse(result=None, error=options_response.error)
        options: Optional[AuthOptions] = options_response.result
        if options is None or not options.challenge:
            raise ProtocolFailure("Login options did not contain a challenge")

        signed = derive_keys(user_key, decode_challenge(options.challenge))
        self.state = HandshakeState.SIGNED

        login = LoginInfo(
            challenge_id=options.challenge_id,
            public_key=signed.public_key,
            signature=signed.signature,
            credential=None,
        )
        self.state = HandshakeState.SUBMITTED
        http_response = await self._transport.request(
            LOGIN_PATH,
            "POST",
            headers=client_headers(self._store, self._user_agent),
            body=login.model_dump(),
        )
        response = ApiResponse.from_http(http_response)
        if not response.ok:
            if response.error is None:
                raise ProtocolFailure("Login returned no status")
            return response

        cookies = http_response.set_cookies or [http_response.headers.get("set-cookie", "")]
        session_id = extract_session_id(cookies)
        if session_id is None:
            raise ProtocolFailure("Login succeeded but no session cookie was returned")

        self._store.set_session(session_id)
        self.state = HandshakeState.AUTHENTICATED
        logger.info("Signed in")
        return response
