"""
Key enrollment.

Three caller-driven steps that mint and register a new user key:

1. ``request_reset(phone)`` - the server sends an out-of-band code
2. ``initialize_enrollment(email_code)`` - fetch a registration challenge
3. ``finalize_enrollment(otp, options)`` - mint, sign and register the key

A failed step returns an error; callers must not continue to the next one.
None of the steps touch the session store.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from ..errors import AuthProxyError, ProtocolFailure, ValidationError
from ..models import ApiResponse, AuthOptions, RegisterKeyInfo
from ..network.transport import Transport
from ..utils import format_as_number
from .handshake import client_headers
from .keys import decode_challenge, derive_keys, generate_user_key
from .session import SessionStore

logger = logging.getLogger(__name__)

RESET_PASSWORD_PATH = "auth/v1/reset_password"
REGISTER_OPTIONS_PATH = "auth/v1/register_options"
REGISTER_KEY_PATH = "auth/v1/register_key"

OTP_LENGTH = 6


class EnrollmentFlow:
    """Reset code -> registration challenge -> new key submission."""

    def __init__(self, transport: Transport, store: SessionStore, user_agent: str):
        self._transport = transport
        self._store = store
        self._user_agent = user_agent

    async def request_reset(self, phone: str) -> ApiResponse:
        """
        Ask the server to send a reset code for ``phone``.

        Returns:
            ApiResponse with the server status string
        """
        number = format_as_number(phone or "")
        if not number:
            return ApiResponse.failure(ValidationError("Phone must be a valid number"))

        try:
            http_response = await self._transport.request(
                f"{RESET_PASSWORD_PATH}?{urlencode({'phone': number})}",
                "GET",
                headers={**client_headers(self._store, self._user_agent), **self._store.cookie_header()},
            )
        except AuthProxyError as e:
            return ApiResponse.failure(e)
        return ApiResponse.from_http(http_response)

    async def initialize_enrollment(self, email_code: str) -> ApiResponse:
        """
        Fetch registration options for the code received out of band.

        Returns:
            ApiResponse whose result is an ``AuthOptions``
        """
        if not email_code or not email_code.strip():
            return ApiResponse.failure(ValidationError("Email code must be not empty"))

        try:
            http_response = await self._transport.request(
                f"{REGISTER_OPTIONS_PATH}?{urlencode({'code': email_code.strip()})}",
                "GET",
                headers=self._store.cookie_header(),
            )
        except AuthProxyError as e:
            return ApiResponse.failure(e)
        return ApiResponse.from_http(http_response).parse_result(AuthOptions)

    async def finalize_enrollment(self, otp: str, options: Optional[AuthOptions]) -> ApiResponse:
        """
        Mint a user key and register its public key with the server.

        Args:
            otp: One-time password delivered for this enrollment
            options: Result of ``initialize_enrollment``

        Returns:
            ApiResponse whose result is the new user key. The key is only
            returned when the server accepted it.
        """
        if not otp or not otp.strip():
            return ApiResponse.failure(ValidationError("OTP must be not empty"))
        if len(otp.strip()) != OTP_LENGTH:
            logger.debug(f"OTP has {len(otp.strip())} characters, expected {OTP_LENGTH}")

        try:
            return await self._register(otp.strip(), options)
        except AuthProxyError as e:
            logger.warning(f"Key registration failed: {e.message}")
            return ApiResponse.failure(e)

    async def _register(self, otp: str, options: Optional[AuthOptions]) -> ApiResponse:
        if options is None or options.fido2_options is None or not options.fido2_options.challenge:
            raise ValidationError("Registration options do not contain a challenge")

        challenge = decode_challenge(options.fido2_options.challenge)
        user_key = generate_user_key()
        signed = derive_keys(user_key, challenge)

        payload = RegisterKeyInfo(
            challenge_id=options.challenge_id,
            code=otp,
            public_key=signed.public_key,
            signature=signed.signature,
        )
        response = ApiResponse.from_http(await self._transport.request(
            REGISTER_KEY_PATH, "POST", headers=self._store.cookie_header(), body=payload.model_dump()
        ))
        if not response.ok:
            if response.error is None:
                raise ProtocolFailure("Key registration returned no status")
            return ApiResponse(result=None, error=response.error, headers=response.headers)

        logger.info("New user key registered")
        return ApiResponse(result=user_key, error=None, headers=response.headers)
