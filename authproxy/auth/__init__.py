"""
Authentication for AuthProxy.

Provides:
- User key derivation (Ed25519 keypairs from a secret)
- Session state
- Sign-in handshake and key enrollment
- Session guard (re-authentication on expiry)
"""

from .keys import (
    SignedChallenge,
    b64url_encode,
    decode_challenge,
    derive_keys,
    generate_user_key,
)
from .session import SessionStore
from .handshake import (
    AuthHandshake,
    HandshakeState,
    extract_session_id,
)
from .enrollment import EnrollmentFlow
from .guard import SessionGuard

__all__ = [
    # Keys
    "SignedChallenge",
    "b64url_encode",
    "decode_challenge",
    "derive_keys",
    "generate_user_key",
    # Session
    "SessionStore",
    "AuthHandshake",
    "HandshakeState",
    "extract_session_id",
    "EnrollmentFlow",
    "SessionGuard",
]
