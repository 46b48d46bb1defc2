"""
User key derivation using Ed25519 cryptography.

A user key is the only long-lived credential. The signing keypair is derived
from it on demand for each challenge and never stored.
"""

import base64
import binascii
import hashlib
import re
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from ..errors import ValidationError
from ..utils import random_text

_HEX_SEED = re.compile(r"^[0-9a-fA-F]{64}$")


def b64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def decode_challenge(text: str) -> bytes:
    """
    Decode a server challenge.

    Accepts base64url or standard base64, with or without padding.

    Raises:
        ValidationError: if the challenge is empty or not base64
    """
    if not text or not text.strip():
        raise ValidationError("Challenge must be not empty")

    normalized = text.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        data = base64.b64decode(normalized, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Challenge is not valid base64: {e}") from e

    if not data:
        raise ValidationError("Challenge must be not empty")
    return data


def _seed_from_secret(secret: str) -> bytes:
    # Minted keys are sha256 hex digests and map straight to a 32-byte seed.
    if _HEX_SEED.match(secret):
        return bytes.fromhex(secret)
    return hashlib.sha256(secret.encode("utf-8")).digest()


@dataclass(frozen=True)
class SignedChallenge:
    """Public key and challenge signature, both unpadded base64url."""
    public_key: str
    signature: str


def derive_keys(secret: str, challenge: bytes) -> SignedChallenge:
    """
    Derive the Ed25519 keypair for ``secret`` and sign ``challenge``.

    Pure and deterministic: the same inputs always give the same output.

    Args:
        secret: The user key
        challenge: Raw challenge bytes from the server

    Raises:
        ValidationError: on an empty secret or empty challenge
    """
    if not secret or not secret.strip():
        raise ValidationError("User key must be not empty")
    if not isinstance(challenge, (bytes, bytearray)) or not challenge:
        raise ValidationError("Challenge must be non-empty bytes")

    private_key = Ed25519PrivateKey.from_private_bytes(_seed_from_secret(secret))
    public_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )
    signature = private_key.sign(bytes(challenge))

    return SignedChallenge(
        public_key=b64url_encode(public_bytes),
        signature=b64url_encode(signature),
    )


def generate_user_key() -> str:
    """Mint a new user key: sha256 hex digest of fresh random text."""
    return hashlib.sha256(random_text().encode("utf-8")).hexdigest()
