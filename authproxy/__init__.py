"""
AuthProxy - passwordless challenge-response authentication client.

A user key deterministically derives an Ed25519 keypair; the server's
challenge is signed with it and exchanged for a session cookie.

Example:
    >>> from authproxy import AuthProxyClient
    >>> client = AuthProxyClient(user_key, "https://auth.example.com/")
    >>> await client.connect()
    >>> info = await client.get_info()
"""

__version__ = "1.0.0"

from .config import Config, get_config
from .client import AuthProxyClient
from .errors import (
    AuthProxyError,
    ErrorKind,
    ProtocolFailure,
    TransportError,
    UnauthenticatedError,
    ValidationError,
)
from .models import ApiError, ApiResponse, AuthOptions

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "AuthProxyClient",
    "AuthProxyError",
    "ErrorKind",
    "ProtocolFailure",
    "TransportError",
    "UnauthenticatedError",
    "ValidationError",
    "ApiError",
    "ApiResponse",
    "AuthOptions",
]
