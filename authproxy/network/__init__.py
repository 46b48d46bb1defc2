"""
Network layer for AuthProxy.

This module provides:
- The transport interface and its aiohttp implementation
- Server-sent event parsing
- The push event channel
"""

from .transport import (
    AiohttpTransport,
    HttpResponse,
    Transport,
    iter_event_data,
)
from .events import (
    ChannelState,
    EventChannel,
    decode_message,
)

__all__ = [
    "AiohttpTransport",
    "HttpResponse",
    "Transport",
    "iter_event_data",
    "ChannelState",
    "EventChannel",
    "decode_message",
]
