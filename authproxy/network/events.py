"""
Server-push event channel.

Subscribes to the server-sent event stream at ``auth/v1/Subscribe``. The
session cookie is attached once, when the stream is opened. Messages are
decoded as JSON where possible and either handed to a consumer callback or
queued for ``messages()``.

Lifecycle: CLOSED -> OPEN -> CLOSED. There is no automatic reconnect; after
a drop or an explicit close the channel can be opened again.
"""

import asyncio
import inspect
import json
import logging
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Union

from ..auth.session import SessionStore
from ..errors import AuthProxyError, TransportError
from .transport import Transport

logger = logging.getLogger(__name__)

SUBSCRIBE_PATH = "auth/v1/Subscribe"

MessageHandler = Callable[[Any], Union[Awaitable[None], None]]
ErrorHandler = Callable[[AuthProxyError], None]

_END = object()


class ChannelState(Enum):
    CLOSED = "closed"
    OPEN = "open"


def decode_message(payload: str) -> Any:
    """Decode a pushed payload as JSON, or return it unchanged."""
    try:
        return json.loads(payload)
    except ValueError as e:
        logger.warning(f"Delivering undecodable event payload as-is: {e}")
        return payload


class EventChannel:
    """
    Push subscription bound to one session store.

    Usage:
        channel = EventChannel(transport, store)
        if await channel.open():
            async for message in channel.messages():
                ...
        await channel.close()
    """

    def __init__(
        self,
        transport: Transport,
        store: SessionStore,
        path: str = SUBSCRIBE_PATH,
        on_error: Optional[ErrorHandler] = None,
    ):
        self._transport = transport
        self._store = store
        self._path = path
        self._on_error = on_error
        self._consumer: Optional[MessageHandler] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self.state = ChannelState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state is ChannelState.OPEN

    async def open(self, consumer: Optional[MessageHandler] = None) -> bool:
        """
        Start receiving pushed messages.

        Args:
            consumer: Sync or async callable receiving each decoded message.
                Without one, messages are available from ``messages()``.

        Returns:
            False if there is no active session or the channel is already open
        """
        if self.is_open:
            logger.debug("Event channel already open")
            return False
        if not self._store.is_active:
            logger.warning("Cannot subscribe without an active session")
            return False

        self._consumer = consumer
        self._queue = asyncio.Queue()
        self.state = ChannelState.OPEN
        self._task = asyncio.create_task(self._pump(self._store.cookie_header(), self._queue))
        return True

    async def close(self) -> bool:
        """
        Stop the subscription and release the stream.

        Returns:
            False if the channel was not open
        """
        if not self.is_open:
            return False

        self.state = ChannelState.CLOSED
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._queue is not None:
            self._queue.put_nowait(_END)
        logger.info("Event channel closed")
        return True

    async def messages(self) -> AsyncIterator[Any]:
        """Yield queued messages until the current subscription ends."""
        queue = self._queue
        if queue is None:
            return
        while True:
            item = await queue.get()
            if item is _END:
                return
            yield item

    async def _deliver(self, message: Any, queue: asyncio.Queue) -> None:
        if self._consumer is None:
            queue.put_nowait(message)
            return
        try:
            result = self._consumer(message)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Event consumer failed")

    async def _pump(self, headers: Dict[str, str], queue: asyncio.Queue) -> None:
        try:
            async for payload in self._transport.stream(self._path, headers=headers):
                if not self.is_open:
                    break
                await self._deliver(decode_message(payload), queue)
            logger.info("Event stream ended")
        except AuthProxyError as e:
            logger.error(f"Event stream error: {e.message}")
            if self._on_error is not None:
                self._on_error(e)
        except Exception as e:
            logger.exception("Event stream failed")
            if self._on_error is not None:
                self._on_error(TransportError(str(e) or e.__class__.__name__))
        finally:
            queue.put_nowait(_END)
            if self._task is asyncio.current_task():
                self._task = None
                self.state = ChannelState.CLOSED
