"""
Per-client session state.

Holds the current session id (or None) and the installation's device id.
Only the handshake (on success) and the session guard (on expiry) write it.
"""

import logging
import uuid
from typing import Optional

from ..config import DeviceRegistry

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Session id plus a stable device id.

    ``generation`` increases on every session change so that concurrent
    callers can tell whether the session moved on since they last used it.
    """

    def __init__(self, device_registry: Optional[DeviceRegistry] = None):
        self._session_id: Optional[str] = None
        self._device_id: Optional[str] = None
        self._device_registry = device_registry
        self.generation = 0

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def is_active(self) -> bool:
        return self._session_id is not None

    def set_session(self, session_id: str) -> None:
        if not session_id:
            raise ValueError("session_id must be non-empty")
        self._session_id = session_id
        self.generation += 1
        logger.debug(f"Session established (generation {self.generation})")

    def clear(self) -> None:
        if self._session_id is not None:
            logger.debug("Session cleared")
        self._session_id = None
        self.generation += 1

    @property
    def device_id(self) -> str:
        """Device id, loaded or generated once and then fixed for this store."""
        if self._device_id is None:
            if self._device_registry is not None:
                self._device_id = self._device_registry.get_or_create()
            else:
                self._device_id = str(uuid.uuid4())
        return self._device_id

    def cookie_header(self) -> dict:
        """``Cookie`` header for the active session, or an empty dict."""
        if self._session_id is None:
            return {}
        return {"Cookie": f"sid={self._session_id}"}
