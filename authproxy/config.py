"""
Configuration management for the AuthProxy SDK.

Handles:
- API base URL and client settings (environment-sourced)
- Device identifier persistence
"""

import json
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import logging

from . import __version__

logger = logging.getLogger(__name__)

# Environment variables
ENV_BASE_URL = "AUTH_API_URL"
ENV_USER_KEY = "AUTH_PROXY_USER_KEY"
ENV_CONFIG_PATH = "AUTH_PROXY_CONFIG"
ENV_TIMEOUT = "AUTH_PROXY_TIMEOUT"

DEFAULT_CONFIG_FILE = "authProxyConfig.json"
DEFAULT_TIMEOUT = 30.0
DEFAULT_USER_AGENT = f"AuthProxy SDK v.{__version__}"


def normalize_base_url(url: Optional[str]) -> str:
    """Base URLs are joined with relative paths, so they must end with '/'."""
    if not url:
        return ""
    return url if url.endswith("/") else url + "/"


class DeviceRegistry:
    """
    File-backed store for the per-installation device identifier.

    The file is a JSON object; the identifier lives under ``deviceGuid`` and
    any other keys are preserved on write.
    """

    KEY = "deviceGuid"

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else Path.cwd() / DEFAULT_CONFIG_FILE

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get_device_id(self) -> Optional[str]:
        """Return the stored device id, or None if there is none yet."""
        value = self._read().get(self.KEY)
        return str(value) if value else None

    def set_device_id(self, device_id: str) -> None:
        """Persist the device id. Failures are logged, not raised."""
        data = self._read()
        data[self.KEY] = device_id
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error(f"Error trying to write {self.path}: {e}")
            return
        logger.debug(f"Device id saved to {self.path}")

    def get_or_create(self) -> str:
        """Load the device id, generating and persisting a UUID4 if missing."""
        device_id = self.get_device_id()
        if device_id:
            return device_id
        device_id = str(uuid.uuid4())
        self.set_device_id(device_id)
        return device_id


@dataclass
class Config:
    """
    Main SDK configuration.

    Usually built from the environment with ``Config.from_env()``.
    """
    base_url: str = ""
    user_key: Optional[str] = None
    config_path: Path = field(default_factory=lambda: Path.cwd() / DEFAULT_CONFIG_FILE)
    timeout: float = DEFAULT_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self):
        self.base_url = normalize_base_url(self.base_url)
        self.config_path = Path(self.config_path)

    @property
    def device_registry(self) -> DeviceRegistry:
        return DeviceRegistry(self.config_path)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        timeout = DEFAULT_TIMEOUT
        raw_timeout = os.environ.get(ENV_TIMEOUT)
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                logger.warning(f"Ignoring invalid {ENV_TIMEOUT}={raw_timeout!r}")

        config_path = os.environ.get(ENV_CONFIG_PATH)

        return cls(
            base_url=os.environ.get(ENV_BASE_URL, ""),
            user_key=os.environ.get(ENV_USER_KEY) or None,
            config_path=Path(config_path) if config_path else Path.cwd() / DEFAULT_CONFIG_FILE,
            timeout=timeout,
        )


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
