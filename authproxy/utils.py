"""
Small formatting helpers shared by the client and CLI.
"""

import re
import secrets
import string
import time

_PHONE_SEPARATORS = re.compile(r"[\s\-.()]")
_RANDOM_ALPHABET = string.ascii_letters + string.digits


def format_as_number(text: str) -> str:
    """
    Normalise a phone number to its digits.

    A single leading ``+`` and the usual separators (spaces, dashes, dots,
    parentheses) are accepted. Anything else makes the input invalid.

    Returns:
        The digit string, or ``""`` if the input is not a number
    """
    if not text:
        return ""

    stripped = _PHONE_SEPARATORS.sub("", text.strip())
    if stripped.startswith("+"):
        stripped = stripped[1:]

    if not stripped.isdigit() or not stripped.isascii():
        return ""
    return stripped


def format_time(epoch_seconds: int) -> str:
    """Render a Unix timestamp as local ``HH:MM``."""
    return time.strftime("%H:%M", time.localtime(epoch_seconds))


def random_text(length: int = 64) -> str:
    """Random alphanumeric text from the OS CSPRNG."""
    return "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(length))
