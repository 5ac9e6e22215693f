"""
External identifier generation.

Every attachment gets an opaque external identifier used in URLs and as the
key of the deferred binding flow. The generator is pluggable through
ATTACHMENTS_UUID_PROVIDER, either a callable or a dotted path to one:

    ATTACHMENTS_UUID_PROVIDER = 'myproject.ids.sequential_id'

A custom provider must return unique, URL-safe strings ([A-Za-z0-9_-]) of
at most MAX_EXTERNAL_ID_LENGTH characters.
"""

import re
import uuid
from typing import Callable

from django.utils.module_loading import import_string

from . import config as config_service
from .exceptions import InvalidArgument

MAX_EXTERNAL_ID_LENGTH = 64

BASE36_ALPHABET = '0123456789abcdefghijklmnopqrstuvwxyz'

_EXTERNAL_ID_RE = re.compile(r'^[A-Za-z0-9_-]+$')


def to_base36(value: int) -> str:
    """Render a non-negative integer in lower-case base 36."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return '0'
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return ''.join(reversed(digits))


def uuid_v4_base36() -> str:
    """Random UUID v4 (122 random bits) rendered in base 36, at most 25 chars."""
    return to_base36(uuid.uuid4().int)


def uuid_v4_hex() -> str:
    """Random UUID v4 rendered as 32 hex characters."""
    return uuid.uuid4().hex


def get_provider() -> Callable[[], str]:
    """
    Resolve the configured identifier provider.

    Raises:
        InvalidArgument: If the setting does not name a callable
    """
    provider = config_service.get_uuid_provider_path()
    if isinstance(provider, str):
        try:
            provider = import_string(provider)
        except ImportError as e:
            raise InvalidArgument(f"Cannot import identifier provider '{provider}'") from e
    if not callable(provider):
        raise InvalidArgument("ATTACHMENTS_UUID_PROVIDER must be a callable or a dotted path to one")
    return provider


def generate() -> str:
    """
    Generate a new external identifier with the configured provider.

    Returns:
        Identifier string

    Raises:
        InvalidArgument: If the provider returns an unusable value
    """
    value = get_provider()()
    if not isinstance(value, str) or not value:
        raise InvalidArgument("Identifier provider returned an empty value")
    if len(value) > MAX_EXTERNAL_ID_LENGTH or not _EXTERNAL_ID_RE.match(value):
        raise InvalidArgument("Identifier provider returned a malformed value")
    return value


def is_well_formed(value: str) -> bool:
    return bool(value) and len(value) <= MAX_EXTERNAL_ID_LENGTH and bool(_EXTERNAL_ID_RE.match(value))
