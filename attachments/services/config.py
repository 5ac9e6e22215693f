"""
Configuration accessors for the attachments app.

All attachment services read their settings through this module so that
defaults live in one place. Values come from Django settings (which in turn
read environment variables in the project settings module) and are looked up
on every call, so `override_settings` in tests takes effect immediately.

Settings:
    ATTACHMENTS_DEFAULT_DISK: Name of the disk used when none is given
    ATTACHMENTS_DISKS: Mapping of disk name -> disk options (see storage.disks)
    ATTACHMENTS_UUID_PROVIDER: Dotted path (or callable) generating external ids
    ATTACHMENTS_CASCADE_DELETE: Delete stored objects together with records
    ATTACHMENTS_DROPZONE_CHECK_CSRF: Require matching CSRF token on dropzone delete
    ATTACHMENTS_MAX_SIZE_MB: Maximum upload size
    ATTACHMENTS_CLEANUP_DEFAULT_MINUTES: Default age for the orphan sweeper
    ATTACHMENTS_OUTPUT_GATE / _UPLOAD_GATE / _DELETE_GATE: Access predicates
"""

from pathlib import Path
from typing import Any, Dict

from django.conf import settings


DEFAULT_DISK = 'local'
DEFAULT_UUID_PROVIDER = 'attachments.services.identifiers.uuid_v4_base36'
DEFAULT_MAX_SIZE_MB = 25
DEFAULT_CLEANUP_MINUTES = 1440


def get_default_disk_name() -> str:
    return getattr(settings, 'ATTACHMENTS_DEFAULT_DISK', DEFAULT_DISK)


def get_disks_config() -> Dict[str, Dict[str, Any]]:
    """
    Get the configured disks.

    Falls back to a single local disk rooted at BASE_DIR/data/attachments
    when ATTACHMENTS_DISKS is not set.

    Returns:
        Mapping of disk name to its options dictionary
    """
    disks = getattr(settings, 'ATTACHMENTS_DISKS', None)
    if disks:
        return disks
    base_dir = Path(getattr(settings, 'BASE_DIR', '.'))
    return {
        DEFAULT_DISK: {
            'driver': 'local',
            'root': base_dir / 'data' / 'attachments',
        }
    }


def get_uuid_provider_path():
    return getattr(settings, 'ATTACHMENTS_UUID_PROVIDER', DEFAULT_UUID_PROVIDER)


def is_cascade_delete_enabled() -> bool:
    return bool(getattr(settings, 'ATTACHMENTS_CASCADE_DELETE', True))


def is_dropzone_csrf_check_enabled() -> bool:
    return bool(getattr(settings, 'ATTACHMENTS_DROPZONE_CHECK_CSRF', True))


def get_max_size_bytes() -> int:
    max_size_mb = getattr(settings, 'ATTACHMENTS_MAX_SIZE_MB', DEFAULT_MAX_SIZE_MB)
    return int(max_size_mb * 1024 * 1024)


def get_cleanup_default_minutes() -> int:
    return int(getattr(settings, 'ATTACHMENTS_CLEANUP_DEFAULT_MINUTES', DEFAULT_CLEANUP_MINUTES))


def get_gate_setting(action: str):
    """
    Get the configured predicate for an access gate action.

    Args:
        action: One of 'output', 'upload', 'delete'

    Returns:
        Dotted path, callable, or None (allow everything)
    """
    return getattr(settings, f'ATTACHMENTS_{action.upper()}_GATE', None)
