"""
Disk registry.

Resolves disk names (as stored in Attachment.storage_disk) to configured
storage adapters. Adapters are built once per process from
ATTACHMENTS_DISKS and cached; the cache is dropped whenever Django settings
change (override_settings in tests).

Example configuration:
    ATTACHMENTS_DISKS = {
        'local': {'driver': 'local', 'root': BASE_DIR / 'data' / 'attachments'},
        'public': {'driver': 'local', 'root': BASE_DIR / 'public', 'base_url': '/public'},
        's3': {'driver': 's3', 'bucket': 'attachments', 'region': 'eu-central-1'},
    }
"""

import logging
import threading
from typing import Dict, Optional

from django.core.signals import setting_changed
from django.dispatch import receiver

from .. import config as config_service
from ..exceptions import InvalidArgument
from .base import StorageAdapter
from .local import LocalDiskStorage

logger = logging.getLogger(__name__)

_disks: Dict[str, StorageAdapter] = {}
_disks_lock = threading.Lock()


def _build_disk(name: str, options: dict) -> StorageAdapter:
    options = dict(options)
    driver = options.pop('driver', 'local')

    if driver == 'local':
        return LocalDiskStorage(
            root=options['root'],
            base_url=options.get('base_url'),
            prefix=options.get('prefix', ''),
            name=name,
        )
    if driver == 's3':
        # Imported lazily so boto3 is only loaded when an S3 disk is configured
        from .s3 import S3Storage
        return S3Storage(name=name, **options)

    raise InvalidArgument(f"Unsupported storage driver '{driver}' for disk '{name}'")


def get_disk(name: Optional[str] = None) -> StorageAdapter:
    """
    Get the storage adapter for a disk.

    Args:
        name: Disk name (defaults to ATTACHMENTS_DEFAULT_DISK)

    Returns:
        Configured StorageAdapter

    Raises:
        InvalidArgument: If the disk is not configured
    """
    name = name or config_service.get_default_disk_name()

    disk = _disks.get(name)
    if disk is not None:
        return disk

    with _disks_lock:
        disk = _disks.get(name)
        if disk is None:
            options = config_service.get_disks_config().get(name)
            if options is None:
                raise InvalidArgument(f"Storage disk '{name}' is not configured")
            disk = _build_disk(name, options)
            _disks[name] = disk
            logger.debug(f"Initialized storage disk {disk!r}")
    return disk


def register_disk(name: str, disk: StorageAdapter) -> None:
    """Register a prebuilt adapter under a disk name."""
    disk.name = name
    with _disks_lock:
        _disks[name] = disk


def reset_disks() -> None:
    """Drop all cached adapters."""
    with _disks_lock:
        _disks.clear()


@receiver(setting_changed)
def _reset_disks_on_setting_change(sender, setting, **kwargs):
    if setting.startswith('ATTACHMENTS_'):
        reset_disks()
