"""
Attachment Storage

Storage adapters ("disks") holding attachment bytes: local filesystem and
S3 compatible object storage.
"""

from .base import StorageAdapter
from .disks import get_disk, register_disk, reset_disks
from .local import LocalDiskStorage
from .paths import build_storage_key, sanitize_filename

__all__ = [
    'StorageAdapter',
    'LocalDiskStorage',
    'get_disk',
    'register_disk',
    'reset_disks',
    'build_storage_key',
    'sanitize_filename',
]
