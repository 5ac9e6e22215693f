"""
Local filesystem disk
"""

import logging
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union
from urllib.parse import quote

from ..exceptions import NotFound, StorageFailure
from .base import FILE_CHUNK_SIZE, StorageAdapter, iter_content
from .paths import build_storage_key, get_absolute_path

logger = logging.getLogger(__name__)


class LocalDiskStorage(StorageAdapter):
    """
    Stores attachments below a root directory on the local filesystem.

    Objects are only publicly addressable when a base_url is configured
    (e.g. a directory served by the web server); otherwise bytes are served
    through the gated download endpoint.
    """

    def __init__(self, root: Union[str, Path], base_url: Optional[str] = None, prefix: str = '', name: str = 'local'):
        """
        Initialize the disk.

        Args:
            root: Base directory for stored objects (created if missing)
            base_url: Optional URL under which root is served directly
            prefix: Optional key prefix inside the root
            name: Disk name as configured in ATTACHMENTS_DISKS
        """
        self.root = Path(root)
        self.base_url = base_url.rstrip('/') if base_url else None
        self.prefix = prefix
        self.name = name

        self.root.mkdir(parents=True, exist_ok=True)

    def put(self, content: Union[bytes, BinaryIO], suggested_name: str, namespace: str) -> str:
        storage_key = build_storage_key(namespace, suggested_name, self.prefix)
        absolute_path = get_absolute_path(self.root, storage_key)

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            # Exclusive create: an existing object is never overwritten
            with open(absolute_path, 'xb') as dest:
                for chunk in iter_content(content):
                    dest.write(chunk)
        except FileExistsError as e:
            raise StorageFailure(f"Storage key already in use on disk '{self.name}'", disk=self.name) from e
        except OSError as e:
            logger.error(f"Failed to write object to disk '{self.name}': {e}")
            # Don't leave half-written files behind
            absolute_path.unlink(missing_ok=True)
            raise StorageFailure(f"Failed to write attachment to disk '{self.name}'", disk=self.name) from e

        return storage_key

    def get(self, storage_key: str) -> Iterator[bytes]:
        absolute_path = get_absolute_path(self.root, storage_key)
        if not absolute_path.is_file():
            raise NotFound("Stored object not found")

        try:
            handle = open(absolute_path, 'rb')
        except OSError as e:
            raise StorageFailure(f"Cannot read attachment from disk '{self.name}'", disk=self.name) from e

        return self._iter_file(handle)

    @staticmethod
    def _iter_file(handle) -> Iterator[bytes]:
        with handle:
            while chunk := handle.read(FILE_CHUNK_SIZE):
                yield chunk

    def exists(self, storage_key: str) -> bool:
        return get_absolute_path(self.root, storage_key).is_file()

    def delete(self, storage_key: str) -> None:
        absolute_path = get_absolute_path(self.root, storage_key)
        try:
            absolute_path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to delete object from disk '{self.name}': {e}")
            raise StorageFailure(f"Failed to delete attachment from disk '{self.name}'", disk=self.name) from e

        # Remove the now empty namespace directory
        parent = absolute_path.parent
        try:
            if parent != self.root.resolve() and not any(parent.iterdir()):
                parent.rmdir()
        except OSError:
            logger.debug(f"Could not remove directory {parent}")

    def public_url(self, storage_key: str) -> Optional[str]:
        if not self.base_url:
            return None
        return f"{self.base_url}/{quote(storage_key)}"

    def path(self, storage_key: str) -> Path:
        """Absolute filesystem path of a stored object."""
        return get_absolute_path(self.root, storage_key)
