"""
Storage adapter contract.

A storage adapter owns the bytes of attachments on one backend ("disk").
The registry only ever keeps (disk name, storage key) pairs and goes through
this interface for everything else.
"""

from abc import ABC, abstractmethod
from typing import BinaryIO, Iterator, Optional, Union

# Size in bytes for reading/writing file chunks
FILE_CHUNK_SIZE = 8192


class StorageAdapter(ABC):
    """
    Uniform put/get/delete/url contract over a byte-storage backend.

    Implementations must:
    - never reuse a key for a different object (keys are namespaced by the
      attachment's external identifier, see paths.build_storage_key)
    - raise NotFound from get() when the key is absent
    - treat delete() of an absent key as success
    - wrap backend errors in StorageFailure
    """

    #: Name of the disk this adapter was configured as
    name: str = ''

    @abstractmethod
    def put(self, content: Union[bytes, BinaryIO], suggested_name: str, namespace: str) -> str:
        """
        Persist content and return its storage key.

        Args:
            content: Raw bytes or a readable binary file object
            suggested_name: Original filename (sanitized into the key)
            namespace: External identifier used to namespace the key

        Returns:
            Backend-specific storage key
        """

    @abstractmethod
    def get(self, storage_key: str) -> Iterator[bytes]:
        """
        Open a stored object as an iterator of byte chunks.

        Raises:
            NotFound: If the key does not exist
        """

    @abstractmethod
    def exists(self, storage_key: str) -> bool:
        """Check whether an object is stored under the key."""

    @abstractmethod
    def delete(self, storage_key: str) -> None:
        """Delete an object. Deleting an absent key is not an error."""

    @abstractmethod
    def public_url(self, storage_key: str) -> Optional[str]:
        """
        Get a directly servable URL for the object.

        Returns:
            URL, or None when the backend cannot serve the object itself
        """

    def read(self, storage_key: str) -> bytes:
        """Read a whole object into memory."""
        return b''.join(self.get(storage_key))

    def __repr__(self):
        return f"<{self.__class__.__name__} disk={self.name!r}>"


def iter_content(content: Union[bytes, BinaryIO], chunk_size: int = FILE_CHUNK_SIZE) -> Iterator[bytes]:
    """
    Iterate over content in chunks.

    Accepts raw bytes, Django UploadedFile objects (which expose chunks())
    or any readable binary file object.
    """
    if isinstance(content, (bytes, bytearray, memoryview)):
        data = bytes(content)
        for start in range(0, len(data), chunk_size):
            yield data[start:start + chunk_size]
        return

    if hasattr(content, 'chunks'):
        yield from content.chunks(chunk_size)
        return

    if hasattr(content, 'seek'):
        content.seek(0)
    while chunk := content.read(chunk_size):
        yield chunk
