"""
Key generation and sanitization for attachment storage
"""

import os
import re
from pathlib import Path, PurePosixPath
from typing import Union

from ..exceptions import InvalidArgument

# Maximum length for sanitized filename (excluding extension)
MAX_FILENAME_LENGTH = 100


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename to prevent directory traversal and ensure backend compatibility.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename safe to use as the last segment of a storage key
    """
    # Both separators, regardless of the host OS
    filename = os.path.basename(filename.replace('\\', '/'))

    name_parts = filename.rsplit('.', 1)
    name = name_parts[0]
    ext = f".{name_parts[1]}" if len(name_parts) > 1 else ""
    ext = re.sub(r'[^a-zA-Z0-9]', '', ext[1:])
    ext = f".{ext}" if ext else ""

    # Keep alphanumeric, dash, underscore, and spaces
    name = re.sub(r'[^a-zA-Z0-9\-_ ]', '_', name)
    name = re.sub(r'[_\s]+', '_', name)
    name = name.strip('_')

    if not name:
        name = "file"

    if len(name) > MAX_FILENAME_LENGTH:
        name = name[:MAX_FILENAME_LENGTH]

    return f"{name}{ext}"


def build_storage_key(namespace: str, suggested_name: str, prefix: str = '') -> str:
    """
    Build a unique storage key for an object.

    Key structure:
    - {prefix}/{namespace}/{safe_filename}
    - {namespace}/{safe_filename} when no prefix is configured

    The namespace is the attachment's external identifier, so two objects
    never share a key.

    Args:
        namespace: External identifier of the attachment
        suggested_name: Original filename
        prefix: Optional disk-level prefix

    Returns:
        Relative, forward-slash separated storage key
    """
    namespace = re.sub(r'[^a-zA-Z0-9\-_]', '', namespace or '')
    if not namespace:
        raise InvalidArgument("A storage namespace is required")

    parts = [p for p in prefix.strip('/').split('/') if p] if prefix else []
    parts.extend([namespace, sanitize_filename(suggested_name or '')])
    return '/'.join(parts)


def get_absolute_path(root: Union[str, Path], storage_key: str) -> Path:
    """
    Resolve a storage key below a disk root.

    Args:
        root: Disk root directory
        storage_key: Relative key

    Returns:
        Absolute Path

    Raises:
        InvalidArgument: If the key escapes the root directory
    """
    root_path = Path(root).resolve()
    key_path = PurePosixPath(storage_key)
    if key_path.is_absolute() or '..' in key_path.parts:
        raise InvalidArgument("Invalid storage key")
    absolute = (root_path / Path(*key_path.parts)).resolve()
    if root_path != absolute and root_path not in absolute.parents:
        raise InvalidArgument("Invalid storage key")
    return absolute
