"""
Deferred upload ("dropzone") protocol.

Uploads may happen before the owning entity exists, e.g. while a form is
still being filled in:

1. upload: the file is stored and a *pending* record is created. The caller
   receives the external identifier.
2. bind_later: once the owner exists, the external identifier is bound to
   it. This is the only transition from pending to bound.
3. delete_pending: the upload widget may remove a file again, but only
   while it is still pending and only from the session that uploaded it
   (when CSRF checking is enabled).

Abandoned pending uploads are reclaimed by the orphan sweeper
(see services.cleanup).
"""

import logging
import mimetypes
import os
from pathlib import Path
from typing import Optional

from django.core.files import File
from django.db.models import Q
from django.middleware.csrf import get_token
from django.utils.crypto import constant_time_compare

from ..models import Attachment
from . import config as config_service
from . import identifiers
from .access import AccessGate, get_access_gate
from .exceptions import AttachmentTooLarge, Forbidden, InvalidArgument, NotFound, StorageFailure
from .registry import AttachmentRegistry, normalize_owner
from .storage import get_disk

logger = logging.getLogger(__name__)

PENDING = Q(owner_type__isnull=True, owner_ref__isnull=True)


def get_csrf_secret(request) -> str:
    """
    Get the CSRF secret of the request's session.

    get_token() returns a freshly masked token on every call, so the
    unmasked secret Django keeps in request.META is what gets stored and
    compared.
    """
    if request is None:
        return ''
    get_token(request)
    return request.META.get('CSRF_COOKIE', '') or ''


def as_file(source) -> File:
    """
    Wrap an upload source into a Django File.

    Accepts Django File/UploadedFile objects and filesystem paths.
    """
    if isinstance(source, File):
        return source
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.is_file():
            raise InvalidArgument(f"File not found: {path.name}")
        return File(open(path, 'rb'), name=path.name)
    raise InvalidArgument("Unsupported upload source")


class DeferredUploadService:
    """
    Upload now, bind later.

    Example:
        >>> service = DeferredUploadService()
        >>> attachment = service.upload(request, request.FILES['file'])
        >>> # ... later, once the owner has been saved
        >>> service.bind_later(attachment.external_id, 'crm.contact', contact.pk)
    """

    def __init__(self, registry: Optional[AttachmentRegistry] = None, gate: Optional[AccessGate] = None):
        self.registry = registry or AttachmentRegistry()
        self._gate = gate

    @property
    def gate(self) -> AccessGate:
        return self._gate or get_access_gate()

    def store(
        self,
        source,
        *,
        disk: Optional[str] = None,
        owner_type: Optional[str] = None,
        owner_ref=None,
        title: str = '',
        description: str = '',
        slot: str = '',
        metadata: Optional[dict] = None,
        csrf_token: str = '',
    ) -> Attachment:
        """
        Store a file and create its record, bound or pending.

        No access gate is consulted; use upload() for request driven uploads.

        Args:
            source: UploadedFile, File or filesystem path
            disk: Disk name (default disk if omitted)
            owner_type, owner_ref: Owner to bind immediately (both or neither)
            title, description, slot, metadata: Caller metadata
            csrf_token: CSRF secret to remember for dropzone deletes

        Returns:
            Created Attachment

        Raises:
            InvalidArgument: Malformed owner, unknown disk, unreadable source
            AttachmentTooLarge: File exceeds ATTACHMENTS_MAX_SIZE_MB
            StorageFailure: The disk could not store the file
        """
        owner_type, owner_ref = normalize_owner(owner_type, owner_ref)
        file = as_file(source)
        try:
            return self._store_file(
                file,
                disk=disk,
                owner_type=owner_type,
                owner_ref=owner_ref,
                title=title,
                description=description,
                slot=slot,
                metadata=metadata,
                csrf_token=csrf_token,
            )
        finally:
            # Only close what as_file() opened itself
            if file is not source:
                file.close()

    def _store_file(self, file: File, *, disk, owner_type, owner_ref, title, description, slot, metadata, csrf_token):
        original_name = os.path.basename((file.name or '').replace('\\', '/')) or 'file'
        size_bytes = file.size or 0
        max_size_bytes = config_service.get_max_size_bytes()
        if size_bytes > max_size_bytes:
            max_size_mb = max_size_bytes / (1024 * 1024)
            actual_size_mb = size_bytes / (1024 * 1024)
            raise AttachmentTooLarge(
                f"File size ({actual_size_mb:.2f}MB) exceeds maximum allowed size ({max_size_mb:.2f}MB)"
            )

        mime_type = (
            getattr(file, 'content_type', None)
            or mimetypes.guess_type(original_name)[0]
            or 'application/octet-stream'
        )

        storage = get_disk(disk)
        external_id = identifiers.generate()
        storage_key = storage.put(file, original_name, external_id)

        try:
            return self.registry.create(
                storage.name,
                storage_key,
                owner_type=owner_type,
                owner_ref=owner_ref,
                external_id=external_id,
                original_filename=original_name,
                mime_type=mime_type,
                size_bytes=size_bytes,
                title=title,
                description=description,
                slot=slot,
                metadata=metadata,
                csrf_token=csrf_token,
            )
        except Exception:
            # No record points at the object, remove it again
            try:
                storage.delete(storage_key)
            except StorageFailure:
                logger.error(f"Could not remove object {storage_key} after failed record creation")
            raise

    def upload(
        self,
        request,
        uploaded_file,
        *,
        disk: Optional[str] = None,
        title: str = '',
        description: str = '',
        slot: str = '',
        owner_type: Optional[str] = None,
        owner_ref=None,
        metadata: Optional[dict] = None,
    ) -> Attachment:
        """
        Dropzone upload.

        Runs the upload gate before anything else, then stores the file
        and creates a pending record (bound when an owner is supplied)
        remembering the caller's CSRF secret.

        Raises:
            Forbidden: If the upload gate denies the request
            (plus everything store() raises)
        """
        self.gate.check_upload(request)
        if uploaded_file is None:
            raise InvalidArgument("No file provided")

        attachment = self.store(
            uploaded_file,
            disk=disk,
            owner_type=owner_type,
            owner_ref=owner_ref,
            title=title,
            description=description,
            slot=slot,
            metadata=metadata,
            csrf_token=get_csrf_secret(request),
        )
        logger.info(f"Dropzone upload stored attachment {attachment.external_id}")
        return attachment

    def bind_later(self, external_id: str, owner_type: str, owner_ref) -> Attachment:
        """
        Bind a pending upload to its owner.

        Raises:
            NotFound, AlreadyBound, InvalidArgument
        """
        return self.registry.bind(external_id, owner_type, owner_ref)

    def delete_pending(self, request, external_id: str) -> None:
        """
        Dropzone delete of a still pending upload.

        Raises:
            NotFound: No attachment with this external id
            Forbidden: Attachment is bound, the delete gate denied, or the
                CSRF token does not match the one captured at upload
            StorageFailure: Stored object could not be deleted
        """
        attachment = self.registry.get_by_external_id(external_id)
        if attachment.is_bound:
            raise Forbidden("Only pending attachments can be deleted here")

        self.gate.check_delete(request, attachment)

        if config_service.is_dropzone_csrf_check_enabled():
            if not constant_time_compare(attachment.csrf_token, get_csrf_secret(request)):
                logger.warning(f"CSRF token mismatch on dropzone delete of attachment {external_id}")
                raise Forbidden("CSRF token mismatch")

        try:
            self.registry.delete(attachment.pk, guard=PENDING)
        except NotFound:
            # Bound by a concurrent request after the checks above
            if Attachment.objects.filter(pk=attachment.pk).bound().exists():
                raise Forbidden("Only pending attachments can be deleted here")
            raise
