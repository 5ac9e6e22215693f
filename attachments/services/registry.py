"""
Attachment Registry

Owns attachment records and the lifecycle state machine:

    created (pending | bound) --bind--> bound --delete--> gone
    created (pending)         --delete-------------------> gone

Binding is one-way and happens at most once. Deleting a record removes its
stored object first (when cascade delete is enabled) and the record second,
so a crash in between leaves at worst an orphaned object, never a record
pointing at nothing.
"""

import logging
from typing import List, Optional, Tuple

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from ..models import Attachment
from . import config as config_service
from . import identifiers
from .exceptions import AlreadyBound, InvalidArgument, NotFound, StorageFailure
from .storage import get_disk

logger = logging.getLogger(__name__)


def normalize_owner(owner_type, owner_ref) -> Tuple[Optional[str], Optional[str]]:
    """
    Validate an (owner_type, owner_ref) pair.

    Empty strings count as absent. Returns (None, None) for a pending owner.

    Raises:
        InvalidArgument: If exactly one of the two is given
    """
    owner_type = owner_type or None
    owner_ref = None if owner_ref is None or owner_ref == '' else str(owner_ref)

    if (owner_type is None) != (owner_ref is None):
        raise InvalidArgument("owner_type and owner_ref must be given together")
    return owner_type, owner_ref


class AttachmentRegistry:
    """
    Persistent record store for attachments.

    Example:
        >>> registry = AttachmentRegistry()
        >>> attachment = registry.create('local', key, original_filename='a.pdf')
        >>> registry.bind(attachment.external_id, 'crm.contact', '42')
        >>> registry.find_by_owner('crm.contact', '42')
        [<Attachment: a.pdf (...)>]
    """

    def create(
        self,
        storage_disk: str,
        storage_key: str,
        *,
        owner_type: Optional[str] = None,
        owner_ref=None,
        external_id: Optional[str] = None,
        original_filename: str = '',
        mime_type: str = '',
        size_bytes: int = 0,
        title: str = '',
        description: str = '',
        slot: str = '',
        metadata: Optional[dict] = None,
        csrf_token: str = '',
    ) -> Attachment:
        """
        Create an attachment record.

        The record starts bound when both owner fields are given and pending
        when neither is.

        Args:
            storage_disk: Disk holding the bytes
            storage_key: Key of the stored object on that disk
            owner_type: Owner type tag (e.g. 'crm.contact')
            owner_ref: Owner reference key
            external_id: Identifier the object was stored under (generated if omitted)
            original_filename, mime_type, size_bytes: Upload metadata
            title, description, slot, metadata: Caller metadata
            csrf_token: CSRF secret captured on dropzone upload

        Returns:
            Created Attachment

        Raises:
            InvalidArgument: If exactly one owner field is given or the
                storage reference is incomplete
        """
        owner_type, owner_ref = normalize_owner(owner_type, owner_ref)
        if not storage_disk or not storage_key:
            raise InvalidArgument("storage_disk and storage_key are required")

        attachment = Attachment.objects.create(
            external_id=external_id or identifiers.generate(),
            owner_type=owner_type,
            owner_ref=owner_ref,
            bound_at=timezone.now() if owner_type else None,
            storage_disk=storage_disk,
            storage_key=storage_key,
            original_filename=original_filename or 'file',
            mime_type=mime_type or '',
            size_bytes=size_bytes or 0,
            title=title or '',
            description=description or '',
            slot=slot or '',
            metadata=metadata or {},
            csrf_token=csrf_token or '',
        )

        state = 'bound' if owner_type else 'pending'
        logger.info(f"Created {state} attachment {attachment.external_id} on disk '{storage_disk}'")
        return attachment

    def bind(self, external_id: str, owner_type: str, owner_ref) -> Attachment:
        """
        Bind a pending attachment to its owner.

        Implemented as a single conditional UPDATE guarded on both owner
        fields being NULL, so of two concurrent binds exactly one succeeds.

        Raises:
            InvalidArgument: If the owner is incomplete
            NotFound: If no attachment has this external id
            AlreadyBound: If the attachment already has an owner
        """
        owner_type, owner_ref = normalize_owner(owner_type, owner_ref)
        if owner_type is None:
            raise InvalidArgument("An owner is required to bind an attachment")

        updated = Attachment.objects.filter(
            external_id=external_id,
        ).pending().update(
            owner_type=owner_type,
            owner_ref=owner_ref,
            bound_at=timezone.now(),
        )

        if updated == 0:
            if Attachment.objects.filter(external_id=external_id).exists():
                logger.warning(f"Rejected re-bind of attachment {external_id}")
                raise AlreadyBound(f"Attachment {external_id} is already bound")
            raise NotFound(f"Attachment {external_id} not found")

        logger.info(f"Bound attachment {external_id} to {owner_type}:{owner_ref}")
        return self.get_by_external_id(external_id)

    def delete(self, attachment_id: int, *, guard: Optional[Q] = None) -> None:
        """
        Delete an attachment record and, with cascade delete enabled, its object.

        The row is locked for the duration of the operation. The stored object
        is deleted first; if that fails StorageFailure propagates and the
        record is kept. The record delete is the commit point.

        Args:
            attachment_id: Internal id
            guard: Optional extra condition the record must still satisfy
                (evaluated under the lock)

        Raises:
            NotFound: If the record does not exist (or no longer matches guard)
            StorageFailure: If the stored object could not be deleted or its
                disk is no longer configured
        """
        with transaction.atomic():
            queryset = Attachment.objects.select_for_update().filter(pk=attachment_id)
            if guard is not None:
                queryset = queryset.filter(guard)
            attachment = queryset.first()
            if attachment is None:
                raise NotFound(f"Attachment {attachment_id} not found")

            if config_service.is_cascade_delete_enabled():
                try:
                    disk = get_disk(attachment.storage_disk)
                except InvalidArgument as e:
                    # Disk removed from configuration, keep the record until it is back
                    raise StorageFailure(str(e), disk=attachment.storage_disk) from e
                disk.delete(attachment.storage_key)

            # Plain row delete, Attachment.delete() routes back through here
            Attachment.objects.filter(pk=attachment.pk).delete()

        logger.info(f"Deleted attachment {attachment.external_id}")

    def delete_for_owner(self, owner_type: str, owner_ref) -> int:
        """
        Delete every attachment bound to an owner.

        Returns:
            Number of deleted attachments
        """
        deleted = 0
        for attachment_id in list(self.find_by_owner_queryset(owner_type, owner_ref).values_list("pk", flat=True)):
            try:
                self.delete(attachment_id)
            except NotFound:
                continue
            deleted += 1
        return deleted

    def get(self, attachment_id: int) -> Attachment:
        try:
            return Attachment.objects.get(pk=attachment_id)
        except Attachment.DoesNotExist:
            raise NotFound(f"Attachment {attachment_id} not found")

    def get_by_external_id(self, external_id: str) -> Attachment:
        try:
            return Attachment.objects.get(external_id=external_id)
        except Attachment.DoesNotExist:
            raise NotFound(f"Attachment {external_id} not found")

    def find_by_owner_queryset(self, owner_type: str, owner_ref):
        return Attachment.objects.for_owner(owner_type, owner_ref).order_by('created_at', 'id')

    def find_by_owner(self, owner_type: str, owner_ref) -> List[Attachment]:
        return list(self.find_by_owner_queryset(owner_type, owner_ref))

    def find_by_owner_and_slot(self, owner_type: str, owner_ref, slot: str) -> Optional[Attachment]:
        """Latest attachment of an owner in a slot, or None."""
        return (
            self.find_by_owner_queryset(owner_type, owner_ref)
            .filter(slot=slot)
            .order_by('-created_at', '-id')
            .first()
        )
