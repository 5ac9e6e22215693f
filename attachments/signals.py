"""
Signal handlers deleting the attachments of deleted owners.
"""

import logging

from django.db import transaction
from django.db.models.signals import post_delete

from .mixins import AttachmentOwnerMixin
from .services.exceptions import AttachmentError
from .services.registry import AttachmentRegistry

logger = logging.getLogger(__name__)


def delete_owner_attachments(sender, instance, **kwargs):
    """
    Delete the attachments of a deleted AttachmentOwnerMixin instance.

    Runs after the surrounding transaction commits, so a rolled back owner
    delete keeps its attachments.
    """
    if not isinstance(instance, AttachmentOwnerMixin) or instance.pk is None:
        return

    owner_type, owner_ref = instance.attachment_owner_key()

    def purge():
        try:
            deleted = AttachmentRegistry().delete_for_owner(owner_type, owner_ref)
        except AttachmentError as e:
            logger.error(f"Failed to delete attachments of {owner_type}:{owner_ref}: {e}", exc_info=True)
            return
        if deleted:
            logger.info(f"Deleted {deleted} attachments of {owner_type}:{owner_ref}")

    transaction.on_commit(purge)


def connect_signals():
    post_delete.connect(delete_owner_attachments, dispatch_uid='attachments_delete_owner_attachments')
