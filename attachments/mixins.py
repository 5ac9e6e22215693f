"""
Owner mixin.

Any Django model can own attachments without changes to the attachments
app; the owner is stored as an opaque (owner_type, owner_ref) pair where
owner_type is the model label ("app_label.model_name") and owner_ref the
primary key.

    class Contact(AttachmentOwnerMixin, models.Model):
        ...

    contact.attach(request.FILES['avatar'], slot='avatar')
    contact.attachment('avatar').url

Deleting an owner deletes its attachments (see attachments.signals).
"""

from .services.binding import DeferredUploadService
from .services.registry import AttachmentRegistry


def owner_key(instance):
    """Owner pair of a model instance."""
    if instance.pk is None:
        raise ValueError("Unsaved instances cannot own attachments")
    return instance._meta.label_lower, str(instance.pk)


class AttachmentOwnerMixin:
    """Adds attachment accessors to a model."""

    def attachment_owner_key(self):
        return owner_key(self)

    @property
    def attachments(self):
        owner_type, owner_ref = self.attachment_owner_key()
        return AttachmentRegistry().find_by_owner(owner_type, owner_ref)

    def attachment(self, slot):
        """Latest attachment in a slot, or None."""
        owner_type, owner_ref = self.attachment_owner_key()
        return AttachmentRegistry().find_by_owner_and_slot(owner_type, owner_ref, slot)

    def attach(self, source, *, slot='', title='', description='', disk=None, metadata=None):
        """
        Store a file and bind it to this instance right away.

        Args:
            source: UploadedFile, File or filesystem path
        """
        owner_type, owner_ref = self.attachment_owner_key()
        return DeferredUploadService().store(
            source,
            disk=disk,
            owner_type=owner_type,
            owner_ref=owner_ref,
            title=title,
            description=description,
            slot=slot,
            metadata=metadata,
        )

    def bind_attachment(self, external_id):
        """Bind a pending dropzone upload to this instance."""
        owner_type, owner_ref = self.attachment_owner_key()
        return DeferredUploadService().bind_later(external_id, owner_type, owner_ref)
