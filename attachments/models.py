import os

from django.db import models
from django.db.models import Q
from django.urls import NoReverseMatch, reverse
from django.utils.http import urlencode
from django.utils.translation import gettext_lazy as _

from .services.storage import get_disk


class Disposition(models.TextChoices):
    ATTACHMENT = 'attachment', _('Attachment')
    INLINE = 'inline', _('Inline')


class AttachmentQuerySet(models.QuerySet):
    def pending(self):
        return self.filter(owner_type__isnull=True, owner_ref__isnull=True)

    def bound(self):
        return self.filter(owner_type__isnull=False, owner_ref__isnull=False)

    def for_owner(self, owner_type, owner_ref):
        return self.filter(owner_type=owner_type, owner_ref=str(owner_ref))


class Attachment(models.Model):
    external_id = models.CharField(max_length=64, unique=True, editable=False)

    # Opaque owner reference, both null while pending
    owner_type = models.CharField(max_length=255, null=True, blank=True)
    owner_ref = models.CharField(max_length=255, null=True, blank=True)

    storage_disk = models.CharField(max_length=64)
    storage_key = models.CharField(max_length=1000)

    original_filename = models.CharField(max_length=500)
    mime_type = models.CharField(max_length=255, blank=True)
    size_bytes = models.BigIntegerField(default=0)

    title = models.CharField(max_length=255, blank=True)
    description = models.TextField(blank=True)
    slot = models.CharField(max_length=100, blank=True, help_text="Caller defined label, e.g. 'avatar'")
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    bound_at = models.DateTimeField(null=True, blank=True)

    # CSRF secret captured on dropzone upload
    csrf_token = models.CharField(max_length=64, blank=True)

    objects = AttachmentQuerySet.as_manager()

    class Meta:
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['owner_type', 'owner_ref', 'slot'], name='attachment_owner_slot_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(owner_type__isnull=True, owner_ref__isnull=True)
                    | Q(owner_type__isnull=False, owner_ref__isnull=False)
                ),
                name='attachment_owner_pair_complete',
            ),
        ]

    def __str__(self):
        return f"{self.original_filename} ({self.external_id})"

    def delete(self, using=None, keep_parents=False):
        """
        Delete through AttachmentRegistry so the stored object goes too.

        QuerySet.delete() and foreign key cascades still bypass this.
        """
        from .services.registry import AttachmentRegistry

        label = self._meta.label
        AttachmentRegistry().delete(self.pk)
        self.pk = None
        return 1, {label: 1}

    @property
    def is_pending(self):
        return self.owner_type is None and self.owner_ref is None

    @property
    def is_bound(self):
        return not self.is_pending

    @property
    def extension(self):
        return os.path.splitext(self.original_filename)[1].lstrip('.').lower()

    def get_metadata(self, key=None, default=None):
        """
        Read a value from the metadata dictionary.

        Supports dotted keys for nested values, e.g. get_metadata('exif.width').
        Returns the whole dictionary when no key is given.
        """
        if key is None:
            return self.metadata or {}

        value = self.metadata or {}
        for part in key.split('.'):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    def get_public_url(self):
        """Directly servable URL of the stored object, or None."""
        return get_disk(self.storage_disk).public_url(self.storage_key)

    def get_download_url(self, disposition=Disposition.ATTACHMENT):
        """URL of the gated download endpoint."""
        url = reverse('attachments:download', kwargs={
            'external_id': self.external_id,
            'filename': self.original_filename,
        })
        if disposition == Disposition.INLINE:
            url = f"{url}?{urlencode({'disposition': Disposition.INLINE.value})}"
        return url

    @property
    def url(self):
        public_url = self.get_public_url()
        if public_url:
            return public_url
        try:
            return self.get_download_url()
        except NoReverseMatch:
            return None

    @property
    def url_inline(self):
        public_url = self.get_public_url()
        if public_url:
            return public_url
        try:
            return self.get_download_url(Disposition.INLINE)
        except NoReverseMatch:
            return None

    def to_dict(self):
        """Serialize for JSON responses."""
        return {
            'externalId': self.external_id,
            'title': self.title or self.original_filename,
            'description': self.description,
            'slot': self.slot,
            'filename': self.original_filename,
            'filesize': self.size_bytes,
            'filetype': self.mime_type,
            'url': self.url,
            'pending': self.is_pending,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'boundAt': self.bound_at.isoformat() if self.bound_at else None,
        }
