"""
Tests for the Attachment model
"""

from unittest.mock import patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings

from attachments.models import Attachment, Disposition
from attachments.services.binding import DeferredUploadService
from attachments.services.exceptions import StorageFailure
from attachments.services.storage import LocalDiskStorage, get_disk
from attachments.testing import TempDiskMixin


class AttachmentModelTestCase(TempDiskMixin, TestCase):
    """Test model properties and serialization."""

    def setUp(self):
        super().setUp()
        self.attachment = Attachment.objects.create(
            external_id='abc123',
            storage_disk='local',
            storage_key='abc123/Contract.PDF',
            original_filename='Contract.PDF',
            mime_type='application/pdf',
            size_bytes=1024,
            metadata={'pages': 3, 'exif': {'width': 800}},
        )

    def test_str(self):
        self.assertEqual(str(self.attachment), 'Contract.PDF (abc123)')

    def test_state(self):
        self.assertTrue(self.attachment.is_pending)
        self.assertFalse(self.attachment.is_bound)

        self.attachment.owner_type = 'crm.contact'
        self.attachment.owner_ref = '1'
        self.assertTrue(self.attachment.is_bound)

    def test_extension(self):
        self.assertEqual(self.attachment.extension, 'pdf')

    def test_get_metadata(self):
        """Test plain and dotted metadata lookups."""
        self.assertEqual(self.attachment.get_metadata('pages'), 3)
        self.assertEqual(self.attachment.get_metadata('exif.width'), 800)
        self.assertIsNone(self.attachment.get_metadata('exif.height'))
        self.assertEqual(self.attachment.get_metadata('pages.count', 'n/a'), 'n/a')
        self.assertEqual(self.attachment.get_metadata()['pages'], 3)

    def test_download_urls(self):
        self.assertEqual(self.attachment.url, '/attachments/abc123/Contract.PDF')
        self.assertEqual(self.attachment.url_inline, '/attachments/abc123/Contract.PDF?disposition=inline')
        self.assertEqual(
            self.attachment.get_download_url(Disposition.INLINE),
            self.attachment.url_inline,
        )

    @override_settings(ROOT_URLCONF='attachments.test_models')
    def test_url_without_published_routes(self):
        self.assertIsNone(self.attachment.url)
        self.assertIsNone(self.attachment.url_inline)

    def test_to_dict(self):
        data = self.attachment.to_dict()

        self.assertEqual(data['externalId'], 'abc123')
        self.assertEqual(data['title'], 'Contract.PDF')
        self.assertEqual(data['filename'], 'Contract.PDF')
        self.assertEqual(data['filesize'], 1024)
        self.assertEqual(data['filetype'], 'application/pdf')
        self.assertEqual(data['url'], '/attachments/abc123/Contract.PDF')
        self.assertTrue(data['pending'])
        self.assertIsNotNone(data['createdAt'])
        self.assertIsNone(data['boundAt'])

    def test_querysets(self):
        bound = Attachment.objects.create(
            external_id='def456',
            owner_type='crm.contact',
            owner_ref='7',
            storage_disk='local',
            storage_key='def456/a.txt',
            original_filename='a.txt',
        )

        self.assertEqual(list(Attachment.objects.pending()), [self.attachment])
        self.assertEqual(list(Attachment.objects.bound()), [bound])
        self.assertEqual(list(Attachment.objects.for_owner('crm.contact', 7)), [bound])


class AttachmentDeleteTestCase(TempDiskMixin, TestCase):
    """Test that deleting a single instance removes its stored object."""

    def setUp(self):
        super().setUp()
        self.attachment = DeferredUploadService().store(SimpleUploadedFile('notes.txt', b'notes'))
        self.storage_key = self.attachment.storage_key

    def test_instance_delete_removes_object(self):
        pk = self.attachment.pk

        result = self.attachment.delete()

        self.assertEqual(result, (1, {'attachments.Attachment': 1}))
        self.assertIsNone(self.attachment.pk)
        self.assertFalse(Attachment.objects.filter(pk=pk).exists())
        self.assertFalse(get_disk().exists(self.storage_key))

    def test_instance_delete_storage_failure_keeps_record(self):
        with patch.object(LocalDiskStorage, 'delete', side_effect=StorageFailure('disk unavailable')):
            with self.assertRaises(StorageFailure):
                self.attachment.delete()

        self.assertTrue(Attachment.objects.filter(pk=self.attachment.pk).exists())
        self.assertTrue(get_disk().exists(self.storage_key))


# Empty URLconf for test_url_without_published_routes
urlpatterns = []
