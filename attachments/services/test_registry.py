"""
Tests for the attachment registry state machine
"""

import threading
from unittest.mock import patch

from django.db import IntegrityError, connection, connections, transaction
from django.db.models import Q
from django.test import TestCase, TransactionTestCase, override_settings
from django.test.utils import CaptureQueriesContext

from attachments.models import Attachment, AttachmentQuerySet
from attachments.services.exceptions import AlreadyBound, InvalidArgument, NotFound, StorageFailure
from attachments.services.registry import AttachmentRegistry, normalize_owner
from attachments.services.storage import get_disk
from attachments.testing import TempDiskMixin


class NormalizeOwnerTestCase(TestCase):
    """Test owner pair validation."""

    def test_both_absent(self):
        self.assertEqual(normalize_owner(None, None), (None, None))
        self.assertEqual(normalize_owner('', ''), (None, None))

    def test_both_present(self):
        self.assertEqual(normalize_owner('crm.contact', 42), ('crm.contact', '42'))

    def test_exactly_one_rejected(self):
        with self.assertRaises(InvalidArgument):
            normalize_owner('crm.contact', None)
        with self.assertRaises(InvalidArgument):
            normalize_owner(None, '42')


class AttachmentRegistryTestCase(TempDiskMixin, TestCase):
    """Test create, bind, delete and lookups."""

    def setUp(self):
        super().setUp()
        self.registry = AttachmentRegistry()
        self.disk = get_disk('local')

    def _stored(self, content=b'content', name='file.txt', **kwargs):
        """Store an object and create its record."""
        external_id = kwargs.pop('external_id', None) or f"ext{Attachment.objects.count() + 1}"
        key = self.disk.put(content, name, external_id)
        return self.registry.create(
            'local', key,
            external_id=external_id,
            original_filename=name,
            size_bytes=len(content),
            **kwargs
        )

    def test_create_pending(self):
        """Test that a record without owner starts pending."""
        attachment = self._stored()

        self.assertTrue(attachment.is_pending)
        self.assertIsNone(attachment.owner_type)
        self.assertIsNone(attachment.owner_ref)
        self.assertIsNone(attachment.bound_at)
        self.assertTrue(attachment.external_id)

    def test_create_bound(self):
        """Test that a record with owner starts bound."""
        attachment = self._stored(owner_type='crm.contact', owner_ref=7)

        self.assertTrue(attachment.is_bound)
        self.assertEqual(attachment.owner_ref, '7')
        self.assertIsNotNone(attachment.bound_at)

    def test_create_with_half_owner_rejected(self):
        """Test that supplying only one owner field is rejected."""
        with self.assertRaises(InvalidArgument):
            self.registry.create('local', 'k/f.txt', owner_type='crm.contact')
        with self.assertRaises(InvalidArgument):
            self.registry.create('local', 'k/f.txt', owner_ref='1')
        self.assertEqual(Attachment.objects.count(), 0)

    def test_create_requires_storage_reference(self):
        with self.assertRaises(InvalidArgument):
            self.registry.create('local', '')

    def test_create_generates_external_id(self):
        attachment = self.registry.create('local', 'x/y.txt', original_filename='y.txt')
        self.assertRegex(attachment.external_id, r'^[0-9a-z]+$')

    def test_database_rejects_half_set_owner(self):
        """Test the check constraint on the owner pair."""
        attachment = self._stored()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Attachment.objects.filter(pk=attachment.pk).update(owner_type='crm.contact')

    def test_bind_pending(self):
        """Test binding a pending record once."""
        attachment = self._stored()

        bound = self.registry.bind(attachment.external_id, 'crm.contact', 42)

        self.assertEqual(bound.owner_type, 'crm.contact')
        self.assertEqual(bound.owner_ref, '42')
        self.assertIsNotNone(bound.bound_at)
        self.assertTrue(bound.is_bound)

    def test_rebind_rejected_and_unchanged(self):
        """Test that a second bind fails and changes nothing."""
        attachment = self._stored()
        first = self.registry.bind(attachment.external_id, 'crm.contact', 1)

        with self.assertRaises(AlreadyBound):
            self.registry.bind(attachment.external_id, 'crm.invoice', 2)

        attachment.refresh_from_db()
        self.assertEqual(attachment.owner_type, 'crm.contact')
        self.assertEqual(attachment.owner_ref, '1')
        self.assertEqual(attachment.bound_at, first.bound_at)

    def test_bind_is_single_conditional_update(self):
        """Test that bind guards on the owner fields inside the UPDATE itself."""
        attachment = self._stored()

        with CaptureQueriesContext(connection) as ctx:
            self.registry.bind(attachment.external_id, 'crm.contact', 1)

        updates = [q['sql'] for q in ctx.captured_queries if q['sql'].startswith('UPDATE')]
        self.assertEqual(len(updates), 1)
        self.assertIn('"owner_type" IS NULL', updates[0])
        self.assertIn('"owner_ref" IS NULL', updates[0])

    def test_bind_unknown(self):
        with self.assertRaises(NotFound):
            self.registry.bind('nope', 'crm.contact', 1)

    def test_bind_requires_owner(self):
        attachment = self._stored()
        with self.assertRaises(InvalidArgument):
            self.registry.bind(attachment.external_id, None, None)
        with self.assertRaises(InvalidArgument):
            self.registry.bind(attachment.external_id, 'crm.contact', '')

    def test_delete_cascades_to_storage(self):
        """Test that deleting removes the record and the stored object."""
        attachment = self._stored()
        key = attachment.storage_key

        self.registry.delete(attachment.pk)

        self.assertFalse(Attachment.objects.filter(pk=attachment.pk).exists())
        self.assertFalse(self.disk.exists(key))

    @override_settings(ATTACHMENTS_CASCADE_DELETE=False)
    def test_delete_without_cascade_keeps_object(self):
        """Test that with cascade disabled the object stays retrievable."""
        disk = get_disk('local')
        attachment = self._stored(content=b'keep me')

        self.registry.delete(attachment.pk)

        self.assertFalse(Attachment.objects.filter(pk=attachment.pk).exists())
        self.assertEqual(disk.read(attachment.storage_key), b'keep me')

    def test_delete_storage_failure_keeps_record(self):
        """Test that a failing storage delete aborts the whole deletion."""
        attachment = self._stored()

        with patch.object(type(self.disk), 'delete', side_effect=StorageFailure('boom')):
            with self.assertRaises(StorageFailure):
                self.registry.delete(attachment.pk)

        self.assertTrue(Attachment.objects.filter(pk=attachment.pk).exists())
        self.assertTrue(self.disk.exists(attachment.storage_key))

    def test_delete_unknown(self):
        with self.assertRaises(NotFound):
            self.registry.delete(999999)

    def test_delete_twice(self):
        attachment = self._stored()
        self.registry.delete(attachment.pk)
        with self.assertRaises(NotFound):
            self.registry.delete(attachment.pk)

    def test_delete_guard_not_matching(self):
        """Test that a guard which no longer holds leaves the record alone."""
        attachment = self._stored(owner_type='crm.contact', owner_ref='1')

        with self.assertRaises(NotFound):
            self.registry.delete(attachment.pk, guard=Q(owner_type__isnull=True))

        self.assertTrue(Attachment.objects.filter(pk=attachment.pk).exists())
        self.assertTrue(self.disk.exists(attachment.storage_key))

    def test_delete_missing_object_still_deletes_record(self):
        """Test that an already vanished object does not block deletion."""
        attachment = self._stored()
        self.disk.delete(attachment.storage_key)

        self.registry.delete(attachment.pk)

        self.assertFalse(Attachment.objects.filter(pk=attachment.pk).exists())

    def test_find_by_owner(self):
        first = self._stored(owner_type='crm.contact', owner_ref='1')
        second = self._stored(owner_type='crm.contact', owner_ref='1')
        self._stored(owner_type='crm.contact', owner_ref='2')
        self._stored()

        self.assertEqual(self.registry.find_by_owner('crm.contact', 1), [first, second])
        self.assertEqual(self.registry.find_by_owner('crm.invoice', 1), [])

    def test_find_by_owner_and_slot(self):
        self._stored(owner_type='crm.contact', owner_ref='1', slot='avatar')
        newest = self._stored(owner_type='crm.contact', owner_ref='1', slot='avatar')
        contract = self._stored(owner_type='crm.contact', owner_ref='1', slot='contract-pdf')

        self.assertEqual(self.registry.find_by_owner_and_slot('crm.contact', '1', 'avatar'), newest)
        self.assertEqual(self.registry.find_by_owner_and_slot('crm.contact', '1', 'contract-pdf'), contract)
        self.assertIsNone(self.registry.find_by_owner_and_slot('crm.contact', '1', 'missing'))

    def test_delete_for_owner(self):
        keep = self._stored(owner_type='crm.contact', owner_ref='2')
        gone = [self._stored(owner_type='crm.contact', owner_ref='1') for _ in range(3)]

        deleted = self.registry.delete_for_owner('crm.contact', '1')

        self.assertEqual(deleted, 3)
        self.assertEqual(list(Attachment.objects.all()), [keep])
        for attachment in gone:
            self.assertFalse(self.disk.exists(attachment.storage_key))

    def test_get_lookups(self):
        attachment = self._stored()
        self.assertEqual(self.registry.get(attachment.pk), attachment)
        self.assertEqual(self.registry.get_by_external_id(attachment.external_id), attachment)
        with self.assertRaises(NotFound):
            self.registry.get(999999)
        with self.assertRaises(NotFound):
            self.registry.get_by_external_id('missing')

    def test_delete_on_unconfigured_disk_keeps_record(self):
        """Test that a record on a removed disk is kept and reported as a storage failure."""
        attachment = self.registry.create('retired', 'old/file.txt', original_filename='file.txt')

        with self.assertRaises(StorageFailure) as ctx:
            self.registry.delete(attachment.pk)

        self.assertTrue(ctx.exception.retryable)
        self.assertTrue(Attachment.objects.filter(pk=attachment.pk).exists())

    def test_bind_then_concurrent_delete(self):
        """Test that a record deleted right after the bind UPDATE yields NotFound."""
        attachment = self._stored()
        real_update = AttachmentQuerySet.update

        def update_then_delete(queryset, **kwargs):
            updated = real_update(queryset, **kwargs)
            Attachment.objects.filter(pk=attachment.pk).delete()
            return updated

        with patch.object(AttachmentQuerySet, 'update', update_then_delete):
            with self.assertRaises(NotFound):
                self.registry.bind(attachment.external_id, 'crm.contact', 1)


class ConcurrentBindTestCase(TransactionTestCase):
    """Test binds racing on the same record from several threads."""

    THREADS = 8

    def test_exactly_one_bind_wins(self):
        attachment = AttachmentRegistry().create('local', 'race/file.txt', original_filename='file.txt')
        barrier = threading.Barrier(self.THREADS)
        results = []
        results_lock = threading.Lock()

        def bind(n):
            try:
                barrier.wait()
                try:
                    AttachmentRegistry().bind(attachment.external_id, 'crm.contact', n)
                    outcome = 'ok'
                except AlreadyBound:
                    outcome = 'already'
                except Exception as e:
                    outcome = repr(e)
                with results_lock:
                    results.append(outcome)
            finally:
                connections.close_all()

        threads = [threading.Thread(target=bind, args=(n,)) for n in range(self.THREADS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(results), ['already'] * (self.THREADS - 1) + ['ok'])

        attachment.refresh_from_db()
        self.assertTrue(attachment.is_bound)
        self.assertIsNotNone(attachment.bound_at)
