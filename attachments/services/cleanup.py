"""
Orphan Cleanup

Deletes pending attachments (never bound to an owner) that are older than a
cutoff. Meant to run periodically, see the attachments_cleanup management
command.

Each candidate is deleted through AttachmentRegistry.delete with a guard
that re-checks "still pending and still older than the cutoff" under the row
lock, so an attachment bound after the initial scan is left alone.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from django.db.models import Q
from django.utils import timezone

from ..models import Attachment
from . import config as config_service
from .exceptions import InvalidArgument, NotFound, StorageFailure
from .registry import AttachmentRegistry

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Outcome of a sweep."""

    cutoff: object
    dry_run: bool = False
    candidates: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: List[str] = field(default_factory=list)


class OrphanSweeper:
    """Reclaims abandoned pending uploads."""

    def __init__(self, registry: Optional[AttachmentRegistry] = None):
        self.registry = registry or AttachmentRegistry()

    def sweep(self, max_age_minutes: Optional[int] = None, dry_run: bool = False) -> int:
        """
        Delete stale pending attachments.

        Args:
            max_age_minutes: Minimum age of deleted records
                (defaults to ATTACHMENTS_CLEANUP_DEFAULT_MINUTES, 1440)
            dry_run: Only count candidates

        Returns:
            Number of deleted attachments (candidates when dry_run)
        """
        report = self.run(max_age_minutes, dry_run=dry_run)
        return report.candidates if dry_run else report.deleted

    def run(self, max_age_minutes: Optional[int] = None, dry_run: bool = False) -> SweepReport:
        """Like sweep(), returning the full report."""
        if max_age_minutes is None:
            max_age_minutes = config_service.get_cleanup_default_minutes()
        if max_age_minutes < 0:
            raise InvalidArgument("max_age_minutes must not be negative")

        cutoff = timezone.now() - timedelta(minutes=max_age_minutes)
        stale = Q(owner_type__isnull=True, owner_ref__isnull=True, created_at__lte=cutoff)
        report = SweepReport(cutoff=cutoff, dry_run=dry_run)

        candidate_ids = list(Attachment.objects.filter(stale).values_list('pk', flat=True))
        report.candidates = len(candidate_ids)

        if dry_run:
            logger.info(f"Orphan sweep (dry run): {report.candidates} pending attachments older than {cutoff}")
            return report

        for attachment_id in candidate_ids:
            try:
                self.registry.delete(attachment_id, guard=stale)
            except NotFound:
                # Bound or deleted since the scan
                report.skipped += 1
            except StorageFailure as e:
                logger.error(f"Orphan sweep could not delete attachment {attachment_id}: {e}")
                report.failed.append(str(attachment_id))
            else:
                report.deleted += 1

        logger.info(
            f"Orphan sweep removed {report.deleted} of {report.candidates} pending attachments "
            f"older than {cutoff} ({report.skipped} skipped, {len(report.failed)} failed)"
        )
        return report
