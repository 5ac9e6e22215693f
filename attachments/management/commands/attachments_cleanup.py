"""
Management command to delete pending attachments that were never bound.
"""

from django.core.management.base import BaseCommand, CommandError

from attachments.services import config as config_service
from attachments.services.cleanup import OrphanSweeper
from attachments.services.exceptions import InvalidArgument


class Command(BaseCommand):
    help = 'Delete pending (unbound) attachments older than a cutoff'

    def add_arguments(self, parser):
        parser.add_argument(
            '--since',
            type=int,
            default=None,
            help=(
                'Minimum age in minutes of deleted pending attachments '
                f'(default: {config_service.DEFAULT_CLEANUP_MINUTES})'
            ),
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without making changes',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        since = options['since']
        if since is None:
            since = config_service.get_cleanup_default_minutes()

        try:
            report = OrphanSweeper().run(since, dry_run=dry_run)
        except InvalidArgument as e:
            raise CommandError(str(e))

        if report.candidates == 0:
            self.stdout.write(self.style.SUCCESS('No pending attachments to clean up.'))
            return

        if dry_run:
            self.stdout.write(self.style.WARNING(
                f'DRY RUN: Would have deleted {report.candidates} pending attachments '
                f'older than {since} minutes. Run without --dry-run to apply changes.'
            ))
            return

        if report.skipped:
            self.stdout.write(f'  Skipped {report.skipped} attachments bound or deleted meanwhile.')
        if report.failed:
            self.stderr.write(self.style.ERROR(
                f'  Failed to delete {len(report.failed)} attachments: {", ".join(report.failed)}'
            ))

        self.stdout.write(self.style.SUCCESS(
            f'Successfully deleted {report.deleted} pending attachments.'
        ))
