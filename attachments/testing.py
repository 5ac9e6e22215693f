"""
Test helpers for the attachments app.
"""

import shutil
import tempfile

from django.test import override_settings


def deny_all(*args, **kwargs):
    """Access gate predicate refusing everything."""
    return False


def allow_all(*args, **kwargs):
    """Access gate predicate allowing everything."""
    return True


class TempDiskMixin:
    """
    Point the default 'local' disk at a fresh temporary directory per test.

    Set disk_options in a subclass to add options to the local disk
    (e.g. {'base_url': '/media'}).
    """

    disk_options = {}

    def setUp(self):
        super().setUp()
        self.temp_dir = tempfile.mkdtemp()
        self._disk_settings = override_settings(
            ATTACHMENTS_DEFAULT_DISK='local',
            ATTACHMENTS_DISKS={
                'local': {'driver': 'local', 'root': self.temp_dir, **self.disk_options},
            },
        )
        self._disk_settings.enable()

    def tearDown(self):
        self._disk_settings.disable()
        shutil.rmtree(self.temp_dir, ignore_errors=True)
        super().tearDown()
