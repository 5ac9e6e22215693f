"""
Access Gate

Pluggable authorization predicates consulted before attachment bytes are
served and before dropzone actions run:

    output(attachment, request) -> bool   before streaming bytes
    upload(request) -> bool               before a dropzone upload
    delete(request, attachment) -> bool   before a dropzone delete

Each predicate defaults to allowing everything. They are configured once in
Django settings, by dotted path or as callables:

    ATTACHMENTS_OUTPUT_GATE = 'crm.permissions.can_download_attachment'
    ATTACHMENTS_UPLOAD_GATE = 'crm.permissions.is_staff_request'

The gate is built on first use and kept for the life of the process (it is
rebuilt only when Django settings change, i.e. under override_settings).
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable

from django.core.signals import setting_changed
from django.dispatch import receiver
from django.utils.module_loading import import_string

from . import config as config_service
from .exceptions import Forbidden, InvalidArgument

logger = logging.getLogger(__name__)


def allow_all(*args, **kwargs) -> bool:
    return True


def _resolve_predicate(value: Any, action: str) -> Callable[..., bool]:
    if value is None:
        return allow_all
    if isinstance(value, str):
        try:
            value = import_string(value)
        except ImportError as e:
            raise InvalidArgument(f"Cannot import {action} gate '{value}'") from e
    if not callable(value):
        raise InvalidArgument(f"The {action} gate must be a callable or a dotted path to one")
    return value


@dataclass(frozen=True)
class AccessGate:
    """Holds the output, upload and delete predicates."""

    output: Callable[..., bool] = allow_all
    upload: Callable[..., bool] = allow_all
    delete: Callable[..., bool] = allow_all

    def check_output(self, attachment, request) -> None:
        """
        Raises:
            Forbidden: If the output predicate denies serving the attachment
        """
        if not self.output(attachment, request):
            logger.warning(f"Output gate denied access to attachment {attachment.external_id}")
            raise Forbidden("Access to this attachment is not allowed")

    def check_upload(self, request) -> None:
        """
        Raises:
            Forbidden: If the upload predicate denies the upload
        """
        if not self.upload(request):
            logger.warning("Upload gate denied dropzone upload")
            raise Forbidden("Upload is not allowed")

    def check_delete(self, request, attachment) -> None:
        """
        Raises:
            Forbidden: If the delete predicate denies deleting the attachment
        """
        if not self.delete(request, attachment):
            logger.warning(f"Delete gate denied dropzone delete of attachment {attachment.external_id}")
            raise Forbidden("Deleting this attachment is not allowed")


@lru_cache(maxsize=1)
def get_access_gate() -> AccessGate:
    """Build the process-wide access gate from settings."""
    return AccessGate(
        output=_resolve_predicate(config_service.get_gate_setting('output'), 'output'),
        upload=_resolve_predicate(config_service.get_gate_setting('upload'), 'upload'),
        delete=_resolve_predicate(config_service.get_gate_setting('delete'), 'delete'),
    )


@receiver(setting_changed)
def _reset_gate_on_setting_change(sender, setting, **kwargs):
    if setting.endswith('_GATE') and setting.startswith('ATTACHMENTS_'):
        get_access_gate.cache_clear()
