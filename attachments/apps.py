from django.apps import AppConfig


class AttachmentsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'attachments'

    def ready(self):
        """Connect the owner-deletion signal handler."""
        from .signals import connect_signals
        connect_signals()
