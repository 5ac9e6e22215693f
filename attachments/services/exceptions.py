"""
Attachment service exceptions.

Every error raised by the attachment services derives from AttachmentError,
so callers (views, management commands, owner models) can catch the whole
family with a single except clause and map the concrete subclass to a
response.

Messages never contain filesystem paths, credentials or stack details; they
are safe to show to end users.
"""


class AttachmentError(Exception):
    """Base exception for all attachment errors."""
    pass


class NotFound(AttachmentError):
    """Raised when no attachment record or stored object matches."""
    pass


class InvalidArgument(AttachmentError):
    """
    Raised when a call is malformed.

    Example:
        Creating an attachment with owner_type but without owner_ref.
    """
    pass


class AttachmentTooLarge(InvalidArgument):
    """Raised when an upload exceeds the configured maximum size."""
    pass


class AlreadyBound(AttachmentError):
    """
    Raised when binding an attachment that already has an owner.

    Binding is a one-way transition: an existing owner is never
    overwritten.
    """
    pass


class Forbidden(AttachmentError):
    """
    Raised when an access gate denies an action, a CSRF token does not
    match, or a pending-only operation targets a bound attachment.
    """
    pass


class StorageFailure(AttachmentError):
    """
    Raised when the storage backend fails (I/O error, timeout, remote error).

    Registry state is never modified when this is raised, so the caller
    may retry the operation.

    Attributes:
        retryable: Always True for storage failures
    """

    retryable = True

    def __init__(self, message="Storage backend failure", disk=None):
        super().__init__(message)
        self.disk = disk
