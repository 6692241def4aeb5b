"""Error taxonomy for comment threads, notifications, and read tracking.

Validation errors are raised synchronously and never retried:
- EmptyContentError, UnsupportedAttachmentError, AttachmentTooLargeError
- ForbiddenError, NotRootCommentError

StoreUnavailableError is transient and retried once with backoff.
DeliveryFailedError is logged by the caller and never fails a write.
"""


class CommentThreadError(Exception):
    """Base exception for comment thread operations."""
    pass


class EmptyContentError(CommentThreadError):
    """Comment has neither text nor attachments."""
    pass


class UnsupportedAttachmentError(CommentThreadError):
    """Attachment mimetype is not on the allow-list."""
    pass


class AttachmentTooLargeError(UnsupportedAttachmentError):
    """Attachment exceeds the size ceiling."""
    pass


class NotRootCommentError(CommentThreadError):
    """Status transitions are only valid on root comments."""
    pass


class ForbiddenError(CommentThreadError):
    """Acting user may not perform this operation."""
    pass


class NotFoundError(CommentThreadError):
    """Referenced entity does not exist."""
    pass


class CommentNotFoundError(NotFoundError):
    """Comment does not exist."""
    pass


class NotificationNotFoundError(NotFoundError):
    """Notification does not exist or belongs to another user."""
    pass


class StoreUnavailableError(CommentThreadError):
    """Persistent store timed out or dropped the connection."""
    pass


class DeliveryFailedError(CommentThreadError):
    """Realtime or notification push could not be delivered."""
    pass
