"""Core application utilities."""

from .config import Settings, get_settings
from .database import (
    async_session_factory,
    close_db,
    create_engine,
    create_session_factory,
    engine,
    get_session,
    get_session_context,
    init_db,
)
from .errors import (
    AttachmentTooLargeError,
    CommentNotFoundError,
    CommentThreadError,
    DeliveryFailedError,
    EmptyContentError,
    ForbiddenError,
    NotFoundError,
    NotificationNotFoundError,
    NotRootCommentError,
    StoreUnavailableError,
    UnsupportedAttachmentError,
)
from .resilience import bounded, retry_store_call

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "engine",
    "async_session_factory",
    "create_engine",
    "create_session_factory",
    "get_session",
    "get_session_context",
    "init_db",
    "close_db",
    # Errors
    "CommentThreadError",
    "EmptyContentError",
    "UnsupportedAttachmentError",
    "AttachmentTooLargeError",
    "NotRootCommentError",
    "ForbiddenError",
    "NotFoundError",
    "CommentNotFoundError",
    "NotificationNotFoundError",
    "StoreUnavailableError",
    "DeliveryFailedError",
    # Resilience
    "bounded",
    "retry_store_call",
]
