"""Business logic services for case comment threads."""

from .attachments import (
    AttachmentInput,
    AttachmentStore,
    HttpAttachmentStore,
    StoredAttachment,
    validate_attachment,
    validate_attachments,
)
from .comment_store import CommentStore, CreateCommentInput
from .mention_parser import MentionKind, MentionParser, MentionToken, format_mention, parse_mentions
from .mention_resolver import MentionResolution, MentionResolver, MentionSuggestions
from .notification_dispatcher import DispatchResult, DispatchScheduler, NotificationDispatcher
from .notification_inbox import NotificationInbox
from .profile_directory import ProfileDirectory, UserDirectory, UserInfo, UserRef
from .read_receipts import ReadReceiptTracker, ReceiptView
from .realtime import EventType, RealtimeEvent, RealtimeHub, Subscription, hub
from .status_lifecycle import StatusLifecycle
from .ticket_aggregator import Ticket, TicketAggregator, TicketPriority, build_tickets
from .ticket_service import TicketDirection, TicketPage, TicketScope, TicketService, TicketStats

__all__ = [
    # Attachments
    "AttachmentInput",
    "AttachmentStore",
    "HttpAttachmentStore",
    "StoredAttachment",
    "validate_attachment",
    "validate_attachments",
    # Comments
    "CommentStore",
    "CreateCommentInput",
    "StatusLifecycle",
    # Mentions
    "MentionKind",
    "MentionParser",
    "MentionToken",
    "format_mention",
    "parse_mentions",
    "MentionResolution",
    "MentionResolver",
    "MentionSuggestions",
    # Notifications
    "DispatchResult",
    "DispatchScheduler",
    "NotificationDispatcher",
    "NotificationInbox",
    # Identity
    "ProfileDirectory",
    "UserDirectory",
    "UserInfo",
    "UserRef",
    # Read receipts
    "ReadReceiptTracker",
    "ReceiptView",
    # Realtime
    "EventType",
    "RealtimeEvent",
    "RealtimeHub",
    "Subscription",
    "hub",
    # Tickets
    "Ticket",
    "TicketAggregator",
    "TicketPriority",
    "build_tickets",
    "TicketPage",
    "TicketDirection",
    "TicketScope",
    "TicketService",
    "TicketStats",
]
