"""FastAPI dependencies for the acting user and service wiring.

Authentication happens upstream: the gateway forwards the authenticated
user id in ``X-User-ID``. Here it is only resolved to an active profile.
Long-lived collaborators (realtime hub, dispatch scheduler, attachment
store, receipt tracker) live on ``app.state`` and are set in the lifespan.
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_session
from ..models import UserRole
from ..services import (
    AttachmentStore,
    CommentStore,
    DispatchScheduler,
    MentionResolver,
    NotificationInbox,
    ProfileDirectory,
    ReadReceiptTracker,
    RealtimeHub,
    TicketService,
    UserInfo,
)

logger = logging.getLogger(__name__)

SessionDep = Annotated[AsyncSession, Depends(get_session)]


# =============================================================================
# ACTING USER
# =============================================================================


async def get_current_actor(
    session: SessionDep,
    x_user_id: str | None = Header(default=None, alias="X-User-ID"),
) -> UserInfo:
    """Resolve the forwarded user id to an active profile."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header required",
        )
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-ID header",
        )

    actor = await ProfileDirectory(session).resolve_user(user_id)
    if actor is None or not actor.is_active:
        logger.warning(f"Rejected request for unknown or inactive user {user_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User profile is not active",
        )
    return actor


async def require_admin(actor: Annotated[UserInfo, Depends(get_current_actor)]) -> UserInfo:
    if actor.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return actor


CurrentActorDep = Annotated[UserInfo, Depends(get_current_actor)]
AdminDep = Annotated[UserInfo, Depends(require_admin)]


# =============================================================================
# APP-LEVEL COLLABORATORS
# =============================================================================


def get_hub(request: Request) -> RealtimeHub:
    return request.app.state.hub


def get_dispatch_scheduler(request: Request) -> DispatchScheduler:
    return request.app.state.dispatch_scheduler


def get_attachment_store(request: Request) -> AttachmentStore:
    return request.app.state.attachment_store


def get_receipt_tracker(request: Request) -> ReadReceiptTracker:
    return request.app.state.receipt_tracker


HubDep = Annotated[RealtimeHub, Depends(get_hub)]
AttachmentStoreDep = Annotated[AttachmentStore, Depends(get_attachment_store)]
ReceiptTrackerDep = Annotated[ReadReceiptTracker, Depends(get_receipt_tracker)]


# =============================================================================
# REQUEST-SCOPED SERVICES
# =============================================================================


def get_comment_store(
    session: SessionDep,
    hub: HubDep,
    scheduler: Annotated[DispatchScheduler, Depends(get_dispatch_scheduler)],
    attachment_store: AttachmentStoreDep,
) -> CommentStore:
    return CommentStore(
        session,
        hub=hub,
        scheduler=scheduler,
        attachment_store=attachment_store,
    )


def get_ticket_service(session: SessionDep) -> TicketService:
    return TicketService(session)


def get_notification_inbox(session: SessionDep, hub: HubDep) -> NotificationInbox:
    return NotificationInbox(session, hub=hub)


def get_mention_resolver(session: SessionDep) -> MentionResolver:
    return MentionResolver(ProfileDirectory(session))


CommentStoreDep = Annotated[CommentStore, Depends(get_comment_store)]
TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
NotificationInboxDep = Annotated[NotificationInbox, Depends(get_notification_inbox)]
MentionResolverDep = Annotated[MentionResolver, Depends(get_mention_resolver)]
