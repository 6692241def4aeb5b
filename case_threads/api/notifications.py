"""Notification API Routes: the acting user's in-app inbox."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from ..schemas import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from .dependencies import CurrentActorDep, NotificationInboxDep

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    actor: CurrentActorDep,
    inbox: NotificationInboxDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    unread_only: bool = False,
    q: Annotated[str | None, Query(max_length=200)] = None,
):
    notifications = await inbox.list_notifications(
        actor.id,
        limit=limit,
        offset=offset,
        unread_only=unread_only,
        query=q,
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=await inbox.unread_count(actor.id),
        limit=limit,
        offset=offset,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(actor: CurrentActorDep, inbox: NotificationInboxDep):
    return UnreadCountResponse(unread_count=await inbox.unread_count(actor.id))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(actor: CurrentActorDep, inbox: NotificationInboxDep):
    return MarkAllReadResponse(updated=await inbox.mark_all_read(actor.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    actor: CurrentActorDep,
    inbox: NotificationInboxDep,
):
    notification = await inbox.mark_read(notification_id, actor.id)
    return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: UUID,
    actor: CurrentActorDep,
    inbox: NotificationInboxDep,
):
    await inbox.delete(notification_id, actor.id)
