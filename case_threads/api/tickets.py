"""
Ticket API Routes: the viewer's two-directional worklist.

- mine-active: open threads the viewer takes part in
- mine-archived: resolved ones

``direction`` splits either scope into incoming (the viewer owes an
answer) and outgoing (the viewer waits on others).
"""

from typing import Annotated

from fastapi import APIRouter, Query

from ..schemas import CommentResponse, TicketListResponse, TicketResponse, TicketStatsResponse
from ..services import Ticket, TicketDirection, TicketScope
from .dependencies import CurrentActorDep, TicketServiceDep

router = APIRouter(prefix="/tickets", tags=["tickets"])


def build_ticket_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse(
        root_comment=CommentResponse.from_comment(ticket.root_comment),
        replies=[CommentResponse.from_comment(r) for r in ticket.replies],
        status=ticket.status,
        unanswered_mentions=ticket.unanswered_mentions,
        outgoing_questions_total=ticket.outgoing_questions_total,
        outgoing_questions_answered=ticket.outgoing_questions_answered,
        outgoing_questions_pending_names=list(ticket.outgoing_questions_pending_names),
        unread_count=ticket.unread_count,
        replies_to_my_comments=ticket.replies_to_my_comments,
        new_comments=ticket.new_comments,
        latest_activity_at=ticket.latest_activity_at,
        needs_action=ticket.needs_action,
        waiting_on_others=ticket.waiting_on_others,
        priority=ticket.priority.value,
    )


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    actor: CurrentActorDep,
    service: TicketServiceDep,
    scope: TicketScope = TicketScope.MINE_ACTIVE,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    direction: TicketDirection = TicketDirection.ALL,
    q: Annotated[str | None, Query(max_length=200)] = None,
):
    """Tickets for the acting user, most recent activity first."""
    page = await service.list_for_viewer(
        actor.id, scope, limit=limit, offset=offset, direction=direction, query=q
    )
    return TicketListResponse(
        items=[build_ticket_response(t) for t in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/stats", response_model=TicketStatsResponse)
async def ticket_stats(actor: CurrentActorDep, service: TicketServiceDep):
    stats = await service.stats(actor.id)
    return TicketStatsResponse(
        active=stats.active,
        unanswered_mentions=stats.unanswered_mentions,
        waiting_on_others=stats.waiting_on_others,
        unread_activity=stats.unread_activity,
        resolved_recently=stats.resolved_recently,
    )
