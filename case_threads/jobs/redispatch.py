"""
Re-dispatch Job: catches up notification fan-out after crashes.

Dispatch runs in the background after a comment commits. If the process
dies in between, the comment has no notifications yet. This job replays
dispatch for recent non-system comments that carry mentions; replays
are harmless because notification rows are unique per
(recipient, comment).

Designed to run periodically (e.g., every 15 minutes) via cron.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import get_settings
from ..core.database import create_engine, create_session_factory
from ..core.errors import StoreUnavailableError
from ..core.resilience import bounded
from ..models import Comment, utcnow
from ..services.notification_dispatcher import NotificationDispatcher
from ..services.realtime import RealtimeHub

logger = logging.getLogger(__name__)


async def find_comments_to_redispatch(
    session: AsyncSession,
    since: datetime,
) -> list[Comment]:
    """Recent non-system comments that mention anyone."""
    result = await bounded(
        session.execute(
            select(Comment)
            .where(
                Comment.created_at >= since,
                Comment.is_system_comment.is_(False),
            )
            .order_by(Comment.created_at)
        )
    )
    return [
        comment
        for comment in result.scalars()
        if comment.mentioned_user_ids or comment.mentioned_roles or comment.mentions_all
    ]


async def run_redispatch_job(
    session_factory: async_sessionmaker[AsyncSession],
    lookback_hours: int | None = None,
    hub: RealtimeHub | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> dict[str, Any]:
    """
    Replay notification dispatch for recent comments.

    Returns:
        Job result summary
    """
    settings = get_settings()
    start_time = clock()
    since = start_time - timedelta(hours=lookback_hours or settings.redispatch_lookback_hours)
    logger.info(f"Starting re-dispatch job for comments since {since.isoformat()}")

    results: dict[str, Any] = {
        "started_at": start_time.isoformat(),
        "completed_at": None,
        "comments_checked": 0,
        "notifications_created": 0,
        "notifications_failed": 0,
        "errors": [],
    }

    # Nobody is subscribed in a batch process; events go nowhere
    dispatcher = NotificationDispatcher(session_factory, hub or RealtimeHub())

    async with session_factory() as session:
        comments = await find_comments_to_redispatch(session, since)
    results["comments_checked"] = len(comments)

    for comment in comments:
        try:
            outcome = await dispatcher.dispatch(comment, publish_comment=False)
        except StoreUnavailableError as exc:
            error_msg = f"Comment {comment.id}: {exc}"
            logger.error(f"Re-dispatch failed for {error_msg}")
            results["errors"].append(error_msg)
            continue
        results["notifications_created"] += len(outcome.created)
        results["notifications_failed"] += len(outcome.failed)

    end_time = clock()
    results["completed_at"] = end_time.isoformat()
    results["duration_seconds"] = (end_time - start_time).total_seconds()

    logger.info(
        f"Re-dispatch job completed in {results['duration_seconds']:.2f}s: "
        f"{results['comments_checked']} comments checked, "
        f"{results['notifications_created']} notifications created"
    )
    return results


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the re-dispatch job."""
    import argparse

    settings = get_settings()

    parser = argparse.ArgumentParser(description="Replay notification dispatch for recent comments")
    parser.add_argument(
        "--lookback-hours",
        type=int,
        default=settings.redispatch_lookback_hours,
        help="How far back to look for comments",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    async def run() -> dict[str, Any]:
        engine = create_engine(settings)
        try:
            return await run_redispatch_job(create_session_factory(engine), args.lookback_hours)
        finally:
            await engine.dispose()

    results = asyncio.run(run())
    logger.info(f"Job completed: {results}")
    if results["errors"]:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
