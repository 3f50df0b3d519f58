"""Scheduler: prunes idle conversations on an interval using APScheduler."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from genui.config import RetentionConfig
    from genui.conversation import InMemoryConversationStore

logger = logging.getLogger(__name__)

PRUNE_JOB_ID = "prune_conversations"


def build_trigger(retention: RetentionConfig) -> IntervalTrigger:
    """Convert retention settings into an APScheduler IntervalTrigger."""
    return IntervalTrigger(minutes=retention.prune_every_minutes)


async def prune_conversations(store: InMemoryConversationStore, retention: RetentionConfig) -> int:
    """Drop conversations idle longer than ``max_idle_minutes``."""
    try:
        removed = store.prune(timedelta(minutes=retention.max_idle_minutes))
    except Exception as e:
        logger.error(f"Conversation prune failed: {e}", exc_info=True)
        return 0
    logger.info(f"Retention run complete: removed={removed}, remaining={len(store)}")
    return removed


def setup_scheduler(retention: RetentionConfig, store: InMemoryConversationStore) -> AsyncIOScheduler:
    """Build and configure the scheduler from the retention config."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        prune_conversations,
        trigger=build_trigger(retention),
        args=[store, retention],
        id=PRUNE_JOB_ID,
        replace_existing=True,
    )
    logger.info(
        f"Scheduled conversation prune: every={retention.prune_every_minutes}m, "
        f"max_idle={retention.max_idle_minutes}m"
    )
    return scheduler
