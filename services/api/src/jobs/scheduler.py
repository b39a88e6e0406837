"""APScheduler setup for the periodic auction status sweep."""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from models.operations.auctions import auction_sweep_statuses
from utils import log

logger = log.get_logger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None


async def auction_status_sweep_job():
    """Persist upcoming->live and live->ended transitions that are due."""
    try:
        advanced = await auction_sweep_statuses()
    except Exception as e:
        logger.error(f"Auction status sweep failed: {e}", exc_info=True)
        return
    if advanced:
        logger.info(f"Auction status sweep advanced {advanced} auctions")


def init_scheduler(interval_seconds: int) -> Optional[AsyncIOScheduler]:
    """Start the status sweep. An interval of 0 leaves the scheduler off."""
    global _scheduler
    if interval_seconds <= 0:
        logger.info("Auction status sweep disabled; statuses are derived on read only")
        return None
    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        auction_status_sweep_job,
        trigger=IntervalTrigger(seconds=interval_seconds),
        id="auction_status_sweep",
        name="Auction Status Sweep",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()
    logger.info(f"APScheduler started with auction status sweep every {interval_seconds}s")
    return _scheduler


def shutdown_scheduler():
    """Gracefully shut down the scheduler."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("APScheduler shut down")
