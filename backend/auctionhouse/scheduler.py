"""APScheduler setup for the periodic settlement tick."""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from auctionhouse.config import settings
from auctionhouse.services.settlement_service import run_tick

logger = logging.getLogger(__name__)

_scheduler: Optional[BackgroundScheduler] = None


def settlement_job():
    """Run one settlement tick; never let an error kill the job."""
    try:
        run_tick()
    except Exception as e:
        logger.error(f"Settlement tick failed: {e}", exc_info=True)


def init_scheduler(interval_seconds: Optional[int] = None) -> BackgroundScheduler:
    """Start the background scheduler with the settlement job."""
    global _scheduler
    interval = interval_seconds or settings.SETTLEMENT_INTERVAL_SECONDS
    _scheduler = BackgroundScheduler(timezone="UTC")
    _scheduler.add_job(
        settlement_job,
        trigger=IntervalTrigger(seconds=interval),
        id="auction_settlement",
        name="Auction Settlement Tick",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    _scheduler.start()
    logger.info(f"APScheduler started with auction settlement every {interval}s")
    return _scheduler


def shutdown_scheduler():
    """Gracefully shut down the scheduler."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("APScheduler shut down")
