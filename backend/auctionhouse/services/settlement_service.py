"""Settlement tick — one pass over every auction and win that needs attention.

Each tick:
1. activates scheduled auctions whose start time has come
2. closes active auctions whose end time has passed
3. expires unpaid wins whose payment deadline has passed
4. sends the one-off payment reminder to winners close to their deadline

Rows are selected up front, then each one is processed in its own session
and transaction. A row that fails is logged and skipped; a row some other
tick already moved makes its transition return False and is skipped
silently.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from auctionhouse.config import settings
from auctionhouse.database import SessionLocal, utcnow
from auctionhouse.models.auction import Auction
from auctionhouse.models.auction_win import AuctionWin
from auctionhouse.models.enums import AuctionStatus, WinStatus
from auctionhouse.services import auction_service, claim_service
from auctionhouse.services.notification_service import Notifier

logger = logging.getLogger(__name__)

UNPAID = (WinStatus.PENDING_CLAIM.value, WinStatus.CLAIMED.value)


@dataclass
class TickResult:
    activated: int = 0
    ended: int = 0
    expired: int = 0
    reminded: int = 0
    failed: int = 0

    def any(self) -> bool:
        return bool(self.activated or self.ended or self.expired or self.reminded or self.failed)


def _select_ids(session_factory: sessionmaker, build_query: Callable[[Session], object]) -> list[str]:
    db = session_factory()
    try:
        return [row[0] for row in build_query(db).all()]
    finally:
        db.close()


def _process(
    session_factory: sessionmaker,
    label: str,
    row_id: str,
    step: Callable[[Session, str], bool],
) -> Optional[bool]:
    """Run one transition in its own session. None means it raised."""
    db = session_factory()
    try:
        return step(db, row_id)
    except Exception:
        db.rollback()
        logger.exception(f"[settlement] {label} {row_id} failed")
        return None
    finally:
        db.close()


def run_tick(
    session_factory: sessionmaker = SessionLocal,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
    reminder_hours: Optional[int] = None,
) -> TickResult:
    """Run one settlement pass and return what it did."""
    now = now or utcnow()
    if reminder_hours is None:
        reminder_hours = settings.PAYMENT_REMINDER_HOURS
    result = TickResult()

    def tally(outcome: Optional[bool], field: str) -> None:
        if outcome is None:
            result.failed += 1
        elif outcome:
            setattr(result, field, getattr(result, field) + 1)

    # 1. scheduled -> active
    due_to_start = _select_ids(session_factory, lambda db: (
        db.query(Auction.id)
        .filter(Auction.status == AuctionStatus.SCHEDULED.value, Auction.starts_at <= now)
        .order_by(Auction.starts_at.asc())
    ))
    for auction_id in due_to_start:
        tally(_process(session_factory, "activate auction", auction_id,
                       lambda db, row_id: auction_service.activate_auction(db, row_id, now)), "activated")

    # 2. active -> ended
    due_to_end = _select_ids(session_factory, lambda db: (
        db.query(Auction.id)
        .filter(Auction.status == AuctionStatus.ACTIVE.value, Auction.ends_at <= now)
        .order_by(Auction.ends_at.asc())
    ))
    for auction_id in due_to_end:
        tally(_process(session_factory, "close auction", auction_id,
                       lambda db, row_id: auction_service.close_auction(db, row_id, now, notifier)), "ended")

    # 3. unpaid wins past their deadline
    overdue_wins = _select_ids(session_factory, lambda db: (
        db.query(AuctionWin.id)
        .join(Auction, AuctionWin.auction_id == Auction.id)
        .filter(AuctionWin.status.in_(UNPAID), Auction.payment_deadline < now)
        .order_by(Auction.payment_deadline.asc())
    ))
    for win_id in overdue_wins:
        tally(_process(session_factory, "expire win", win_id,
                       lambda db, row_id: auction_service.expire_win(db, row_id, now, notifier)), "expired")

    # 4. claim window about to close
    if reminder_hours > 0:
        horizon = now + timedelta(hours=reminder_hours)
        closing_soon = _select_ids(session_factory, lambda db: (
            db.query(AuctionWin.id)
            .join(Auction, AuctionWin.auction_id == Auction.id)
            .filter(
                AuctionWin.status == WinStatus.PENDING_CLAIM.value,
                AuctionWin.reminder_sent_at.is_(None),
                Auction.payment_deadline >= now,
                Auction.payment_deadline <= horizon,
            )
        ))
        for win_id in closing_soon:
            tally(_process(session_factory, "remind win", win_id,
                           lambda db, row_id: claim_service.send_payment_reminder(db, row_id, now, notifier)),
                  "reminded")

    if result.any():
        logger.info(
            f"[settlement] tick: {result.activated} activated, {result.ended} ended, "
            f"{result.expired} expired, {result.reminded} reminded, {result.failed} failed"
        )
    return result
