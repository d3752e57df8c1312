"""Bid ledger — accepts bids and resolves the winner at close.

The auction's ``current_bid`` / ``bid_count`` columns are a denormalized view
of the bid table. They are written only by a compare-and-set UPDATE in the
same transaction as the bid insert, so two concurrent bids can never both
be accepted against the same "current highest".
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import NamedTuple, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from auctionhouse.database import utcnow
from auctionhouse.exceptions import AlreadyHighestBidder, AuctionNotActive, AuctionNotFound, BidTooLow
from auctionhouse.models.auction import Auction
from auctionhouse.models.bid import Bid
from auctionhouse.models.enums import AuctionStatus, EndOutcome
from auctionhouse.pricing import to_money
from auctionhouse.services import notification_service
from auctionhouse.services.notification_service import Notifier, PendingNotification

logger = logging.getLogger(__name__)

MAX_CAS_RETRIES = 5


class WinnerResolution(NamedTuple):
    winner: Optional[Bid]       # qualifying bid, if any
    outcome: EndOutcome         # sold | reserve_not_met | no_bids
    highest: Optional[Bid]      # highest bid even when below reserve


def _check_accepting(auction: Auction, now: datetime) -> None:
    if auction.status != AuctionStatus.ACTIVE.value:
        raise AuctionNotActive(f"Auction is not active (status: {auction.status})")
    if now > auction.ends_at:
        raise AuctionNotActive("Auction has ended")


def _check_amount(auction: Auction, amount: Decimal) -> None:
    if auction.current_bid is None:
        if amount < auction.starting_bid:
            raise BidTooLow(f"Bid must be at least {auction.starting_bid}")
    elif amount <= auction.current_bid:
        raise BidTooLow(f"Bid must be higher than the current bid of {auction.current_bid}")


def _next_placed_at(db: Session, auction_id: str, now: datetime) -> datetime:
    """Server timestamp that never goes backwards within one auction."""
    last = db.query(func.max(Bid.placed_at)).filter(Bid.auction_id == auction_id).scalar()
    if last is not None and now <= last:
        return last + timedelta(microseconds=1)
    return now


def place_bid(
    db: Session,
    auction_id: str,
    bidder_id: str,
    amount,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Bid:
    """Accept a bid strictly above the current highest, atomically.

    Steps, in one transaction:
    1. Lock the auction row and validate status, close time, amount and
       that the bidder is not already the highest bidder
    2. Compare-and-set the cached high bid against the snapshot just read
    3. Insert the bid with the next per-auction sequence number
    A lost compare-and-set rolls back and re-validates, so a concurrent
    equal bid ends in ``BidTooLow`` and a concurrent close in
    ``AuctionNotActive``.
    """
    now = now or utcnow()
    amount = to_money(amount)
    if amount <= 0:
        raise BidTooLow("Bid must be positive")

    for attempt in range(MAX_CAS_RETRIES + 1):
        auction = db.query(Auction).filter(Auction.id == auction_id).with_for_update().first()
        if not auction:
            raise AuctionNotFound("Auction not found")
        _check_accepting(auction, now)
        _check_amount(auction, amount)
        if auction.current_bidder_id == bidder_id:
            raise AlreadyHighestBidder("You already have the highest bid on this auction")

        seen_count = auction.bid_count
        previous_bidder_id = auction.current_bidder_id
        swapped = (
            db.query(Auction)
            .filter(
                Auction.id == auction_id,
                Auction.status == AuctionStatus.ACTIVE.value,
                Auction.ends_at >= now,
                Auction.bid_count == seen_count,
            )
            .update(
                {
                    Auction.current_bid: amount,
                    Auction.current_bidder_id: bidder_id,
                    Auction.bid_count: Auction.bid_count + 1,
                },
                synchronize_session=False,
            )
        )
        if swapped:
            break
        logger.debug(f"Bid CAS lost on auction {auction_id} (attempt {attempt + 1}), re-validating")
        db.rollback()
    else:
        raise BidTooLow("Too many concurrent bids, please retry")

    bid = Bid(
        auction_id=auction_id,
        bidder_id=bidder_id,
        amount=amount,
        sequence=seen_count + 1,
        placed_at=_next_placed_at(db, auction_id, now),
    )
    db.add(bid)
    db.commit()
    db.refresh(bid)

    logger.info(f"Bid {bid.id} accepted on auction {auction_id}: {amount} by {bidder_id}")

    if previous_bidder_id:
        notification_service.dispatch(db, [PendingNotification(
            previous_bidder_id,
            notification_service.OUTBID,
            {"auction_id": auction_id, "current_bid": str(amount)},
        )], notifier)
    return bid


def highest_bid(db: Session, auction_id: str) -> Optional[Bid]:
    """Highest accepted bid, read from the bid table (earliest wins a tie)."""
    return (
        db.query(Bid)
        .filter(Bid.auction_id == auction_id)
        .order_by(Bid.amount.desc(), Bid.sequence.asc())
        .first()
    )


def resolve_winner(db: Session, auction: Auction) -> WinnerResolution:
    """Decide the outcome of a closing auction.

    No reserve configured counts as a reserve of zero, so any accepted bid wins.
    """
    top = highest_bid(db, auction.id)
    if top is None:
        return WinnerResolution(None, EndOutcome.NO_BIDS, None)

    reserve = auction.reserve_price if auction.reserve_price is not None else Decimal("0")
    if top.amount >= reserve:
        return WinnerResolution(top, EndOutcome.SOLD, top)
    return WinnerResolution(None, EndOutcome.RESERVE_NOT_MET, top)


def list_bids(db: Session, auction_id: str, limit: int = 50) -> list[Bid]:
    """Bid history, newest first."""
    return (
        db.query(Bid)
        .filter(Bid.auction_id == auction_id)
        .order_by(Bid.sequence.desc())
        .limit(limit)
        .all()
    )


def list_user_bids(db: Session, bidder_id: str, limit: int = 50) -> list[Bid]:
    return (
        db.query(Bid)
        .filter(Bid.bidder_id == bidder_id)
        .order_by(Bid.placed_at.desc())
        .limit(limit)
        .all()
    )
