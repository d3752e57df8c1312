"""Claim service — turns an auction win into an order and then a paid sale.

``claim`` and the scheduler's expiry race on the same win. Both are
conditional UPDATEs: claim only succeeds while the win is still
``pending_claim`` and the payment deadline has not passed *at commit time*,
and expiry only succeeds while the win is still unpaid.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from auctionhouse.database import utcnow
from auctionhouse.exceptions import (
    AlreadyClaimed,
    AlreadyPaid,
    NotClaimed,
    NotWinOwner,
    PaymentFailed,
    WindowExpired,
    WinNotFound,
)
from auctionhouse.models.auction import Auction
from auctionhouse.models.auction_win import AuctionWin
from auctionhouse.models.enums import WinStatus
from auctionhouse.services import audit, catalog_service, inventory_lock, notification_service, order_service
from auctionhouse.services.catalog_service import ref_for
from auctionhouse.services.notification_service import Notifier, PendingNotification
from auctionhouse.services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)


def _load_owned_win(db: Session, win_id: str, buyer_id: str) -> AuctionWin:
    win = db.query(AuctionWin).filter(AuctionWin.id == win_id).with_for_update().first()
    if not win:
        raise WinNotFound("Auction win not found")
    if win.user_id != buyer_id:
        raise NotWinOwner("This auction win belongs to another buyer")
    return win


def _check_claimable(win: AuctionWin, auction: Auction, now: datetime) -> None:
    if win.status in (WinStatus.CLAIMED.value, WinStatus.PAID.value):
        raise AlreadyClaimed("Auction win already claimed")
    if win.status == WinStatus.EXPIRED.value:
        raise WindowExpired("Payment window has expired")
    if now > auction.payment_deadline:
        raise WindowExpired(f"Payment window closed at {auction.payment_deadline.isoformat()}")


def claim(db: Session, win_id: str, buyer_id: str, now: Optional[datetime] = None) -> AuctionWin:
    """Create the order for a won auction.

    Steps, in one transaction:
    1. Lock the win and check owner, status and payment deadline
    2. Create an order for the auction's item at the winning amount
    3. Move the win to ``claimed``, re-checking status and deadline in the
       UPDATE itself
    """
    now = now or utcnow()
    win = _load_owned_win(db, win_id, buyer_id)
    auction = win.auction
    _check_claimable(win, auction, now)

    order = order_service.create_order(db, buyer_id, ref_for(auction), win.winning_amount)

    still_open = select(Auction.id).where(Auction.payment_deadline >= now)
    moved = (
        db.query(AuctionWin)
        .filter(
            AuctionWin.id == win_id,
            AuctionWin.status == WinStatus.PENDING_CLAIM.value,
            AuctionWin.auction_id.in_(still_open),
        )
        .update(
            {
                AuctionWin.status: WinStatus.CLAIMED.value,
                AuctionWin.order_id: order.id,
                AuctionWin.claimed_at: now,
            },
            synchronize_session=False,
        )
    )
    if not moved:
        db.rollback()
        win = db.query(AuctionWin).filter(AuctionWin.id == win_id).one()
        _check_claimable(win, win.auction, now)
        raise AlreadyClaimed("Auction win changed while claiming")

    audit.record(db, "auction_win", win_id, "claimed", actor_id=buyer_id,
                 old_data={"status": "pending_claim"},
                 new_data={"status": "claimed", "order_id": order.id})
    db.commit()
    logger.info(f"Win {win_id} claimed by {buyer_id} with order {order.id}")
    return db.query(AuctionWin).populate_existing().filter(AuctionWin.id == win_id).one()


def pay(
    db: Session,
    win_id: str,
    buyer_id: str,
    gateway: PaymentGateway,
    now: Optional[datetime] = None,
) -> AuctionWin:
    """Capture payment for a claimed win and complete the sale.

    A declined charge raises ``PaymentFailed`` and leaves the win ``claimed``;
    if the deadline then passes, the scheduler expires it. The charge is not
    retried here.
    """
    now = now or utcnow()
    win = _load_owned_win(db, win_id, buyer_id)
    if win.status == WinStatus.PENDING_CLAIM.value:
        raise NotClaimed("Claim the auction win before paying")
    if win.status == WinStatus.PAID.value:
        raise AlreadyPaid("Auction win already paid")
    if win.status == WinStatus.EXPIRED.value:
        raise WindowExpired("Payment window has expired")

    auction = win.auction
    if now > auction.payment_deadline:
        raise WindowExpired(f"Payment window closed at {auction.payment_deadline.isoformat()}")

    order = order_service.get_order(db, win.order_id)
    amount = win.winning_amount
    if not gateway.charge(order.id, amount):
        db.rollback()
        logger.warning(f"Payment declined for win {win_id} (order {order.id})")
        raise PaymentFailed("Payment was declined")

    moved = (
        db.query(AuctionWin)
        .filter(AuctionWin.id == win_id, AuctionWin.status == WinStatus.CLAIMED.value)
        .update(
            {AuctionWin.status: WinStatus.PAID.value, AuctionWin.paid_at: now},
            synchronize_session=False,
        )
    )
    if not moved:
        db.rollback()
        logger.error(f"Charge captured for order {order.id} but win {win_id} is no longer claimed; refund required")
        raise WindowExpired("Auction win expired before payment completed")

    order_service.mark_paid(db, order, now)
    item_ref = ref_for(auction)
    inventory_lock.release(db, item_ref, auction.id, now)
    item = catalog_service.get_item(db, item_ref, for_update=True)
    if item is not None:
        catalog_service.confirm_sale(db, item, amount)
    else:
        logger.warning(f"Win {win_id} paid but {item_ref.item_type} {item_ref.item_id} no longer exists")

    audit.record(db, "auction_win", win_id, "paid", actor_id=buyer_id,
                 old_data={"status": "claimed"},
                 new_data={"status": "paid", "order_id": order.id, "amount": amount})
    db.commit()
    logger.info(f"Win {win_id} paid: {amount} (order {order.id})")
    return db.query(AuctionWin).populate_existing().filter(AuctionWin.id == win_id).one()


def send_payment_reminder(
    db: Session,
    win_id: str,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> bool:
    """Remind an unclaimed winner once that the payment window is closing."""
    now = now or utcnow()
    moved = (
        db.query(AuctionWin)
        .filter(
            AuctionWin.id == win_id,
            AuctionWin.status == WinStatus.PENDING_CLAIM.value,
            AuctionWin.reminder_sent_at.is_(None),
        )
        .update({AuctionWin.reminder_sent_at: now}, synchronize_session=False)
    )
    if not moved:
        db.rollback()
        return False
    db.commit()

    win = db.query(AuctionWin).filter(AuctionWin.id == win_id).one()
    notification_service.dispatch(db, [PendingNotification(
        win.user_id,
        notification_service.PAYMENT_REMINDER,
        {
            "auction_id": win.auction_id,
            "auction_win_id": win.id,
            "payment_deadline": win.auction.payment_deadline.isoformat(),
        },
    )], notifier)
    return True


def get_win(db: Session, win_id: str) -> Optional[AuctionWin]:
    return db.query(AuctionWin).filter(AuctionWin.id == win_id).first()


def list_user_wins(db: Session, user_id: str, status: Optional[str] = None) -> list[AuctionWin]:
    """A buyer's wins, newest first."""
    query = db.query(AuctionWin).filter(AuctionWin.user_id == user_id)
    if status:
        query = query.filter(AuctionWin.status == status)
    return query.order_by(AuctionWin.created_at.desc()).all()
