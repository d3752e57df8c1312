"""Inventory lock coordinator — keeps fixed-price sales off auctioned items.

An item's ``auction_locked_until`` is the latest moment any auction still has
a claim on it: an active auction until its scheduled close, or a sold
auction whose win is unpaid until its payment deadline. Every mutation runs
on the caller's session, inside the transaction of the auction or win change
that caused it.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from auctionhouse.exceptions import ItemLockConflict, ItemNotFound
from auctionhouse.models.auction import Auction
from auctionhouse.models.auction_win import AuctionWin
from auctionhouse.models.enums import AuctionStatus, WinStatus
from auctionhouse.models.item import CatalogItem
from auctionhouse.services import catalog_service
from auctionhouse.services.catalog_service import ItemRef

logger = logging.getLogger(__name__)


def _item_filter(query, item_ref: ItemRef):
    return query.filter(
        Auction.item_type == item_ref.item_type,
        Auction.item_id == item_ref.item_id,
    )


def claim_horizon(
    db: Session,
    item_ref: ItemRef,
    now: datetime,
    exclude_auction_id: Optional[str] = None,
) -> Optional[datetime]:
    """Latest time another auction still claims the item, or None."""
    active = _item_filter(db.query(func.max(Auction.ends_at)), item_ref).filter(
        Auction.status == AuctionStatus.ACTIVE.value,
    )
    unpaid = _item_filter(
        db.query(func.max(Auction.payment_deadline))
        .select_from(Auction)
        .join(AuctionWin, AuctionWin.auction_id == Auction.id),
        item_ref,
    ).filter(
        AuctionWin.status.in_([WinStatus.PENDING_CLAIM.value, WinStatus.CLAIMED.value]),
        Auction.payment_deadline > now,
    )
    if exclude_auction_id is not None:
        active = active.filter(Auction.id != exclude_auction_id)
        unpaid = unpaid.filter(Auction.id != exclude_auction_id)

    horizons = [h for h in (active.scalar(), unpaid.scalar()) if h is not None]
    return max(horizons) if horizons else None


def lock(db: Session, item_ref: ItemRef, until: datetime, auction_id: str, now: datetime) -> Optional[datetime]:
    """Hold the item for ``auction_id`` until ``until``.

    Never ends earlier than a claim held by another auction. Returns the
    effective lock time, or None if the item no longer exists.
    """
    item = catalog_service.get_item(db, item_ref, for_update=True)
    if item is None:
        logger.warning(f"Cannot lock {item_ref.item_type} {item_ref.item_id} for auction {auction_id}: item is gone")
        return None

    horizon = claim_horizon(db, item_ref, now, exclude_auction_id=auction_id)
    effective = max(until, horizon) if horizon is not None else until
    catalog_service.set_auction_lock(db, item, effective)
    return effective


def release(db: Session, item_ref: ItemRef, auction_id: str, now: datetime) -> Optional[datetime]:
    """Drop ``auction_id``'s claim on the item.

    The lock is cleared only when no other auction claims the item; otherwise
    it shrinks to the remaining claim. Returns the remaining lock time.
    """
    item = catalog_service.get_item(db, item_ref, for_update=True)
    if item is None:
        logger.warning(f"Cannot release {item_ref.item_type} {item_ref.item_id} for auction {auction_id}: item is gone")
        return None

    horizon = claim_horizon(db, item_ref, now, exclude_auction_id=auction_id)
    catalog_service.set_auction_lock(db, item, horizon)
    return horizon


def is_locked(item: CatalogItem, now: datetime) -> bool:
    """True while the item may not be sold at a fixed price."""
    return item.auction_locked_until is not None and item.auction_locked_until > now


def ensure_purchasable(db: Session, item_ref: ItemRef, now: datetime) -> CatalogItem:
    """Guard for the fixed-price checkout path."""
    item = catalog_service.get_item(db, item_ref)
    if item is None:
        raise ItemNotFound(f"{item_ref.item_type} {item_ref.item_id} not found")
    if is_locked(item, now):
        raise ItemLockConflict(
            f"{item_ref.item_type} {item_ref.item_id} is held by an auction until "
            f"{item.auction_locked_until.isoformat()}"
        )
    return item
