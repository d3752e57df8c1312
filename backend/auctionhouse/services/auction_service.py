"""Auction service — lifecycle state machine, no-sale policy and seller actions.

Status moves one way only: scheduled -> active -> ended. Every transition is a
conditional UPDATE whose WHERE clause restates the transition's
precondition, so a row that another worker already moved is a silent no-op
(the function returns False) rather than a double transition. Inventory lock
changes, the AuctionWin insert and policy side effects all commit in the
same transaction as the status change.
"""

import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from auctionhouse.config import settings
from auctionhouse.database import as_utc, utcnow
from auctionhouse.exceptions import (
    AuctionAlreadyEnded,
    AuctionNotFound,
    AuctionNotUnsold,
    CancelNotAllowed,
    InvalidAuctionConfig,
    ItemLockConflict,
    ItemNotFound,
    NotAuctionSeller,
    PolicyAlreadyApplied,
    RelistLimitReached,
)
from auctionhouse.models.auction import Auction
from auctionhouse.models.auction_win import AuctionWin
from auctionhouse.models.enums import (
    AuctionStatus,
    EndOutcome,
    EndPolicy,
    ItemType,
    PolicyTrigger,
    PriceSource,
    SaleMode,
    WinStatus,
)
from auctionhouse import pricing
from auctionhouse.services import (
    audit,
    bid_service,
    catalog_service,
    inventory_lock,
    notification_service,
    order_service,
)
from auctionhouse.services.catalog_service import ItemRef, ref_for
from auctionhouse.services.notification_service import Notifier, PendingNotification

logger = logging.getLogger(__name__)

OPEN_STATUSES = (AuctionStatus.SCHEDULED.value, AuctionStatus.ACTIVE.value)


def _reload(db: Session, auction_id: str) -> Auction:
    return db.query(Auction).populate_existing().filter(Auction.id == auction_id).one()


def _parse_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise InvalidAuctionConfig(f"Invalid {field} '{value}' (expected one of: {allowed})")


def _has_open_auction(db: Session, item_ref: ItemRef) -> bool:
    return db.query(Auction).filter(
        Auction.item_type == item_ref.item_type,
        Auction.item_id == item_ref.item_id,
        Auction.status.in_(OPEN_STATUSES),
    ).first() is not None


# ---------------------------------------------------------------------------
# Creation and queries
# ---------------------------------------------------------------------------

def create_auction(
    db: Session,
    seller_id: str,
    item_ref: ItemRef,
    starting_bid,
    ends_at: datetime,
    starts_at: Optional[datetime] = None,
    reserve_price=None,
    payment_window_hours: Optional[int] = None,
    end_policy_on_no_sale: str = "none",
    relist_delay_hours: int = 0,
    relist_max_count: int = 0,
    convert_price_source: str = "manual",
    convert_markup_bps: int = 0,
    manual_fixed_price=None,
    now: Optional[datetime] = None,
) -> Auction:
    """Create an auction for a catalog item.

    Starts ``active`` (and takes the inventory lock) when ``starts_at`` is
    already due, otherwise ``scheduled``. The end policy is fixed from here on.
    """
    now = now or utcnow()
    starts_at = as_utc(starts_at) if starts_at else now
    ends_at = as_utc(ends_at)
    if payment_window_hours is None:
        payment_window_hours = settings.DEFAULT_PAYMENT_WINDOW_HOURS

    _parse_enum(ItemType, item_ref.item_type, "item_type")
    policy = _parse_enum(EndPolicy, end_policy_on_no_sale, "end_policy_on_no_sale")
    source = _parse_enum(PriceSource, convert_price_source, "convert_price_source")
    starting_bid = pricing.to_money(starting_bid)
    reserve_price = pricing.to_money(reserve_price) if reserve_price is not None else None
    manual_fixed_price = pricing.to_money(manual_fixed_price) if manual_fixed_price is not None else None

    if starting_bid <= 0:
        raise InvalidAuctionConfig("Starting bid must be positive")
    if reserve_price is not None and reserve_price < 0:
        raise InvalidAuctionConfig("Reserve price must be >= 0")
    if ends_at <= starts_at:
        raise InvalidAuctionConfig("Auction must end after it starts")
    if ends_at <= now:
        raise InvalidAuctionConfig("Auction end time is already in the past")
    if payment_window_hours <= 0:
        raise InvalidAuctionConfig("Payment window must be at least one hour")
    if relist_delay_hours < 0 or relist_max_count < 0:
        raise InvalidAuctionConfig("Relist delay and max count must be >= 0")
    if convert_markup_bps < 0:
        raise InvalidAuctionConfig("Markup must be >= 0 basis points")
    if policy == EndPolicy.CONVERT_FIXED and source == PriceSource.MANUAL and manual_fixed_price is None:
        raise InvalidAuctionConfig("Manual conversion requires manual_fixed_price")

    item = catalog_service.get_item(db, item_ref, for_update=True)
    if not item:
        raise ItemNotFound(f"{item_ref.item_type} {item_ref.item_id} not found")
    if item.vendor_id != seller_id:
        raise InvalidAuctionConfig("Item does not belong to seller")
    if item.sale_mode == SaleMode.SOLD.value:
        raise InvalidAuctionConfig("Item has already been sold")
    if _has_open_auction(db, item_ref) or inventory_lock.is_locked(item, now):
        raise ItemLockConflict("Item is already held by another auction")

    auction = Auction(
        item_type=item_ref.item_type,
        item_id=item_ref.item_id,
        seller_id=seller_id,
        starting_bid=starting_bid,
        reserve_price=reserve_price,
        bid_count=0,
        starts_at=starts_at,
        ends_at=ends_at,
        payment_window_hours=payment_window_hours,
        status=AuctionStatus.SCHEDULED.value,
        relist_count=0,
        end_policy_on_no_sale=policy.value,
        relist_delay_hours=relist_delay_hours,
        relist_max_count=relist_max_count,
        convert_price_source=source.value,
        convert_markup_bps=convert_markup_bps,
        manual_fixed_price=manual_fixed_price,
    )
    db.add(auction)
    db.flush()

    catalog_service.set_sale_mode(db, item, SaleMode.AUCTION)
    if starts_at <= now:
        auction.status = AuctionStatus.ACTIVE.value
        inventory_lock.lock(db, item_ref, ends_at, auction.id, now)

    audit.record(db, "auction", auction.id, "created", actor_id=seller_id, new_data={
        "item": f"{item_ref.item_type}:{item_ref.item_id}",
        "status": auction.status,
        "starting_bid": starting_bid,
        "reserve_price": reserve_price,
        "starts_at": starts_at,
        "ends_at": ends_at,
        "end_policy_on_no_sale": policy.value,
    })
    db.commit()
    db.refresh(auction)
    logger.info(f"Auction {auction.id} created for {item_ref.item_type} {item_ref.item_id} ({auction.status})")
    return auction


def get_auction(db: Session, auction_id: str) -> Optional[Auction]:
    return db.query(Auction).filter(Auction.id == auction_id).first()


def list_auctions(
    db: Session,
    status: Optional[str] = None,
    seller_id: Optional[str] = None,
    limit: int = 50,
) -> list[Auction]:
    """List auctions with optional filters, soonest-ending first."""
    query = db.query(Auction)
    if status:
        query = query.filter(Auction.status == status)
    if seller_id:
        query = query.filter(Auction.seller_id == seller_id)
    return query.order_by(Auction.ends_at.asc()).limit(limit).all()


def relist_history(db: Session, auction_id: str) -> list[Auction]:
    """The relist chain containing ``auction_id``, oldest first.

    Walks back over ``parent_auction_id`` to the root, then forward by
    querying for the auction whose parent is the current one.
    """
    auction = get_auction(db, auction_id)
    if not auction:
        raise AuctionNotFound("Auction not found")

    root = auction
    while root.parent_auction_id:
        parent = get_auction(db, root.parent_auction_id)
        if parent is None:
            break
        root = parent

    chain = [root]
    while True:
        child = (
            db.query(Auction)
            .filter(Auction.parent_auction_id == chain[-1].id)
            .order_by(Auction.created_at.asc())
            .first()
        )
        if child is None:
            return chain
        chain.append(child)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def activate_auction(db: Session, auction_id: str, now: Optional[datetime] = None) -> bool:
    """scheduled -> active once ``starts_at`` is due. False if already moved."""
    now = now or utcnow()
    moved = (
        db.query(Auction)
        .filter(
            Auction.id == auction_id,
            Auction.status == AuctionStatus.SCHEDULED.value,
            Auction.starts_at <= now,
        )
        .update({Auction.status: AuctionStatus.ACTIVE.value}, synchronize_session=False)
    )
    if not moved:
        db.rollback()
        return False

    auction = _reload(db, auction_id)
    inventory_lock.lock(db, ref_for(auction), auction.ends_at, auction.id, now)
    audit.record(db, "auction", auction.id, "activated",
                 old_data={"status": "scheduled"}, new_data={"status": "active"})
    db.commit()
    logger.info(f"Auction {auction_id} activated")
    return True


def close_auction(
    db: Session,
    auction_id: str,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> bool:
    """active -> ended once ``ends_at`` has passed. False if already moved.

    Sold: record the winner, set the payment deadline, create the
    AuctionWin and keep the item locked through the payment window.
    No sale: release the item and run the no-sale policy.
    """
    now = now or utcnow()
    moved = (
        db.query(Auction)
        .filter(
            Auction.id == auction_id,
            Auction.status == AuctionStatus.ACTIVE.value,
            Auction.ends_at <= now,
        )
        .update(
            {Auction.status: AuctionStatus.ENDED.value, Auction.ended_at: now},
            synchronize_session=False,
        )
    )
    if not moved:
        db.rollback()
        return False

    auction = _reload(db, auction_id)
    item_ref = ref_for(auction)
    resolution = bid_service.resolve_winner(db, auction)
    events: list[PendingNotification] = []

    if resolution.outcome == EndOutcome.SOLD:
        winner = resolution.winner
        deadline = now + timedelta(hours=auction.payment_window_hours)
        auction.end_outcome_reason = EndOutcome.SOLD.value
        auction.winner_bid_id = winner.id
        auction.payment_deadline = deadline

        win = AuctionWin(
            auction_id=auction.id,
            user_id=winner.bidder_id,
            winning_bid_id=winner.id,
            winning_amount=winner.amount,
            status=WinStatus.PENDING_CLAIM.value,
        )
        db.add(win)
        db.flush()
        inventory_lock.lock(db, item_ref, deadline, auction.id, now)
        events.append(PendingNotification(winner.bidder_id, notification_service.AUCTION_WON, {
            "auction_id": auction.id,
            "auction_win_id": win.id,
            "winning_amount": str(winner.amount),
            "payment_deadline": deadline.isoformat(),
        }))
    else:
        auction.end_outcome_reason = resolution.outcome.value
        inventory_lock.release(db, item_ref, auction.id, now)
        try:
            events.extend(apply_no_sale_policy(db, auction, PolicyTrigger.NO_SALE, resolution.outcome, now))
        except PolicyAlreadyApplied:
            logger.debug(f"Auction {auction.id}: no-sale policy already applied")

    audit.record(db, "auction", auction.id, "ended",
                 old_data={"status": "active"},
                 new_data={
                     "status": "ended",
                     "end_outcome_reason": auction.end_outcome_reason,
                     "winner_bid_id": auction.winner_bid_id,
                     "payment_deadline": auction.payment_deadline,
                 })
    db.commit()
    logger.info(f"Auction {auction_id} ended: {auction.end_outcome_reason}")

    notification_service.dispatch(db, events, notifier)
    return True


def expire_win(
    db: Session,
    win_id: str,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> bool:
    """Expire an unpaid win whose payment deadline has passed.

    Releases the item held for the winner and re-runs the original auction's
    no-sale policy as though it had ended with ``reserve_not_met``. The
    policy marker on the auction keeps this from relisting twice.
    """
    now = now or utcnow()
    overdue = select(Auction.id).where(Auction.payment_deadline < now)
    moved = (
        db.query(AuctionWin)
        .filter(
            AuctionWin.id == win_id,
            AuctionWin.status.in_([WinStatus.PENDING_CLAIM.value, WinStatus.CLAIMED.value]),
            AuctionWin.auction_id.in_(overdue),
        )
        .update(
            {AuctionWin.status: WinStatus.EXPIRED.value, AuctionWin.expired_at: now},
            synchronize_session=False,
        )
    )
    if not moved:
        db.rollback()
        return False

    win = db.query(AuctionWin).populate_existing().filter(AuctionWin.id == win_id).one()
    auction = _reload(db, win.auction_id)
    if win.order_id:
        order = order_service.get_order(db, win.order_id)
        if order:
            order_service.cancel_order(db, order)

    inventory_lock.release(db, ref_for(auction), auction.id, now)
    events = [PendingNotification(win.user_id, notification_service.WIN_EXPIRED, {
        "auction_id": auction.id,
        "auction_win_id": win.id,
    })]
    try:
        events.extend(apply_no_sale_policy(
            db, auction, PolicyTrigger.UNPAID_WINNER, EndOutcome.RESERVE_NOT_MET, now,
        ))
    except PolicyAlreadyApplied:
        logger.debug(f"Auction {auction.id}: no-sale policy already applied")

    audit.record(db, "auction_win", win.id, "expired",
                 old_data={"status": "pending_claim|claimed"}, new_data={"status": "expired"})
    db.commit()
    logger.info(f"Win {win_id} on auction {auction.id} expired unpaid")

    notification_service.dispatch(db, events, notifier)
    return True


def cancel_auction(
    db: Session,
    auction_id: str,
    actor_id: str,
    now: Optional[datetime] = None,
) -> Auction:
    """End a scheduled auction, or an active one without bids, as cancelled.

    No end policy runs for a cancelled auction.
    """
    now = now or utcnow()
    auction = db.query(Auction).filter(Auction.id == auction_id).with_for_update().first()
    if not auction:
        raise AuctionNotFound("Auction not found")
    if auction.status == AuctionStatus.ENDED.value:
        raise AuctionAlreadyEnded(f"Auction already ended ({auction.end_outcome_reason})")
    if actor_id != auction.seller_id:
        raise CancelNotAllowed("Only the seller can cancel an auction")
    if auction.bid_count > 0:
        raise CancelNotAllowed("Cannot cancel an auction that has bids")

    old_status = auction.status
    moved = (
        db.query(Auction)
        .filter(
            Auction.id == auction_id,
            Auction.status == old_status,
            Auction.bid_count == 0,
        )
        .update(
            {
                Auction.status: AuctionStatus.ENDED.value,
                Auction.ended_at: now,
                Auction.end_outcome_reason: EndOutcome.CANCELLED.value,
            },
            synchronize_session=False,
        )
    )
    if not moved:
        db.rollback()
        raise CancelNotAllowed("Auction changed while cancelling, please retry")

    inventory_lock.release(db, ref_for(auction), auction_id, now)
    audit.record(db, "auction", auction_id, "cancelled", actor_id=actor_id,
                 old_data={"status": old_status},
                 new_data={"status": "ended", "end_outcome_reason": "cancelled"})
    db.commit()
    logger.info(f"Auction {auction_id} cancelled by {actor_id}")
    return _reload(db, auction_id)


# ---------------------------------------------------------------------------
# No-sale policy
# ---------------------------------------------------------------------------

def _claim_policy_marker(db: Session, auction: Auction, trigger: PolicyTrigger, now: datetime) -> None:
    marked = (
        db.query(Auction)
        .filter(Auction.id == auction.id, Auction.policy_applied_at.is_(None))
        .update(
            {Auction.policy_applied_at: now, Auction.policy_trigger: trigger.value},
            synchronize_session=False,
        )
    )
    if not marked:
        raise PolicyAlreadyApplied(f"End policy already applied to auction {auction.id}")


def apply_no_sale_policy(
    db: Session,
    auction: Auction,
    trigger: PolicyTrigger,
    reason: EndOutcome,
    now: datetime,
) -> list[PendingNotification]:
    """Run the auction's end policy once, inside the caller's transaction.

    The ``policy_applied_at`` marker is set with a conditional UPDATE first;
    if it was already set this raises ``PolicyAlreadyApplied`` and changes
    nothing. When the policy leaves the item where it is (policy ``none``,
    relist limit reached, item gone) the marker is handed back so the seller
    can still relist, convert or unlist by hand. Returns the notifications
    to send after commit.
    """
    _claim_policy_marker(db, auction, trigger, now)
    policy = EndPolicy(auction.end_policy_on_no_sale)
    result, events = _run_policy(db, auction, policy, trigger, reason, now)
    if result["action"] == "none":
        (
            db.query(Auction)
            .filter(Auction.id == auction.id)
            .update({Auction.policy_applied_at: None}, synchronize_session=False)
        )
    return events


def _run_policy(
    db: Session,
    auction: Auction,
    policy: EndPolicy,
    trigger: PolicyTrigger,
    reason: EndOutcome,
    now: datetime,
    actor_id: str = audit.SYSTEM_ACTOR,
    price: Optional[Decimal] = None,
) -> tuple[dict, list[PendingNotification]]:
    item_ref = ref_for(auction)
    events: list[PendingNotification] = []
    result: dict = {"policy": policy.value, "trigger": trigger.value, "reason": reason.value}

    if policy == EndPolicy.NONE:
        result["action"] = "none"

    elif policy == EndPolicy.RELIST:
        if auction.relist_max_count and auction.relist_count >= auction.relist_max_count:
            result["action"] = "none"
            result["detail"] = "relist_limit_reached"
        elif catalog_service.get_item(db, item_ref) is None:
            result["action"] = "none"
            result["detail"] = "item_missing"
        else:
            child = _relist(db, auction, now, start_now=trigger == PolicyTrigger.MANUAL)
            result["action"] = "relist"
            result["child_auction_id"] = child.id
            events.append(PendingNotification(auction.seller_id, notification_service.RELIST_CREATED, {
                "auction_id": auction.id,
                "relist_auction_id": child.id,
                "starts_at": child.starts_at.isoformat(),
                "relist_count": child.relist_count,
            }))

    elif policy == EndPolicy.CONVERT_FIXED:
        item = catalog_service.get_item(db, item_ref, for_update=True)
        if item is None:
            result["action"] = "none"
            result["detail"] = "item_missing"
        else:
            if price is None:
                price = _convert_price(db, auction)
            inventory_lock.release(db, item_ref, auction.id, now)
            catalog_service.set_sale_mode(db, item, SaleMode.FIXED, price)
            result["action"] = "convert_fixed"
            result["price"] = str(price)
            events.append(PendingNotification(auction.seller_id, notification_service.AUCTION_CONVERTED, {
                "auction_id": auction.id,
                "price": str(price),
            }))

    elif policy == EndPolicy.UNLIST:
        item = catalog_service.get_item(db, item_ref, for_update=True)
        if item is None:
            result["action"] = "none"
            result["detail"] = "item_missing"
        else:
            inventory_lock.release(db, item_ref, auction.id, now)
            catalog_service.set_sale_mode(db, item, SaleMode.UNLISTED)
            result["action"] = "unlist"
            events.append(PendingNotification(auction.seller_id, notification_service.AUCTION_UNLISTED, {
                "auction_id": auction.id,
            }))

    auction.policy_result = json.dumps(result)
    audit.record(db, "auction", auction.id, "policy_applied", actor_id=actor_id, new_data=result)
    logger.info(f"Auction {auction.id}: {trigger.value} policy {policy.value} -> {result['action']}")
    return result, events


def _convert_price(db: Session, auction: Auction) -> Decimal:
    top = bid_service.highest_bid(db, auction.id)
    return pricing.fixed_price(
        PriceSource(auction.convert_price_source),
        auction.convert_markup_bps,
        starting_bid=auction.starting_bid,
        reserve_price=auction.reserve_price,
        highest_bid=top.amount if top else None,
        manual_price=auction.manual_fixed_price,
    )


def _relist(db: Session, parent: Auction, now: datetime, start_now: bool = False) -> Auction:
    """Copy ``parent`` into a new auction with the same duration.

    The automatic relist is scheduled after the relist delay, counted from
    the parent's end; one triggered later (by an unpaid winner) never starts
    in the past. A seller's manual relist starts right away.
    """
    duration = parent.ends_at - parent.starts_at
    if start_now:
        starts_at = now
    else:
        starts_at = max((parent.ended_at or now) + timedelta(hours=parent.relist_delay_hours), now)
    child = Auction(
        item_type=parent.item_type,
        item_id=parent.item_id,
        seller_id=parent.seller_id,
        starting_bid=parent.starting_bid,
        reserve_price=parent.reserve_price,
        bid_count=0,
        starts_at=starts_at,
        ends_at=starts_at + duration,
        payment_window_hours=parent.payment_window_hours,
        status=AuctionStatus.SCHEDULED.value,
        relist_count=parent.relist_count + 1,
        parent_auction_id=parent.id,
        end_policy_on_no_sale=parent.end_policy_on_no_sale,
        relist_delay_hours=parent.relist_delay_hours,
        relist_max_count=parent.relist_max_count,
        convert_price_source=parent.convert_price_source,
        convert_markup_bps=parent.convert_markup_bps,
        manual_fixed_price=parent.manual_fixed_price,
    )
    db.add(child)
    db.flush()
    if start_now:
        child.status = AuctionStatus.ACTIVE.value
        inventory_lock.lock(db, ref_for(child), child.ends_at, child.id, now)
    audit.record(db, "auction", child.id, "created", new_data={
        "relist_of": parent.id,
        "relist_count": child.relist_count,
        "status": child.status,
        "starts_at": starts_at,
        "ends_at": child.ends_at,
    })
    return child


# ---------------------------------------------------------------------------
# Seller actions on unsold auctions
# ---------------------------------------------------------------------------

def _load_unsold(db: Session, auction_id: str, actor_id: str) -> tuple[Auction, EndOutcome]:
    """Lock an ended, unsold auction owned by ``actor_id``.

    Unsold means it ended with ``no_bids`` or ``reserve_not_met``, or it
    sold and the winner let the payment window lapse. Cancelled auctions
    are excluded. Returns the auction and the no-sale reason to record.
    """
    auction = db.query(Auction).filter(Auction.id == auction_id).with_for_update().first()
    if not auction:
        raise AuctionNotFound("Auction not found")
    if actor_id != auction.seller_id:
        raise NotAuctionSeller("Only the seller can act on this auction")
    if auction.status != AuctionStatus.ENDED.value:
        raise AuctionNotUnsold(f"Auction has not ended (status: {auction.status})")

    outcome = auction.end_outcome_reason
    if outcome in (EndOutcome.NO_BIDS.value, EndOutcome.RESERVE_NOT_MET.value):
        return auction, EndOutcome(outcome)
    if outcome == EndOutcome.SOLD.value:
        win = db.query(AuctionWin).filter(AuctionWin.auction_id == auction.id).first()
        if win is not None and win.status == WinStatus.EXPIRED.value:
            return auction, EndOutcome.RESERVE_NOT_MET
    raise AuctionNotUnsold(f"Only unsold auctions can be relisted, converted or unlisted ({outcome})")


def _ensure_item_free(db: Session, auction: Auction, now: datetime) -> None:
    item_ref = ref_for(auction)
    item = catalog_service.get_item(db, item_ref, for_update=True)
    if item is None:
        raise ItemNotFound(f"{item_ref.item_type} {item_ref.item_id} not found")
    if item.sale_mode == SaleMode.SOLD.value:
        raise AuctionNotUnsold("Item has already been sold")
    if _has_open_auction(db, item_ref) or inventory_lock.is_locked(item, now):
        raise ItemLockConflict("Item is already held by another auction")


def _seller_action(
    db: Session,
    auction_id: str,
    actor_id: str,
    policy: EndPolicy,
    now: Optional[datetime],
    notifier: Optional[Notifier],
    price: Optional[Decimal] = None,
) -> dict:
    now = now or utcnow()
    auction, reason = _load_unsold(db, auction_id, actor_id)
    _ensure_item_free(db, auction, now)
    if policy == EndPolicy.RELIST and auction.relist_max_count and auction.relist_count >= auction.relist_max_count:
        raise RelistLimitReached(f"Maximum relist limit ({auction.relist_max_count}) reached")
    if (
        policy == EndPolicy.CONVERT_FIXED
        and price is None
        and auction.convert_price_source == PriceSource.MANUAL.value
        and auction.manual_fixed_price is None
    ):
        raise InvalidAuctionConfig("Price required for manual conversion")

    # Shares the marker with the automatic policy, so only one of them acts
    _claim_policy_marker(db, auction, PolicyTrigger.MANUAL, now)
    result, events = _run_policy(
        db, auction, policy, PolicyTrigger.MANUAL, reason, now, actor_id=actor_id, price=price,
    )
    db.commit()
    logger.info(f"Auction {auction_id}: seller {actor_id} chose {result['action']}")

    notification_service.dispatch(db, events, notifier)
    return result


def relist_ended(
    db: Session,
    auction_id: str,
    actor_id: str,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Auction:
    """Relist an unsold auction now, with the same terms and duration.

    Counts against ``relist_max_count``. Returns the new, active auction.
    """
    result = _seller_action(db, auction_id, actor_id, EndPolicy.RELIST, now, notifier)
    return _reload(db, result["child_auction_id"])


def convert_ended(
    db: Session,
    auction_id: str,
    actor_id: str,
    price=None,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Decimal:
    """Put an unsold auction's item on fixed-price sale.

    Without ``price`` the auction's convert price source decides, as the
    automatic policy would. Returns the listed price.
    """
    if price is not None:
        price = pricing.to_money(price)
        if price <= 0:
            raise InvalidAuctionConfig("Fixed price must be positive")
    result = _seller_action(db, auction_id, actor_id, EndPolicy.CONVERT_FIXED, now, notifier, price=price)
    return Decimal(result["price"])


def unlist_ended(
    db: Session,
    auction_id: str,
    actor_id: str,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Auction:
    """Take an unsold auction's item off sale. Returns the auction."""
    _seller_action(db, auction_id, actor_id, EndPolicy.UNLIST, now, notifier)
    return _reload(db, auction_id)
