"""Tests for the inventory lock that keeps fixed-price sales off auctioned items."""

import pytest
import sys
import os
from datetime import timedelta
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from auctionhouse.exceptions import ItemLockConflict, ItemNotFound
from auctionhouse.models.auction import Auction
from auctionhouse.services import auction_service, bid_service, catalog_service, inventory_lock
from auctionhouse.services.catalog_service import ItemRef, ref_for

SELLER = "seller-1"
ALICE = "buyer-alice"


class TestLockLifecycle:
    """The lock follows the auction from activation to settlement."""

    def test_active_auction_locks_until_close(self, db, make_auction, now):
        auction = make_auction(hours=2)
        ref = ref_for(auction)

        with pytest.raises(ItemLockConflict):
            inventory_lock.ensure_purchasable(db, ref, now)
        assert auction.status == "active"
        db.expire_all()
        assert inventory_lock.claim_horizon(db, ref, now) == auction.ends_at

    def test_scheduled_auction_does_not_lock_until_activated(self, db, make_auction, now):
        auction = make_auction(starts_at=now + timedelta(hours=1), hours=1)
        ref = ref_for(auction)
        assert auction.status == "scheduled"
        inventory_lock.ensure_purchasable(db, ref, now)

        assert auction_service.activate_auction(db, auction.id, now + timedelta(hours=1))
        with pytest.raises(ItemLockConflict):
            inventory_lock.ensure_purchasable(db, ref, now + timedelta(hours=1))

    def test_no_sale_releases_lock(self, db, make_auction, notifier, now):
        auction = make_auction(hours=1)
        ref = ref_for(auction)

        assert auction_service.close_auction(db, auction.id, auction.ends_at, notifier)
        item = inventory_lock.ensure_purchasable(db, ref, auction.ends_at)
        assert item.auction_locked_until is None

    def test_sold_auction_holds_lock_through_payment_window(self, db, make_auction, notifier, now):
        auction = make_auction(hours=1, payment_window_hours=24)
        bid_service.place_bid(db, auction.id, ALICE, "25.00", now=now + timedelta(minutes=5))

        assert auction_service.close_auction(db, auction.id, auction.ends_at, notifier)
        db.expire_all()
        closed = db.query(Auction).filter(Auction.id == auction.id).one()
        ref = ref_for(closed)
        with pytest.raises(ItemLockConflict):
            inventory_lock.ensure_purchasable(db, ref, closed.ends_at + timedelta(hours=23))
        item = catalog_service.get_item(db, ref)
        assert item.auction_locked_until == closed.payment_deadline


class TestSharedClaims:
    """Releasing one auction's claim never unlocks an item another auction holds."""

    def test_release_shrinks_to_remaining_claim(self, db, make_item, now):
        item = make_item()
        ref = ItemRef(item.item_type, item.id)
        first = Auction(
            item_type=item.item_type, item_id=item.id, seller_id=SELLER,
            starting_bid=Decimal("1.00"), starts_at=now, ends_at=now + timedelta(hours=1),
            status="active",
        )
        second = Auction(
            item_type=item.item_type, item_id=item.id, seller_id=SELLER,
            starting_bid=Decimal("1.00"), starts_at=now, ends_at=now + timedelta(hours=5),
            status="active",
        )
        db.add_all([first, second])
        db.commit()

        assert inventory_lock.lock(db, ref, first.ends_at, first.id, now) == second.ends_at
        db.commit()

        remaining = inventory_lock.release(db, ref, second.id, now)
        db.commit()
        assert remaining == first.ends_at
        db.refresh(item)
        assert item.auction_locked_until == first.ends_at

    def test_release_clears_when_no_other_claim(self, db, make_item, now):
        item = make_item()
        ref = ItemRef(item.item_type, item.id)
        inventory_lock.lock(db, ref, now + timedelta(hours=1), "auction-x", now)
        db.commit()

        assert inventory_lock.release(db, ref, "auction-x", now) is None
        db.commit()
        db.refresh(item)
        assert item.auction_locked_until is None


class TestMissingItem:
    """Vendor-deleted items are tolerated by the lock and rejected by the checkout guard."""

    def test_lock_on_missing_item_is_noop(self, db, now):
        ref = ItemRef("book", "does-not-exist")
        assert inventory_lock.lock(db, ref, now + timedelta(hours=1), "auction-x", now) is None
        assert inventory_lock.release(db, ref, "auction-x", now) is None

    def test_ensure_purchasable_missing_item(self, db, now):
        with pytest.raises(ItemNotFound):
            inventory_lock.ensure_purchasable(db, ItemRef("book", "does-not-exist"), now)

    def test_expired_lock_does_not_block(self, db, make_item, now):
        item = make_item()
        item.auction_locked_until = now - timedelta(seconds=1)
        db.commit()
        inventory_lock.ensure_purchasable(db, ItemRef(item.item_type, item.id), now)
