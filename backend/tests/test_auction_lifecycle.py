"""Tests for the auction state machine and the no-sale policies."""

import json
import pytest
import sys
import os
from datetime import timedelta
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from auctionhouse.exceptions import (
    AuctionAlreadyEnded,
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
from auctionhouse.models.enums import EndOutcome, PolicyTrigger
from auctionhouse.models.item import CatalogItem
from auctionhouse.models.order import Order
from auctionhouse.services import auction_service, bid_service, claim_service, notification_service
from auctionhouse.services.catalog_service import ItemRef

SELLER = "seller-1"
ALICE = "buyer-alice"
BOB = "buyer-bob"


def _fresh(db, model, row_id):
    db.expire_all()
    return db.query(model).filter(model.id == row_id).one()


def _bid_and_close(db, auction, bids, notifier):
    """Place ``(bidder, amount)`` bids a minute apart, then close at ``ends_at``."""
    for i, (bidder, amount) in enumerate(bids):
        bid_service.place_bid(db, auction.id, bidder, amount, now=auction.starts_at + timedelta(minutes=i + 1))
    assert auction_service.close_auction(db, auction.id, auction.ends_at, notifier)
    return _fresh(db, Auction, auction.id)


def _win_for(db, auction):
    return db.query(AuctionWin).filter(AuctionWin.auction_id == auction.id).one_or_none()


def _assert_winner_iff_sold(db):
    for auction in db.query(Auction).filter(Auction.status == "ended").all():
        assert (auction.winner_bid_id is not None) == (auction.end_outcome_reason == "sold")


class TestCreateAuction:
    """Test configuration validation and the initial status."""

    def test_starts_active_when_due(self, make_auction):
        auction = make_auction()
        assert auction.status == "active"
        assert auction.payment_window_hours == 48

    def test_starts_scheduled_in_future(self, make_auction, now):
        assert make_auction(starts_at=now + timedelta(days=1)).status == "scheduled"

    def test_item_switches_to_auction_mode(self, db, make_item, make_auction):
        item = make_item()
        make_auction(item=item)
        assert _fresh(db, CatalogItem, item.id).sale_mode == "auction"

    @pytest.mark.parametrize("kwargs", [
        {"starting_bid": "0"},
        {"reserve_price": "-1"},
        {"hours": 0},
        {"end_policy_on_no_sale": "auction_again"},
        {"convert_price_source": "last_bid"},
        {"convert_markup_bps": -5},
        {"payment_window_hours": 0},
        {"end_policy_on_no_sale": "convert_fixed", "convert_price_source": "manual"},
    ])
    def test_invalid_configuration(self, make_auction, kwargs):
        with pytest.raises(InvalidAuctionConfig):
            make_auction(**kwargs)

    def test_end_time_already_past_rejected(self, make_auction, now):
        with pytest.raises(InvalidAuctionConfig):
            make_auction(starts_at=now - timedelta(hours=3), ends_at=now - timedelta(hours=1))

    def test_unknown_item_type_rejected(self, make_item, make_auction):
        with pytest.raises(InvalidAuctionConfig):
            make_auction(item=make_item(item_type="vehicle"))

    def test_second_open_auction_for_item_rejected(self, make_item, make_auction, now):
        item = make_item()
        make_auction(item=item)
        with pytest.raises(ItemLockConflict):
            make_auction(item=item)

    def test_foreign_item_rejected(self, db, make_item, now):
        item = make_item(vendor_id="someone-else")
        with pytest.raises(InvalidAuctionConfig):
            auction_service.create_auction(
                db, SELLER, ItemRef(item.item_type, item.id), "10.00",
                ends_at=now + timedelta(hours=1), now=now,
            )

    def test_missing_item_rejected(self, db, now):
        with pytest.raises(ItemNotFound):
            auction_service.create_auction(
                db, SELLER, ItemRef("book", "missing"), "10.00",
                ends_at=now + timedelta(hours=1), now=now,
            )


class TestTransitions:
    """Status only moves scheduled -> active -> ended, once."""

    def test_activate_requires_due_start(self, db, make_auction, now):
        auction = make_auction(starts_at=now + timedelta(hours=2))
        assert not auction_service.activate_auction(db, auction.id, now)
        assert auction_service.activate_auction(db, auction.id, now + timedelta(hours=2))
        assert not auction_service.activate_auction(db, auction.id, now + timedelta(hours=2))
        assert _fresh(db, Auction, auction.id).status == "active"

    def test_close_requires_end_time(self, db, make_auction, notifier, now):
        auction = make_auction(hours=1)
        assert not auction_service.close_auction(db, auction.id, now + timedelta(minutes=59), notifier)
        assert _fresh(db, Auction, auction.id).status == "active"

    def test_close_scheduled_auction_is_noop(self, db, make_auction, notifier, now):
        auction = make_auction(starts_at=now + timedelta(hours=1), hours=1)
        assert not auction_service.close_auction(db, auction.id, now + timedelta(days=1), notifier)
        assert _fresh(db, Auction, auction.id).status == "scheduled"

    def test_no_bids_outcome(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(), [], notifier)
        assert auction.status == "ended"
        assert auction.end_outcome_reason == "no_bids"
        assert auction.winner_bid_id is None
        assert auction.ended_at == auction.ends_at


class TestScenarios:
    """End-to-end lifecycle scenarios."""

    def test_reserve_not_met_unlocks_item(self, db, make_auction, notifier):
        """Reserve $100, bids $80 then $90: no sale, no win, item unlocked."""
        auction = make_auction(reserve_price="100.00")
        auction = _bid_and_close(db, auction, [(ALICE, "80.00"), (BOB, "90.00")], notifier)

        assert auction.end_outcome_reason == "reserve_not_met"
        assert auction.winner_bid_id is None
        assert _win_for(db, auction) is None
        item = db.query(CatalogItem).filter(CatalogItem.id == auction.item_id).one()
        assert item.auction_locked_until is None
        assert notifier.of_type(notification_service.AUCTION_WON) == []

    def test_unpaid_winner_relists_until_limit(self, db, make_auction, notifier):
        """Reserve $50, bids $60/$75, relist max 2: two relists, then nothing."""
        auction = make_auction(reserve_price="50.00", end_policy_on_no_sale="relist", relist_max_count=2)
        original_id = auction.id
        expected_counts = [1, 2]

        for round_no in range(3):
            auction = _bid_and_close(db, auction, [(ALICE, "60.00"), (BOB, "75.00")], notifier)
            assert auction.end_outcome_reason == "sold"
            win = _win_for(db, auction)
            assert win.user_id == BOB
            assert win.winning_amount == Decimal("75.00")

            expire_at = auction.payment_deadline + timedelta(seconds=1)
            assert auction_service.expire_win(db, win.id, expire_at, notifier)

            auction = _fresh(db, Auction, auction.id)
            assert auction.policy_trigger == PolicyTrigger.UNPAID_WINNER.value
            # The sale was determined; the win is what expired
            assert auction.end_outcome_reason == "sold"
            result = json.loads(auction.policy_result)
            assert result["reason"] == "reserve_not_met"

            child = db.query(Auction).filter(Auction.parent_auction_id == auction.id).one_or_none()
            if round_no < 2:
                assert result["action"] == "relist"
                assert child.relist_count == expected_counts[round_no]
                assert child.status == "scheduled"
                assert child.starts_at == expire_at
                assert child.ends_at - child.starts_at == timedelta(hours=1)
                assert auction_service.activate_auction(db, child.id, child.starts_at)
                auction = _fresh(db, Auction, child.id)
            else:
                assert result["action"] == "none"
                assert result["detail"] == "relist_limit_reached"
                assert child is None

        chain = auction_service.relist_history(db, auction.id)
        assert [a.relist_count for a in chain] == [0, 1, 2]
        assert chain[0].id == original_id
        assert len(notifier.of_type(notification_service.RELIST_CREATED)) == 2
        assert len(notifier.of_type(notification_service.WIN_EXPIRED)) == 3
        _assert_winner_iff_sold(db)

    def test_claim_and_pay_completes_sale(self, db, make_auction, notifier, gateway):
        """$500 winning bid, claimed and paid inside the window."""
        auction = make_auction(reserve_price="100.00")
        auction = _bid_and_close(db, auction, [(ALICE, "500.00")], notifier)
        win = _win_for(db, auction)
        assert win.status == "pending_claim"
        assert auction.payment_deadline == auction.ended_at + timedelta(hours=48)
        assert notifier.of_type(notification_service.AUCTION_WON)[0][0] == ALICE

        claimed = claim_service.claim(db, win.id, ALICE, now=auction.ended_at + timedelta(hours=1))
        assert claimed.status == "claimed"
        order = db.query(Order).filter(Order.id == claimed.order_id).one()
        assert order.amount == Decimal("500.00")
        assert order.status == "pending"

        paid = claim_service.pay(db, win.id, ALICE, gateway, now=auction.ended_at + timedelta(hours=2))
        assert paid.status == "paid"
        assert _fresh(db, Order, order.id).status == "paid"
        item = db.query(CatalogItem).filter(CatalogItem.id == auction.item_id).one()
        assert item.auction_locked_until is None
        assert item.sale_mode == "sold"
        assert item.price == Decimal("500.00")
        assert gateway.charges == [(order.id, Decimal("500.00"))]

    def test_unclaimed_win_converts_to_fixed_price(self, db, make_auction, notifier):
        """Never claimed: win expires, item relisted at highest bid + 10%."""
        auction = make_auction(
            end_policy_on_no_sale="convert_fixed",
            convert_price_source="highest_bid",
            convert_markup_bps=1000,
        )
        auction = _bid_and_close(db, auction, [(ALICE, "500.00")], notifier)
        win = _win_for(db, auction)

        assert auction_service.expire_win(db, win.id, auction.payment_deadline + timedelta(minutes=1), notifier)

        assert _fresh(db, AuctionWin, win.id).status == "expired"
        item = db.query(CatalogItem).filter(CatalogItem.id == auction.item_id).one()
        assert item.price == Decimal("550.00")
        assert item.sale_mode == "fixed"
        assert item.auction_locked_until is None
        converted = notifier.of_type(notification_service.AUCTION_CONVERTED)
        assert converted[0][2]["price"] == "550.00"


class TestNoSalePolicies:
    """Policies applied on a first-pass no-sale."""

    def test_unlist(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(end_policy_on_no_sale="unlist"), [], notifier)
        item = db.query(CatalogItem).filter(CatalogItem.id == auction.item_id).one()
        assert item.sale_mode == "unlisted"
        assert item.auction_locked_until is None
        assert auction.policy_trigger == PolicyTrigger.NO_SALE.value

    def test_convert_with_manual_price(self, db, make_auction, notifier):
        auction = make_auction(
            end_policy_on_no_sale="convert_fixed",
            convert_price_source="manual",
            manual_fixed_price="80.00",
        )
        auction = _bid_and_close(db, auction, [], notifier)
        item = db.query(CatalogItem).filter(CatalogItem.id == auction.item_id).one()
        assert item.price == Decimal("80.00")
        assert item.sale_mode == "fixed"

    def test_relist_delay(self, db, make_auction, notifier):
        auction = make_auction(end_policy_on_no_sale="relist", relist_delay_hours=6, hours=2)
        auction = _bid_and_close(db, auction, [], notifier)
        child = db.query(Auction).filter(Auction.parent_auction_id == auction.id).one()
        assert child.starts_at == auction.ended_at + timedelta(hours=6)
        assert child.ends_at == child.starts_at + timedelta(hours=2)
        assert child.relist_count == 1
        assert child.end_policy_on_no_sale == "relist"
        assert child.relist_delay_hours == 6

    def test_deleted_item_skips_relist(self, db, make_item, make_auction, notifier):
        item = make_item()
        auction = make_auction(item=item, end_policy_on_no_sale="relist")
        db.delete(item)
        db.commit()

        auction = _bid_and_close(db, auction, [], notifier)
        result = json.loads(auction.policy_result)
        assert result["action"] == "none"
        assert result["detail"] == "item_missing"
        assert db.query(Auction).filter(Auction.parent_auction_id == auction.id).count() == 0


class TestIdempotence:
    """Repeating a transition never doubles its effects."""

    def test_close_twice_single_win(self, db, make_auction, notifier):
        auction = make_auction()
        auction = _bid_and_close(db, auction, [(ALICE, "20.00")], notifier)
        assert not auction_service.close_auction(db, auction.id, auction.ends_at + timedelta(minutes=1), notifier)
        assert db.query(AuctionWin).filter(AuctionWin.auction_id == auction.id).count() == 1
        assert len(notifier.of_type(notification_service.AUCTION_WON)) == 1

    def test_close_twice_single_relist(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(end_policy_on_no_sale="relist"), [], notifier)
        assert not auction_service.close_auction(db, auction.id, auction.ends_at, notifier)
        assert db.query(Auction).filter(Auction.parent_auction_id == auction.id).count() == 1

    def test_policy_marker_blocks_second_run(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(end_policy_on_no_sale="relist"), [], notifier)
        with pytest.raises(PolicyAlreadyApplied):
            auction_service.apply_no_sale_policy(
                db, auction, PolicyTrigger.UNPAID_WINNER, EndOutcome.RESERVE_NOT_MET, auction.ends_at,
            )
        db.rollback()
        assert db.query(Auction).filter(Auction.parent_auction_id == auction.id).count() == 1

    def test_expire_twice(self, db, make_auction, notifier):
        auction = make_auction(end_policy_on_no_sale="relist")
        auction = _bid_and_close(db, auction, [(ALICE, "20.00")], notifier)
        win = _win_for(db, auction)
        later = auction.payment_deadline + timedelta(hours=1)
        assert auction_service.expire_win(db, win.id, later, notifier)
        assert not auction_service.expire_win(db, win.id, later, notifier)
        assert db.query(Auction).filter(Auction.parent_auction_id == auction.id).count() == 1

    def test_expire_before_deadline_is_noop(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(), [(ALICE, "20.00")], notifier)
        win = _win_for(db, auction)
        assert not auction_service.expire_win(db, win.id, auction.payment_deadline, notifier)
        assert _fresh(db, AuctionWin, win.id).status == "pending_claim"


class TestCancel:
    """Sellers may cancel before any bid lands."""

    def test_cancel_scheduled(self, db, make_auction, now):
        auction = make_auction(starts_at=now + timedelta(hours=1))
        cancelled = auction_service.cancel_auction(db, auction.id, SELLER, now=now)
        assert cancelled.status == "ended"
        assert cancelled.end_outcome_reason == "cancelled"
        assert cancelled.policy_applied_at is None

    def test_cancel_active_without_bids_releases_lock(self, db, make_auction, now):
        auction = make_auction()
        auction_service.cancel_auction(db, auction.id, SELLER, now=now)
        item = db.query(CatalogItem).filter(CatalogItem.id == auction.item_id).one()
        assert item.auction_locked_until is None

    def test_cannot_cancel_with_bids(self, db, make_auction, now):
        auction = make_auction()
        bid_service.place_bid(db, auction.id, ALICE, "20.00", now=now)
        with pytest.raises(CancelNotAllowed):
            auction_service.cancel_auction(db, auction.id, SELLER, now=now)

    def test_only_seller_can_cancel(self, db, make_auction, now):
        auction = make_auction()
        with pytest.raises(CancelNotAllowed):
            auction_service.cancel_auction(db, auction.id, ALICE, now=now)

    def test_cannot_cancel_ended(self, db, make_auction, notifier, now):
        auction = _bid_and_close(db, make_auction(), [], notifier)
        with pytest.raises(AuctionAlreadyEnded):
            auction_service.cancel_auction(db, auction.id, SELLER, now=now)


class TestSellerActions:
    """Sellers may relist, convert or unlist an unsold auction by hand."""

    def test_relist_after_no_bids(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(hours=2), [], notifier)
        # Policy "none" leaves the marker free for the seller
        assert auction.policy_applied_at is None
        assert json.loads(auction.policy_result)["action"] == "none"

        later = auction.ended_at + timedelta(hours=3)
        child = auction_service.relist_ended(db, auction.id, SELLER, now=later, notifier=notifier)
        assert child.status == "active"
        assert child.parent_auction_id == auction.id
        assert child.relist_count == 1
        assert child.starts_at == later
        assert child.ends_at == later + timedelta(hours=2)
        item = db.query(CatalogItem).filter(CatalogItem.id == auction.item_id).one()
        assert item.auction_locked_until == child.ends_at

        parent = _fresh(db, Auction, auction.id)
        assert parent.policy_trigger == PolicyTrigger.MANUAL.value
        assert parent.policy_applied_at == later
        assert len(notifier.of_type(notification_service.RELIST_CREATED)) == 1

    def test_convert_after_expired_win(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(reserve_price="50.00"), [(ALICE, "60.00")], notifier)
        win = _win_for(db, auction)
        expire_at = auction.payment_deadline + timedelta(seconds=1)
        assert auction_service.expire_win(db, win.id, expire_at, notifier)

        price = auction_service.convert_ended(db, auction.id, SELLER, price="70.00", now=expire_at, notifier=notifier)
        assert price == Decimal("70.00")
        item = db.query(CatalogItem).filter(CatalogItem.id == auction.item_id).one()
        assert item.sale_mode == "fixed"
        assert item.price == Decimal("70.00")
        assert item.auction_locked_until is None
        result = json.loads(_fresh(db, Auction, auction.id).policy_result)
        assert result["action"] == "convert_fixed"
        assert result["trigger"] == "manual"
        assert result["reason"] == "reserve_not_met"

    def test_convert_uses_price_source(self, db, make_auction, notifier):
        auction = make_auction(reserve_price="100.00", convert_price_source="highest_bid", convert_markup_bps=1000)
        auction = _bid_and_close(db, auction, [(ALICE, "80.00")], notifier)
        price = auction_service.convert_ended(db, auction.id, SELLER, now=auction.ended_at, notifier=notifier)
        assert price == Decimal("88.00")
        assert notifier.of_type(notification_service.AUCTION_CONVERTED)[0][2]["price"] == "88.00"

    def test_manual_price_source_needs_price(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(), [], notifier)
        with pytest.raises(InvalidAuctionConfig):
            auction_service.convert_ended(db, auction.id, SELLER, now=auction.ended_at, notifier=notifier)

    def test_unlist(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(), [], notifier)
        unlisted = auction_service.unlist_ended(db, auction.id, SELLER, now=auction.ended_at, notifier=notifier)
        assert unlisted.policy_trigger == PolicyTrigger.MANUAL.value
        item = db.query(CatalogItem).filter(CatalogItem.id == auction.item_id).one()
        assert item.sale_mode == "unlisted"
        assert len(notifier.of_type(notification_service.AUCTION_UNLISTED)) == 1

    def test_only_seller(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(), [], notifier)
        with pytest.raises(NotAuctionSeller):
            auction_service.unlist_ended(db, auction.id, ALICE, now=auction.ended_at)

    def test_open_sold_or_cancelled_auction_rejected(self, db, make_auction, notifier, now):
        open_auction = make_auction()
        with pytest.raises(AuctionNotUnsold):
            auction_service.relist_ended(db, open_auction.id, SELLER, now=now)

        sold = _bid_and_close(db, make_auction(), [(ALICE, "20.00")], notifier)
        with pytest.raises(AuctionNotUnsold):
            auction_service.unlist_ended(db, sold.id, SELLER, now=sold.ended_at)

        scheduled = make_auction(starts_at=now + timedelta(days=1))
        auction_service.cancel_auction(db, scheduled.id, SELLER, now=now)
        with pytest.raises(AuctionNotUnsold):
            auction_service.relist_ended(db, scheduled.id, SELLER, now=now)

    def test_second_action_rejected(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(), [], notifier)
        auction_service.unlist_ended(db, auction.id, SELLER, now=auction.ended_at)
        with pytest.raises(PolicyAlreadyApplied):
            auction_service.convert_ended(db, auction.id, SELLER, price="30.00", now=auction.ended_at)

    def test_automatic_policy_blocks_manual_action(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(end_policy_on_no_sale="unlist"), [], notifier)
        with pytest.raises(PolicyAlreadyApplied):
            auction_service.convert_ended(db, auction.id, SELLER, price="30.00", now=auction.ended_at)
        item = db.query(CatalogItem).filter(CatalogItem.id == auction.item_id).one()
        assert item.sale_mode == "unlisted"

    def test_relist_limit(self, db, make_auction, notifier):
        auction = _bid_and_close(db, make_auction(relist_max_count=1), [], notifier)
        child = auction_service.relist_ended(db, auction.id, SELLER, now=auction.ended_at, notifier=notifier)
        assert auction_service.close_auction(db, child.id, child.ends_at, notifier)

        with pytest.raises(RelistLimitReached):
            auction_service.relist_ended(db, child.id, SELLER, now=child.ends_at)
        assert auction_service.unlist_ended(db, child.id, SELLER, now=child.ends_at).id == child.id

    def test_item_held_by_newer_auction(self, db, make_item, make_auction, notifier):
        item = make_item()
        auction = _bid_and_close(db, make_auction(item=item), [], notifier)
        auction_service.create_auction(
            db, SELLER, ItemRef(item.item_type, item.id), "10.00",
            ends_at=auction.ended_at + timedelta(hours=1), now=auction.ended_at,
        )
        with pytest.raises(ItemLockConflict):
            auction_service.relist_ended(db, auction.id, SELLER, now=auction.ended_at)
