"""Shared fixtures: a throwaway SQLite database per test and a fixed clock."""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from auctionhouse.database import init_db
from auctionhouse.models.item import CatalogItem
from auctionhouse.services import auction_service
from auctionhouse.services.catalog_service import ItemRef

SELLER = "seller-1"


class RecordingNotifier:
    """Notifier fake that keeps every event it was handed."""

    def __init__(self):
        self.events = []

    def __call__(self, user_id, event_type, payload):
        self.events.append((user_id, event_type, payload))

    def of_type(self, event_type):
        return [e for e in self.events if e[1] == event_type]


class RecordingGateway:
    """Payment gateway fake with a fixed answer."""

    def __init__(self, approve=True):
        self.approve = approve
        self.charges = []

    def charge(self, order_id, amount):
        self.charges.append((order_id, amount))
        return self.approve


@pytest.fixture
def engine(tmp_path):
    # File-backed so separate sessions see each other's commits
    eng = create_engine(
        f"sqlite:///{tmp_path / 'auctions.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def now():
    return datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway():
    return RecordingGateway(approve=True)


@pytest.fixture
def declining_gateway():
    return RecordingGateway(approve=False)


@pytest.fixture
def make_item(db):
    def _make(vendor_id=SELLER, item_type="product", title="Signed first edition", price=None):
        item = CatalogItem(item_type=item_type, vendor_id=vendor_id, title=title, price=price)
        db.add(item)
        db.commit()
        db.refresh(item)
        return item
    return _make


@pytest.fixture
def make_auction(db, make_item, now):
    """Create an auction starting ``now`` and ending in one hour unless told otherwise."""
    def _make(item=None, starting_bid="10.00", hours=1, **kwargs):
        item = item or make_item()
        kwargs.setdefault("starts_at", now)
        kwargs.setdefault("ends_at", kwargs["starts_at"] + timedelta(hours=hours))
        return auction_service.create_auction(
            db,
            seller_id=item.vendor_id,
            item_ref=ItemRef(item.item_type, item.id),
            starting_bid=starting_bid,
            now=now,
            **kwargs,
        )
    return _make
