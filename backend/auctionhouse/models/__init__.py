"""SQLAlchemy ORM models."""

from auctionhouse.models.item import CatalogItem
from auctionhouse.models.auction import Auction
from auctionhouse.models.bid import Bid
from auctionhouse.models.auction_win import AuctionWin
from auctionhouse.models.order import Order
from auctionhouse.models.notification import Notification
from auctionhouse.models.audit_log import AuditLog

__all__ = [
    "CatalogItem",
    "Auction",
    "Bid",
    "AuctionWin",
    "Order",
    "Notification",
    "AuditLog",
]
