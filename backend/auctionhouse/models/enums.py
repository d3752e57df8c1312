"""String enums stored in the auction tables.

Columns hold the plain ``.value`` strings; these classes are what the
services compare and dispatch on.
"""

import enum


class AuctionStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    ENDED = "ended"


class EndOutcome(str, enum.Enum):
    SOLD = "sold"
    RESERVE_NOT_MET = "reserve_not_met"
    NO_BIDS = "no_bids"
    CANCELLED = "cancelled"


class EndPolicy(str, enum.Enum):
    NONE = "none"
    RELIST = "relist"
    CONVERT_FIXED = "convert_fixed"
    UNLIST = "unlist"


class PriceSource(str, enum.Enum):
    MANUAL = "manual"
    RESERVE = "reserve"
    HIGHEST_BID = "highest_bid"
    STARTING_BID = "starting_bid"


class PolicyTrigger(str, enum.Enum):
    NO_SALE = "no_sale"
    UNPAID_WINNER = "unpaid_winner"
    MANUAL = "manual"


class WinStatus(str, enum.Enum):
    PENDING_CLAIM = "pending_claim"
    CLAIMED = "claimed"
    PAID = "paid"
    EXPIRED = "expired"


class SaleMode(str, enum.Enum):
    AUCTION = "auction"
    FIXED = "fixed"
    UNLISTED = "unlisted"
    SOLD = "sold"


class ItemType(str, enum.Enum):
    BOOK = "book"
    PRODUCT = "product"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
