"""Auction request/response schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class AuctionCreate(BaseModel):
    item_type: str  # book | product
    item_id: str
    starting_bid: Decimal
    reserve_price: Optional[Decimal] = None
    starts_at: Optional[datetime] = None  # omitted = start now
    ends_at: datetime
    payment_window_hours: Optional[int] = None
    end_policy_on_no_sale: str = "none"  # none | relist | convert_fixed | unlist
    relist_delay_hours: int = 0
    relist_max_count: int = 0  # 0 = unlimited
    convert_price_source: str = "manual"  # manual | reserve | highest_bid | starting_bid
    convert_markup_bps: int = 0
    manual_fixed_price: Optional[Decimal] = None


class AuctionResponse(BaseModel):
    id: str
    item_type: str
    item_id: str
    seller_id: str
    status: str
    starting_bid: Decimal
    reserve_price: Optional[Decimal]
    current_bid: Optional[Decimal]
    bid_count: int
    starts_at: datetime
    ends_at: datetime
    ended_at: Optional[datetime]
    end_outcome_reason: Optional[str]
    winner_bid_id: Optional[str]
    payment_window_hours: int
    payment_deadline: Optional[datetime]
    relist_count: int
    parent_auction_id: Optional[str]
    end_policy_on_no_sale: str
    relist_delay_hours: int
    relist_max_count: int
    convert_price_source: str
    convert_markup_bps: int
    policy_trigger: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ConvertRequest(BaseModel):
    price: Optional[Decimal] = None  # omitted = the auction's convert price source


class ConvertResponse(BaseModel):
    auction_id: str
    item_type: str
    item_id: str
    price: Decimal
