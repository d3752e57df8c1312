"""Auction win (claim and pay) response schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class WinResponse(BaseModel):
    id: str
    auction_id: str
    user_id: str
    winning_bid_id: str
    winning_amount: Decimal
    status: str  # pending_claim | claimed | paid | expired
    order_id: Optional[str]
    payment_deadline: Optional[datetime] = None
    claimed_at: Optional[datetime]
    paid_at: Optional[datetime]
    expired_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True
