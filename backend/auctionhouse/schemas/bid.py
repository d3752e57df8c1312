"""Bid request/response schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class BidCreate(BaseModel):
    amount: Decimal = Field(gt=0)


class BidResponse(BaseModel):
    id: str
    auction_id: str
    bidder_id: str
    amount: Decimal
    sequence: int
    placed_at: datetime

    class Config:
        from_attributes = True
