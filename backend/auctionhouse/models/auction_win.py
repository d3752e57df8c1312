"""Auction win model — a sold outcome waiting to become a paid order."""

import uuid

from sqlalchemy import Column, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship

from auctionhouse.database import Base, UTCDateTime, utcnow


class AuctionWin(Base):
    __tablename__ = "auction_wins"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    auction_id = Column(String(36), ForeignKey("auctions.id"), nullable=False, unique=True)
    user_id = Column(String(36), nullable=False, index=True)
    winning_bid_id = Column(String(36), ForeignKey("auction_bids.id"), nullable=False)
    winning_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending_claim", index=True)  # pending_claim | claimed | paid | expired
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=True)
    reminder_sent_at = Column(UTCDateTime, nullable=True)
    claimed_at = Column(UTCDateTime, nullable=True)
    paid_at = Column(UTCDateTime, nullable=True)
    expired_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    # Relationships
    auction = relationship("Auction", back_populates="win")
    order = relationship("Order")
