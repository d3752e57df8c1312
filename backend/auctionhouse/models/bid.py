"""Bid model — append-only record of every accepted bid."""

import uuid

from sqlalchemy import Column, String, Integer, Numeric, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from auctionhouse.database import Base, UTCDateTime, utcnow


class Bid(Base):
    __tablename__ = "auction_bids"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    auction_id = Column(String(36), ForeignKey("auctions.id"), nullable=False)
    bidder_id = Column(String(36), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    # Per-auction position in the accepted bid stream (1, 2, 3, ...)
    sequence = Column(Integer, nullable=False)
    placed_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("auction_id", "sequence", name="uq_auction_bid_sequence"),
        Index("ix_auction_bids_auction_amount", "auction_id", "amount"),
    )

    # Relationships
    auction = relationship("Auction", back_populates="bids", foreign_keys=[auction_id])
