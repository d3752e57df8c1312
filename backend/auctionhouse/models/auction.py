"""Auction model."""

import uuid

from sqlalchemy import Column, String, Integer, Numeric, ForeignKey, Index, Text
from sqlalchemy.orm import relationship

from auctionhouse.database import Base, UTCDateTime, utcnow


class Auction(Base):
    __tablename__ = "auctions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    item_type = Column(String(20), nullable=False)  # book | product
    item_id = Column(String(36), nullable=False)
    seller_id = Column(String(36), nullable=False)

    starting_bid = Column(Numeric(12, 2), nullable=False)
    reserve_price = Column(Numeric(12, 2), nullable=True)
    # Denormalized high bid, only written in the same transaction as the bid insert
    current_bid = Column(Numeric(12, 2), nullable=True)
    current_bidder_id = Column(String(36), nullable=True)
    bid_count = Column(Integer, nullable=False, default=0)

    starts_at = Column(UTCDateTime, nullable=False)
    ends_at = Column(UTCDateTime, nullable=False)
    ended_at = Column(UTCDateTime, nullable=True)
    payment_window_hours = Column(Integer, nullable=False, default=48)
    payment_deadline = Column(UTCDateTime, nullable=True)

    status = Column(String(20), nullable=False, default="scheduled")  # scheduled | active | ended
    end_outcome_reason = Column(String(30), nullable=True)  # sold | reserve_not_met | no_bids | cancelled
    winner_bid_id = Column(String(36), nullable=True)  # auction_bids.id

    relist_count = Column(Integer, nullable=False, default=0)
    parent_auction_id = Column(String(36), ForeignKey("auctions.id"), nullable=True, index=True)

    # End policy, fixed at creation
    end_policy_on_no_sale = Column(String(20), nullable=False, default="none")  # none | relist | convert_fixed | unlist
    relist_delay_hours = Column(Integer, nullable=False, default=0)
    relist_max_count = Column(Integer, nullable=False, default=0)  # 0 = unlimited
    convert_price_source = Column(String(20), nullable=False, default="manual")  # manual | reserve | highest_bid | starting_bid
    convert_markup_bps = Column(Integer, nullable=False, default=0)
    manual_fixed_price = Column(Numeric(12, 2), nullable=True)

    # Set once when the no-sale policy runs; never cleared
    policy_applied_at = Column(UTCDateTime, nullable=True)
    policy_trigger = Column(String(20), nullable=True)  # no_sale | unpaid_winner | manual
    policy_result = Column(Text, nullable=True)  # JSON string

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_auctions_status_starts_at", "status", "starts_at"),
        Index("ix_auctions_status_ends_at", "status", "ends_at"),
        Index("ix_auctions_item", "item_type", "item_id"),
    )

    # Relationships
    bids = relationship(
        "Bid",
        back_populates="auction",
        foreign_keys="[Bid.auction_id]",
        order_by="Bid.sequence",
    )
    win = relationship("AuctionWin", back_populates="auction", uselist=False)
