"""Order model — the checkout record created when a win is claimed."""

import uuid

from sqlalchemy import Column, String, Numeric

from auctionhouse.database import Base, UTCDateTime, utcnow


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    buyer_id = Column(String(36), nullable=False, index=True)
    item_type = Column(String(20), nullable=False)
    item_id = Column(String(36), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(20), nullable=False, default="pending")  # pending | paid | cancelled
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    paid_at = Column(UTCDateTime, nullable=True)
