"""Notification model — outbox of user-facing auction events."""

import uuid

from sqlalchemy import Column, String, Boolean, Text

from auctionhouse.database import Base, UTCDateTime, utcnow


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)  # auction_won | outbid | payment_reminder | ...
    payload = Column(Text, nullable=True)  # JSON string
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
