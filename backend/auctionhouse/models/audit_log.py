"""Audit log model — immutable record of every auction lifecycle transition."""

import uuid

from sqlalchemy import Column, String, Text

from auctionhouse.database import Base, UTCDateTime, utcnow


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_type = Column(String(50), nullable=False)  # auction | auction_win | item
    entity_id = Column(String(36), nullable=False, index=True)
    action = Column(String(50), nullable=False)  # created | activated | ended | policy_applied | claimed | paid | expired | ...
    actor_id = Column(String(36), nullable=False)  # user id, or "system" for scheduler transitions
    old_data = Column(Text, nullable=True)   # JSON string
    new_data = Column(Text, nullable=True)   # JSON string
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
