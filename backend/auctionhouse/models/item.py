"""Sellable catalog item (book or product).

Owned by the catalog; the auction engine only touches the sale mode, the
fixed price and the auction lock.
"""

import uuid

from sqlalchemy import Column, String, Numeric

from auctionhouse.database import Base, UTCDateTime, utcnow


class CatalogItem(Base):
    __tablename__ = "catalog_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    item_type = Column(String(20), nullable=False)  # book | product
    vendor_id = Column(String(36), nullable=False)
    title = Column(String(500), nullable=False)
    price = Column(Numeric(12, 2), nullable=True)
    sale_mode = Column(String(20), nullable=False, default="fixed")  # auction | fixed | unlisted | sold
    auction_locked_until = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

