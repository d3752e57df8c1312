"""Catalog gateway — the slice of the catalog the auction engine may touch.

All calls run on the caller's session so catalog writes commit (or roll
back) together with the auction change that caused them.
"""

from decimal import Decimal
from typing import NamedTuple, Optional

from sqlalchemy.orm import Session

from auctionhouse.models.item import CatalogItem
from auctionhouse.models.enums import SaleMode


class ItemRef(NamedTuple):
    item_type: str
    item_id: str


def ref_for(obj) -> ItemRef:
    """ItemRef for anything carrying ``item_type`` / ``item_id`` (auctions, orders)."""
    return ItemRef(obj.item_type, obj.item_id)


def get_item(db: Session, item_ref: ItemRef, for_update: bool = False) -> Optional[CatalogItem]:
    """Look up an item; ``None`` if the vendor deleted it."""
    query = db.query(CatalogItem).filter(
        CatalogItem.item_type == item_ref.item_type,
        CatalogItem.id == item_ref.item_id,
    )
    if for_update:
        query = query.with_for_update()
    return query.first()


def set_auction_lock(db: Session, item: CatalogItem, until) -> None:
    item.auction_locked_until = until


def set_sale_mode(db: Session, item: CatalogItem, mode: SaleMode, price: Optional[Decimal] = None) -> None:
    item.sale_mode = mode.value
    if price is not None:
        item.price = price


def confirm_sale(db: Session, item: CatalogItem, price: Decimal) -> None:
    """Mark the item sold after the winning buyer paid."""
    item.sale_mode = SaleMode.SOLD.value
    item.price = price
