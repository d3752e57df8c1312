"""Order service — creates and settles the orders behind claimed wins."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from auctionhouse.models.order import Order
from auctionhouse.models.enums import OrderStatus
from auctionhouse.services.catalog_service import ItemRef


def create_order(db: Session, buyer_id: str, item_ref: ItemRef, amount: Decimal) -> Order:
    """Create a pending order inside the caller's transaction."""
    order = Order(
        id=str(uuid.uuid4()),
        buyer_id=buyer_id,
        item_type=item_ref.item_type,
        item_id=item_ref.item_id,
        amount=amount,
        status=OrderStatus.PENDING.value,
    )
    db.add(order)
    db.flush()
    return order


def get_order(db: Session, order_id: str):
    return db.query(Order).filter(Order.id == order_id).first()


def mark_paid(db: Session, order: Order, now: datetime) -> None:
    order.status = OrderStatus.PAID.value
    order.paid_at = now


def cancel_order(db: Session, order: Order) -> None:
    if order.status == OrderStatus.PENDING.value:
        order.status = OrderStatus.CANCELLED.value
