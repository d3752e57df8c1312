"""Notification dispatch — fire-and-forget user events.

Notifications are sent only after the transition that caused them has
committed. A failing notifier is logged and otherwise ignored.
"""

import json
import logging
from typing import Callable, NamedTuple, Optional

from sqlalchemy.orm import Session, sessionmaker

from auctionhouse.models.notification import Notification

logger = logging.getLogger(__name__)

AUCTION_WON = "auction_won"
OUTBID = "outbid"
PAYMENT_REMINDER = "payment_reminder"
WIN_EXPIRED = "win_expired"
RELIST_CREATED = "relist_created"
AUCTION_CONVERTED = "auction_converted"
AUCTION_UNLISTED = "auction_unlisted"

Notifier = Callable[[str, str, dict], None]


class PendingNotification(NamedTuple):
    user_id: str
    event_type: str
    payload: dict


class DatabaseNotifier:
    """Writes each event to the ``notifications`` table in its own transaction."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def __call__(self, user_id: str, event_type: str, payload: dict) -> None:
        db = self.session_factory()
        try:
            db.add(Notification(
                user_id=user_id,
                event_type=event_type,
                payload=json.dumps(payload, default=str),
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def default_notifier(db: Session) -> Notifier:
    """Notifier bound to the same database as ``db``."""
    return DatabaseNotifier(sessionmaker(bind=db.get_bind(), autoflush=False))


def dispatch(db: Session, events: list[PendingNotification], notifier: Optional[Notifier] = None) -> None:
    """Send committed events; never raises."""
    if not events:
        return
    send = notifier or default_notifier(db)
    for event in events:
        try:
            send(event.user_id, event.event_type, event.payload)
        except Exception as e:
            logger.warning(f"Notification {event.event_type} for user {event.user_id} failed: {e}")
