"""Audit trail helper shared by the auction services."""

import json
from typing import Optional

from sqlalchemy.orm import Session

from auctionhouse.models.audit_log import AuditLog

SYSTEM_ACTOR = "system"


def record(
    db: Session,
    entity_type: str,
    entity_id: str,
    action: str,
    actor_id: str = SYSTEM_ACTOR,
    old_data: Optional[dict] = None,
    new_data: Optional[dict] = None,
) -> None:
    """Add an audit row to the caller's transaction."""
    db.add(AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        old_data=json.dumps(old_data, default=str) if old_data is not None else None,
        new_data=json.dumps(new_data, default=str) if new_data is not None else None,
    ))
