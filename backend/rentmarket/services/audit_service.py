# Overview: Service-layer operations for the audit trail; encapsulates business logic and database work.

from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import AuditLog
from rentmarket.time_utils import utcnow


def record(
    *,
    user_id: int | None,
    action: str,
    entity: str,
    entity_id: Any = None,
    metadata: dict | None = None,
) -> AuditLog:
    """
    Add an audit entry to the current session.

    Does NOT commit: the entry lands in the same transaction as the change
    it describes, so a rolled-back change leaves no audit row behind.
    """
    entry = AuditLog(
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        details=metadata or {},
        created_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def list_entries(*, entity: str | None = None, entity_id: Any = None, limit: int = 100) -> list[AuditLog]:
    query = db.session.query(AuditLog)
    if entity:
        query = query.filter(AuditLog.entity == entity)
    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == str(entity_id))
    return query.order_by(AuditLog.id.desc()).limit(limit).all()
