# Overview: Service-layer operations for the audit log; append-only writes and filtered reads.

from __future__ import annotations

import json
from typing import Any

from ..extensions import db
from ..models import AuditLog

"""
Audit Log Invariants

- Append-only: rows are inserted, never updated or deleted.
- Entries are written inside the same DB transaction as the action they
  record (flush here, the caller commits or rolls back both together).
- old_value / new_value are JSON text.
"""


def _encode(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, default=str, sort_keys=True)


def append_audit(
    *,
    user_id: int,
    action: str,
    entity_type: str,
    entity_id,
    description: str | None = None,
    old_value: Any = None,
    new_value: Any = None,
) -> AuditLog:
    entry = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        description=description,
        old_value=_encode(old_value),
        new_value=_encode(new_value),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_audit_logs(
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    action: str | None = None,
    limit: int = 100,
) -> list[dict]:
    query = db.session.query(AuditLog)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == str(entity_id))
    if action:
        query = query.filter(AuditLog.action == action)

    limit = max(1, min(int(limit or 100), 500))
    rows = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
    return [r.to_dict() for r in rows]
