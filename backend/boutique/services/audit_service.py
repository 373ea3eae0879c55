# Overview: Append-only operator audit log.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import AuditEvent
from boutique.time_utils import utcnow
"""
Audit Log Invariants (authoritative)

- Append-only log of operator actions (shift start/end, sales, dispatches,
  transfers, catalog edits, returns).
- No domain/business logic here.
- Events are written inside the same DB transaction as the domain event they record.
"""


def append_audit_event(
    *,
    actor: str | None,
    action: str,
    details: str | None = None,
    entity_type: str | None = None,
    entity_id=None,
    occurred_at: Optional[datetime] = None,
) -> AuditEvent:
    """
    Append-only audit event.

    - No deletes/updates of existing events.
    - actor falls back to "System" when no operator is known.
    """
    ev = AuditEvent(
        actor=actor or "System",
        action=action,
        details=details or None,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_audit_events(
    *,
    action: str | None = None,
    actor: str | None = None,
    limit: int = 200,
) -> list[AuditEvent]:
    q = db.session.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action == action)
    if actor:
        q = q.filter(AuditEvent.actor == actor)
    return q.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc()).limit(limit).all()
