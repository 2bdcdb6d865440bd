from __future__ import annotations

from sqlalchemy.orm import Session

from spotshare.models import AuditLog


def log_action(
    db: Session,
    *,
    actor_id: str,
    entity_type: str,
    entity_id: str,
    action: str,
    reason: str = "",
) -> None:
    db.add(
        AuditLog(
            actor_id=str(actor_id),
            entity_type=(entity_type or "").strip(),
            entity_id=str(entity_id),
            action=(action or "").strip(),
            reason=(reason or "").strip(),
        )
    )
