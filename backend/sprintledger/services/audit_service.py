"""Audit trail writes shared by the services."""
from sqlalchemy.ext.asyncio import AsyncSession

from sprintledger.models.audit import AuditLog


def record(
    db: AsyncSession,
    *,
    action: str,
    entity_type: str,
    entity_id: int | None,
    user_id: int | None,
    project_id: int | None = None,
    old_value=None,
    new_value=None,
    reason: str | None = None,
) -> AuditLog:
    entry = AuditLog(
        project_id=project_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_value=None if old_value is None else str(old_value),
        new_value=None if new_value is None else str(new_value),
        reason=reason,
    )
    db.add(entry)
    return entry
