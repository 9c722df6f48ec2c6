"""Audit logging service. Records payment state changes."""

from typing import Optional
from datetime import datetime
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from propdesk.models.audit_log import AuditLog

logger = structlog.get_logger()


def _compute_changed_fields(
    before: Optional[dict], after: Optional[dict]
) -> Optional[list[str]]:
    """Diff two state dicts and return list of changed field names."""
    if not before or not after:
        return None
    changed = []
    all_keys = set(before.keys()) | set(after.keys())
    for key in sorted(all_keys):
        if before.get(key) != after.get(key):
            changed.append(key)
    return changed or None


def _jsonable(state: Optional[dict]) -> Optional[dict]:
    if state is None:
        return None
    return {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in state.items()}


async def create_audit_log(
    session: AsyncSession,
    action: str,
    entity_type: str,
    entity_id,
    before_state: Optional[dict] = None,
    after_state: Optional[dict] = None,
    actor: Optional[dict] = None,
) -> AuditLog:
    """
    Create an audit log entry.

    Uses session.flush(); the caller owns the transaction.
    """
    before_state = _jsonable(before_state)
    after_state = _jsonable(after_state)
    changed_fields = _compute_changed_fields(before_state, after_state)

    audit = AuditLog(
        actor_id=actor.get("user_id") if actor else None,
        actor_email=actor.get("email") if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=uuid.UUID(str(entity_id)),
        before_state=before_state,
        after_state=after_state,
        changed_fields=changed_fields,
        created_at=datetime.utcnow(),
    )
    session.add(audit)
    await session.flush()

    logger.info(
        "audit_log_created",
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
    )
    return audit
