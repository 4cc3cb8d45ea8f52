from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy.orm import Session

from venue_inventory.models import AuditLog, AuthEvent

logger = logging.getLogger('venue_inventory.audit')


def json_safe(value):
    """Reduce audit metadata to JSON column types; Decimals keep full precision as strings."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_safe(item) for item in value]
    return value


def log_auth_event(
    db: Session,
    *,
    attempted_username: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    principal_id: int | None = None,
    failure_reason: str | None = None,
) -> AuthEvent:
    event = AuthEvent(
        attempted_username=attempted_username,
        success=success,
        failure_reason=failure_reason,
        principal_id=principal_id,
        ip=ip,
        user_agent=user_agent,
    )
    db.add(event)
    if not success:
        logger.warning('Login failed for %r from %s: %s', attempted_username, ip, failure_reason)
    return event


def log_audit(
    db: Session,
    *,
    venue_id: int | None,
    actor_principal_id: int | None,
    action: str,
    ip: str | None,
    metadata: dict | None = None,
) -> AuditLog:
    entry = AuditLog(
        venue_id=venue_id,
        actor_principal_id=actor_principal_id,
        action=action,
        ip=ip,
        meta=json_safe(metadata or {}),
    )
    db.add(entry)
    logger.debug('Audit %s by principal %s on venue %s', action, actor_principal_id, venue_id)
    return entry
