from __future__ import annotations

from fastapi import Request
from sqlalchemy.orm import Session

from venue_inventory.auth import Principal
from venue_inventory.services.audit_service import log_audit


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def audit_request(
    db: Session,
    request: Request,
    principal: Principal,
    *,
    venue_id: int,
    action: str,
    metadata: dict | None = None,
) -> None:
    log_audit(
        db,
        venue_id=venue_id,
        actor_principal_id=principal.id,
        action=action,
        ip=get_client_ip(request),
        metadata=metadata,
    )
