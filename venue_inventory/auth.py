from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from venue_inventory.config import settings
from venue_inventory.db import get_db


class Role(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"


@dataclass
class Principal:
    id: int
    username: str
    role: Role
    venue_id: int | None
    active: bool


MANAGE_ROLES = (Role.ADMIN, Role.MANAGER)
STOCK_ROLES = (Role.ADMIN, Role.MANAGER, Role.STAFF)


def session_token_from_request(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.session_cookie_name)


def get_current_principal(request: Request, db: Session = Depends(get_db)) -> Principal:
    # Imported here to keep security.sessions free to import this module.
    from venue_inventory.security.sessions import load_principal_from_token

    principal = load_principal_from_token(db, session_token_from_request(request))
    db.commit()
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep


def assert_venue_scope(principal: Principal, target_venue_id: int) -> None:
    if principal.role == Role.ADMIN:
        return
    if principal.venue_id != target_venue_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)


def venue_principal(*allowed: Role):
    """Role check plus venue scope for routes under ``/venues/{venue_id}``."""

    def _dep(venue_id: int, principal: Principal = Depends(require_role(*allowed))) -> Principal:
        assert_venue_scope(principal, venue_id)
        return principal

    return _dep
