from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from venue_inventory.auth import Principal, get_current_principal, session_token_from_request
from venue_inventory.config import settings
from venue_inventory.db import get_db
from venue_inventory.dependencies import get_client_ip
from venue_inventory.models import Principal as PrincipalModel
from venue_inventory.schemas import LoginRequest, LoginResponse
from venue_inventory.security.passwords import verify_password
from venue_inventory.security.sessions import create_web_session, revoke_web_session
from venue_inventory.services.audit_service import log_audit, log_auth_event

logger = logging.getLogger('venue_inventory.auth')

router = APIRouter(prefix='/auth', tags=['auth'])


def _reject_login(db: Session, *, username: str, reason: str, principal_id: int | None, ip: str | None, user_agent: str | None):
    log_auth_event(
        db,
        attempted_username=username,
        success=False,
        failure_reason=reason,
        principal_id=principal_id,
        ip=ip,
        user_agent=user_agent,
    )
    db.commit()
    raise HTTPException(status_code=401, detail='Invalid username or password')


@router.post('/login', response_model=LoginResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    username = payload.username
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    principal = db.execute(select(PrincipalModel).where(PrincipalModel.username == username)).scalar_one_or_none()
    if not principal:
        _reject_login(db, username=username, reason='UNKNOWN_USERNAME', principal_id=None, ip=ip, user_agent=user_agent)
    if not principal.active:
        _reject_login(db, username=username, reason='INACTIVE_PRINCIPAL', principal_id=principal.id, ip=ip, user_agent=user_agent)
    valid, upgraded_hash = verify_password(payload.password, principal.password_hash)
    if not valid:
        _reject_login(db, username=username, reason='BAD_PASSWORD', principal_id=principal.id, ip=ip, user_agent=user_agent)
    if upgraded_hash:
        principal.password_hash = upgraded_hash

    token = create_web_session(db, principal.id, ip=ip, user_agent=user_agent)
    log_auth_event(
        db,
        attempted_username=username,
        success=True,
        failure_reason=None,
        principal_id=principal.id,
        ip=ip,
        user_agent=user_agent,
    )
    log_audit(
        db,
        venue_id=principal.venue_id,
        actor_principal_id=principal.id,
        action='AUTH_LOGIN',
        ip=ip,
        metadata={'username': username},
    )
    db.commit()
    logger.info('Principal %s logged in', principal.id)

    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return LoginResponse(
        token=token,
        principal_id=principal.id,
        role=principal.role.value,
        venue_id=principal.venue_id,
    )


@router.post('/logout', status_code=204)
def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    token = session_token_from_request(request)
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        venue_id=principal.venue_id,
        actor_principal_id=principal.id,
        action='AUTH_LOGOUT',
        ip=get_client_ip(request),
        metadata={},
    )
    db.commit()

    response = Response(status_code=204)
    response.delete_cookie(settings.session_cookie_name)
    return response
