from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from venue_inventory.services.audit_service import json_safe
from venue_inventory.services.errors import InventoryError

logger = logging.getLogger('venue_inventory.errors')


def error_payload(exc: InventoryError) -> dict:
    payload = {'error': exc.code, 'detail': exc.message}
    for key, value in exc.context.items():
        payload[key] = json_safe(value)
    return payload


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InventoryError)
    async def inventory_error_handler(request: Request, exc: InventoryError):
        logger.info('%s %s rejected: %s (%s)', request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_payload(exc))
