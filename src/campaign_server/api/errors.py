"""Exception handlers that turn domain and database failures into responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from campaign_server.db.errors import DatabaseError
from campaign_server.services.errors import ServiceError

logger = logging.getLogger(__name__)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    logger.exception("Database failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error."})


def install_error_handlers(app: FastAPI) -> None:
    """Register the ``ServiceError`` and ``DatabaseError`` handlers on ``app``."""
    app.add_exception_handler(ServiceError, service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(DatabaseError, database_error_handler)  # type: ignore[arg-type]
