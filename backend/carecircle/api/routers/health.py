from __future__ import annotations

import logging

from fastapi import APIRouter, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from carecircle.core.events import is_server_shutting_down
from carecircle.db.db import SessionLocal

router = APIRouter(tags=["ops"])
logger = logging.getLogger("carecircle.api.health")


@router.get("/healthz")
def healthz():
    return {
        "status": "ok",
        "is_shutting_down": is_server_shutting_down(),
    }


@router.get("/readyz")
def readyz(response: Response):
    if is_server_shutting_down():
        response.status_code = 503
        return {"status": "not_ready", "reason": "shutdown_in_progress"}

    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Readiness check failed: %s", exc)
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}

    return {"status": "ready"}
