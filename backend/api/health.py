"""
Health endpoints for operational monitoring (no secrets exposed).
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from backend.core.database import get_engine
from backend.features.billing.service import billing_enabled

logger = logging.getLogger("confera")

root_router = APIRouter(tags=["health"])

REQUIRED_TABLES = ["plan_catalog", "payment_events", "admin_audit"]


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz():
    """Readiness check: DB connectivity + required tables."""
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")

        inspector = inspect(engine)
        missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
    except SQLAlchemyError as e:
        logger.error("[readyz] readiness check failed", extra={"error": e.__class__.__name__})
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    if missing:
        detail = f"missing tables: {', '.join(missing)}"
        logger.warning("[readyz] not ready", extra={"detail": detail})
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

    return {"status": "ok", "billing_enabled": billing_enabled()}
