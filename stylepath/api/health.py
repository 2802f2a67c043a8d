"""
Health endpoints.

/healthz is a dependency-free liveness probe. /readyz reports which store
backs the engine and, for the SQL store, whether the database answers.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from stylepath.core.database import get_engine
from stylepath.features.progression.store_sql import SqlProgressionStore

logger = logging.getLogger("stylepath")

router = APIRouter(tags=["health"])

REQUIRED_TABLES = (
    "user_streaks",
    "user_stats",
    "user_achievements",
    "user_style_vectors",
)


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz(request: Request):
    store = request.app.state.orchestrator.store
    if not isinstance(store, SqlProgressionStore):
        return {"status": "ok", "store": "memory"}

    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")

        inspector = inspect(engine)
        missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
        if missing:
            detail = f"missing tables: {', '.join(missing)}"
            logger.warning(f"[readyz] {detail}")
            return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

        return {"status": "ok", "store": "sql"}
    except Exception as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})
