import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Load env from the working directory before settings are read
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from stylepath.api import health, progression
from stylepath.core.config import settings, validate_config
from stylepath.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from stylepath.core.logging import configure_logging
from stylepath.core.middleware.request_id import RequestIdMiddleware
from stylepath.features.achievements.catalog import InMemoryAchievementCatalog, SqlAchievementCatalog, seed_catalog
from stylepath.features.progression.orchestrator import ProgressionOrchestrator
from stylepath.features.progression.store import get_progression_store
from stylepath.features.progression.store_sql import SqlProgressionStore


def build_orchestrator() -> ProgressionOrchestrator:
    """Default wiring: store chosen from the environment, catalog matching the store."""
    store = get_progression_store()
    if isinstance(store, SqlProgressionStore):
        inserted = seed_catalog()
        if inserted:
            logging.getLogger("stylepath").info(f"[catalog] seeded {inserted} achievement definitions")
        catalog = SqlAchievementCatalog()
    else:
        catalog = InMemoryAchievementCatalog()
    return ProgressionOrchestrator(store, catalog)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("stylepath")
    logger.info("Starting stylepath progression engine...")
    try:
        yield
    finally:
        logger.info("Stopping stylepath progression engine...")


def create_app(orchestrator: Optional[ProgressionOrchestrator] = None) -> FastAPI:
    configure_logging(settings.ENV)
    validate_config(strict=settings.CONFIG_STRICT)

    app = FastAPI(title="stylepath - Progression Engine", lifespan=lifespan)
    app.state.orchestrator = orchestrator or build_orchestrator()

    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(progression.router, tags=["progression"])
    app.include_router(health.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("stylepath.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
