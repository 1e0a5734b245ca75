from __future__ import annotations

import logging
from typing import Callable

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text as sql_text
from sqlalchemy.exc import SQLAlchemyError

from coding_analysis.config import load_config
from coding_analysis.db.base import get_engine
from coding_analysis.db.migrations_runner import apply_migrations
from coding_analysis.errors import AppError
from coding_analysis.http.problem import (
    handle_app_error,
    handle_http_exception,
    handle_request_validation_error,
    handle_unexpected_error,
)
from coding_analysis.http.request_id import RequestIdMiddleware
from coding_analysis.logging_setup import configure_logging
from coding_analysis.routes import api_router
from coding_analysis.routes.test_support import router as test_support_router

logger = logging.getLogger(__name__)


def _health_check(dsn: str) -> Callable[[], dict]:
    def check() -> dict:
        try:
            with get_engine(dsn).connect() as conn:
                conn.execute(sql_text("SELECT 1"))
            return {"status": "ok", "db": True}
        except SQLAlchemyError as e:
            logger.error("Health DB check failed", exc_info=True)
            return {"status": "degraded", "db": False, "reason": str(e)}

    return check


def create_app() -> FastAPI:
    configure_logging()
    config = load_config()

    app = FastAPI(title="Coding Analysis Service", version="0.1.0")

    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.add_middleware(RequestIdMiddleware)

    # Apply migrations on startup (guarded) to avoid import-time side effects
    @app.on_event("startup")
    def _apply_migrations() -> None:
        if not config.database.auto_apply_migrations:
            logger.info("AUTO_APPLY_MIGRATIONS disabled; skipping migrations at startup")
            return
        try:
            applied = apply_migrations(get_engine(config.database.dsn))
        except Exception:
            logger.error("Failed to apply migrations at startup", exc_info=True)
            raise
        logger.info("startup_migrations applied=%s", len(applied))

    app.include_router(api_router, prefix="/api/v1")
    # Test-support router (no prefix) exposes '/__test__/events'
    app.include_router(test_support_router)

    health_check = _health_check(config.database.dsn)

    @app.get("/health")
    def health():  # pragma: no cover - trivial
        return health_check()

    return app


# Intentionally do not instantiate the app at import time to prevent side effects.
