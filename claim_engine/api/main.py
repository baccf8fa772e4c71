"""
Claim Engine API application.
Wires logging, the database lifecycle, error handlers and the routers.
Source: https://fastapi.tiangolo.com/
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from claim_engine.api.config import settings
from claim_engine.api.routes import appeals, claims, era, health, modifiers, underpayments
from claim_engine.db.connection import close_db_connection, create_tables
from claim_engine.utils.errors import (
    ClaimEngineError,
    claim_engine_error_handler,
    request_validation_error_handler,
)
from claim_engine.utils.logging import get_logger, setup_logging

setup_logging(level=settings.LOG_LEVEL, log_file=settings.LOG_FILE, json_logs=settings.json_logs)

logger = get_logger(__name__)

ROUTERS = (health, claims, era, appeals, underpayments, modifiers)


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]  # noqa: ARG001
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} starting ({settings.ENVIRONMENT})")
    if settings.create_tables_on_startup:
        await create_tables()

    yield

    await close_db_connection()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="Claim lifecycle, scrubbing, remittance reconciliation, underpayments and appeals",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_CREDENTIALS,
    allow_methods=settings.CORS_METHODS,
    allow_headers=settings.CORS_HEADERS,
)

# Domain errors carry their own status code; request validation is reshaped
# into the same {"error", "message", "fieldErrors"} body.
app.add_exception_handler(ClaimEngineError, claim_engine_error_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, request_validation_error_handler)  # type: ignore[arg-type]

for module in ROUTERS:
    app.include_router(module.router)


@app.get("/")
async def root() -> dict[str, Any]:
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/docs" if settings.docs_enabled else "disabled",
    }
