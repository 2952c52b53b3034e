"""choreledger - chore-to-ledger reconciliation and reward engine."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from choreledger.core.config import constants
from choreledger.core.db_client import close_connection, init_db
from choreledger.core.errors import classify_error_with_response, http_status_for_code
from choreledger.core.logging import configure_logfire, instrument_fastapi
from choreledger.interface.ledger_router import router as ledger_router


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    yield
    # Shutdown
    await close_connection()


app = FastAPI(
    title="choreledger",
    description="Chore completion ledger with achievement bonuses and streaks",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(ledger_router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report unexpected failures as a structured error response."""
    error = classify_error_with_response(exc)
    logger.error(
        "unhandled_request_error",
        extra={"path": request.url.path, "error_code": error.code, "error": str(exc)},
    )
    return JSONResponse(content=error.model_dump(mode="json"), status_code=http_status_for_code(error.code))


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=constants.HTTP_OK)
