"""FastAPI application for the league Payments Service."""

from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from libs.common.logging import get_logger
from libs.common.middleware import add_observability_middleware
from libs.db.config import Database
from services.payments_service.errors import PaymentEngineError
from services.payments_service.routers import (
    admin_router,
    analytics_router,
    webhooks_router,
)

load_dotenv()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.database = Database.from_settings()
    logger.info("Payments service started")
    try:
        yield
    finally:
        await app.state.database.dispose()


async def payment_error_handler(request: Request, exc: PaymentEngineError):
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "%s %s rejected: %s (%s)",
        request.method,
        request.url.path,
        exc.message,
        exc.code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    """Create and configure the Payments Service FastAPI app."""
    app = FastAPI(
        title="League Payments Service",
        version="0.1.0",
        description="Payment status and installment reconciliation for league admins.",
        lifespan=lifespan,
    )
    add_observability_middleware(app)
    app.add_exception_handler(PaymentEngineError, payment_error_handler)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "payments"}

    app.include_router(admin_router)
    app.include_router(analytics_router)
    app.include_router(webhooks_router)

    return app


app = create_app()
