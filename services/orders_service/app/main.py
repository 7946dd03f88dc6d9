"""FastAPI application for the Orders Service."""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers, error_response
from libs.common.logging import get_logger
from libs.common.middleware import add_observability_middleware
from services.orders_service.errors import OrderError, Unexpected
from services.orders_service.routers import admin_router, buyer_router, courier_router

logger = get_logger(__name__)


async def order_error_handler(request: Request, exc: OrderError) -> JSONResponse:
    if isinstance(exc, Unexpected):
        logger.error(
            "Unexpected order failure on %s %s: %s",
            request.method,
            request.url.path,
            exc.message,
        )
    return error_response(exc.status_code, exc.message, exc.code)


def create_app() -> FastAPI:
    """Create and configure the Orders Service FastAPI app."""
    settings = get_settings()
    app = FastAPI(
        title="Orders Service",
        version="0.1.0",
        description="Order lifecycle: checkout, payment review, courier delivery.",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add observability (structured logging + request tracing)
    add_observability_middleware(app)

    add_exception_handlers(app)
    app.add_exception_handler(OrderError, order_error_handler)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "orders"}

    app.include_router(buyer_router, prefix="/buyer")
    app.include_router(courier_router, prefix="/courier")
    app.include_router(admin_router, prefix="/admin")

    return app


app = create_app()
