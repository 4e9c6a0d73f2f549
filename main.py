import logging
import os
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_settings
from database import build_engine, build_session_factory, check_connection, init_db
from logging_config import configure_logging
from routers import invoices_router, payments_router
from services.facilitator import HttpFacilitator, PaymentFacilitator
from services.invoice_service import InvoiceService
from services.invoice_store import InvoiceStore, SqlInvoiceStore
from services.settlement import SettlementOrchestrator

logger = logging.getLogger(__name__)


def _first_error_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[InvoiceStore] = None,
    facilitator: Optional[PaymentFacilitator] = None,
) -> FastAPI:
    """
    Build the API with its collaborators.

    Without an explicit ``store`` a SQL store is created from
    ``settings.database_url``; without an explicit ``facilitator`` an HTTP
    facilitator is built from ``settings.facilitator``.
    """
    settings = settings or get_settings()

    engine = None
    if store is None:
        engine = build_engine(settings.database_url, echo=settings.sql_echo)
        init_db(engine)
        store = SqlInvoiceStore(build_session_factory(engine))

    if facilitator is None:
        facilitator = HttpFacilitator(settings.facilitator)
        if not facilitator.is_configured:
            logger.warning(
                "x402 facilitator not configured; set X402_FACILITATOR_SECRET_KEY and "
                "X402_SERVER_WALLET_ADDRESS to accept payments"
            )

    app = FastAPI(title="x402 Invoices")
    app.state.settings = settings
    app.state.engine = engine
    app.state.invoice_service = InvoiceService(
        store,
        public_base_url=settings.public_base_url,
        asset_decimals=settings.facilitator.asset_decimals,
    )
    app.state.orchestrator = SettlementOrchestrator(store, facilitator, settings)

    # CORS
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-PAYMENT-RESPONSE"],
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _first_error_message(exc)})

    @app.get("/health")
    def health():
        database = check_connection(app.state.engine) if app.state.engine is not None else None
        return {"status": "ok", "database": database}

    app.include_router(invoices_router)
    app.include_router(payments_router)

    # Unknown routes and other framework HTTP errors
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(status_code=404, content={"error": "Route not found"})
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.middleware("http")
    async def internal_error_middleware(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return app


if __name__ == "__main__":
    settings = get_settings()
    configure_logging(settings.log_level)
    port = int(os.getenv("PORT", 10000))
    uvicorn.run(create_app(settings), host="0.0.0.0", port=port)
