"""FastAPI application factory"""

import asyncio

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from accounts_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from accounts_gateway.api.v1 import accounts, cash_register, payments, receipts
from accounts_gateway.api.v1.errors import domain_exception_handler, unhandled_exception_handler
from accounts_gateway.domain.exceptions import DomainException
from accounts_gateway.infrastructure.observability.logging import setup_logging
from accounts_gateway.services.payment_recorder import DocumentLocks
from accounts_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Accounts Gateway",
        description="Accounts payable/receivable schedules and payment reconciliation with the cash register",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # One writer per document and one appender for the register, per process
    app.state.document_locks = DocumentLocks()
    app.state.register_lock = asyncio.Lock()

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(accounts.router, prefix="/v1", tags=["accounts"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(receipts.router, prefix="/v1", tags=["receipts"])
    app.include_router(cash_register.router, prefix="/v1", tags=["cash-register"])

    return app


app = create_app()
