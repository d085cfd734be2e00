"""FastAPI application factory"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import Response

from gurtpay_ledger.api.dependencies import get_request_id
from gurtpay_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from gurtpay_ledger.api.v1 import ads, auth, business, cards, codes, invoices, wallet
from gurtpay_ledger.config import settings
from gurtpay_ledger.domain.exceptions import LedgerError
from gurtpay_ledger.infrastructure.database.session import SessionLocal, init_db
from gurtpay_ledger.infrastructure.observability.logging import setup_logging, log_rejection
from gurtpay_ledger.infrastructure.observability.metrics import rejection_counter, storage_failure_counter
from gurtpay_ledger.infrastructure.security.sessions import SessionAuthority

# Setup structured logging
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A store that cannot be reached is fatal: let the error abort startup
    init_db()

    db = SessionLocal()
    try:
        SessionAuthority(db, settings).sweep_expired()
    except SQLAlchemyError:
        logger.warning("Session sweep skipped", exc_info=True)
    finally:
        db.close()

    yield


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    rejection_counter.labels(code=exc.code).inc()
    log_rejection(get_request_id(request), exc.code, exc.message, request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "code": exc.code})


async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    storage_failure_counter.inc()
    logger.error(
        f"Storage error: {exc}",
        extra={"request_id": get_request_id(request), "path": request.url.path},
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="GurtPay Ledger",
        description="Custodial wallet ledger, invoicing, redemption codes and ad settlement",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(auth.router, prefix="/v1", tags=["auth"])
    app.include_router(wallet.router, prefix="/v1", tags=["wallet"])
    app.include_router(business.router, prefix="/v1", tags=["business"])
    app.include_router(invoices.router, prefix="/v1", tags=["invoices"])
    app.include_router(codes.router, prefix="/v1", tags=["codes"])
    app.include_router(cards.router, prefix="/v1", tags=["cards"])
    app.include_router(ads.router, prefix="/v1", tags=["ads"])

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn"""
    import uvicorn
    uvicorn.run("gurtpay_ledger.api.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
