"""FastAPI application factory"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from recon_gateway.api.middleware import RequestContextMiddleware, MetricsMiddleware
from recon_gateway.api.v1 import reconciliation, history
from recon_gateway.infrastructure.observability.logging import setup_logging
from recon_gateway.infrastructure.database.session import init_db
from recon_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Ensure the schema exists before serving requests"""
    init_db()
    yield


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Recon Gateway",
        description="Mobile-money statement reconciliation against open invoices",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestContextMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(reconciliation.router, prefix="/v1", tags=["reconciliations"])
    app.include_router(history.router, prefix="/v1", tags=["history"])

    return app


app = create_app()
