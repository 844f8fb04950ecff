"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from portfolio_risk.api.middleware import RequestIDMiddleware, MetricsMiddleware
from portfolio_risk.api.v1 import channel, clients, recalculation, settings as settings_routes
from portfolio_risk.domain.recalculation import ProgressTracker, RecalculationRunner
from portfolio_risk.infrastructure.channel.broadcaster import WeightUpdateBroadcaster
from portfolio_risk.infrastructure.observability.logging import setup_logging
from portfolio_risk.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Portfolio Risk Engine",
        description="Client risk and urgency scoring with live weight configuration",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # One runner and one broadcaster per process
    app.state.runner = RecalculationRunner(ProgressTracker())
    app.state.broadcaster = WeightUpdateBroadcaster()

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(settings_routes.router, prefix="/v1", tags=["settings"])
    app.include_router(recalculation.router, prefix="/v1", tags=["recalculation"])
    app.include_router(clients.router, prefix="/v1", tags=["clients"])
    app.include_router(channel.router, prefix="/v1", tags=["channel"])

    return app


app = create_app()
