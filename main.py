"""
Routing Dashboard API - FastAPI application over the Lightning analytics warehouse
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from routing_dashboard.api.analytics import router as analytics_router
from routing_dashboard.api.betweenness import router as betweenness_router
from routing_dashboard.api.channels import router as channels_router
from routing_dashboard.api.errors import register_exception_handlers
from routing_dashboard.api.insights import router as insights_router
from routing_dashboard.api.overview import router as overview_router
from routing_dashboard.config import get_settings
from routing_dashboard.database.session import WarehouseClient
from routing_dashboard.utils.cache import get_cache_stats
from routing_dashboard.utils.logging import setup_logging

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, settings.ENVIRONMENT)
    logger.info("api_starting", environment=settings.ENVIRONMENT, version=settings.VERSION)

    app.state.warehouse = WarehouseClient(settings)
    if await app.state.warehouse.health_check():
        logger.info("warehouse_connected", schema=settings.WAREHOUSE_SCHEMA)
    else:
        # requests will answer 503 until the warehouse is reachable on restart
        logger.error("warehouse_unreachable_at_startup")

    yield

    await app.state.warehouse.close()
    logger.info("api_shutdown_complete")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Routing node dashboard analytics: rankings, trends, channels and forwarding statistics",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(betweenness_router, prefix="/betweenness", tags=["betweenness"])
app.include_router(channels_router, prefix="/channels", tags=["channels"])
app.include_router(overview_router, prefix="/overview", tags=["overview"])
app.include_router(analytics_router, prefix="/analytics", tags=["analytics"])
app.include_router(insights_router, prefix="/insights", tags=["insights"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.VERSION,
        "status": "running",
    }


@app.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint.
    Always 200; reports "degraded" when the warehouse is not reachable so
    temporary warehouse issues do not trigger restarts.
    """
    health_status = {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.VERSION,
        "checks": {},
        "cache": get_cache_stats(),
    }

    warehouse = getattr(request.app.state, "warehouse", None)
    if warehouse is not None and await warehouse.health_check():
        health_status["checks"]["warehouse"] = "healthy"
    else:
        health_status["checks"]["warehouse"] = "degraded"
        health_status["status"] = "degraded"

    return health_status


@app.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness probe - returns 200 when the warehouse is reachable."""
    warehouse = getattr(request.app.state, "warehouse", None)
    if warehouse is not None and await warehouse.health_check():
        return {"ready": True, "warehouse": "ok"}
    return JSONResponse(status_code=503, content={"ready": False})


@app.get("/health/live")
async def liveness_check():
    """Liveness probe - simple check that app is running."""
    return {"alive": True}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8001,
        reload=not settings.is_production,
    )
