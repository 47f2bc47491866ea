"""Main FastAPI application - EasyCars sync operational API"""

import logging
import time

from fastapi import FastAPI
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sqlalchemy import text
from sentry_sdk.integrations.fastapi import FastApiIntegration
from starlette.responses import JSONResponse

from easycars_sync.config import get_settings
from easycars_sync.database import AsyncSessionLocal, close_db, init_db
from easycars_sync.observability import init_sentry, report_exception
from easycars_sync.api import credentials, easycars
from easycars_sync import models  # noqa: F401
from easycars_sync.services.easycars_client import close_shared_client
from easycars_sync.services.token_cache import reset_token_cache

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

init_sentry(settings, [FastApiIntegration()], "api")

# Prometheus metrics (low-cardinality labels only).
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)
HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)

app = FastAPI(
    title="EasyCars Sync API",
    description="Stock and lead synchronization between dealerships and EasyCars",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc"
)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Unhandled exceptions: log, report to Sentry, clean 500."""
    logger.exception("Unhandled exception: %s %s", request.method, request.url)
    report_exception(settings, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


@app.on_event("startup")
async def startup_event():
    logger.info("Starting EasyCars Sync API...")
    logger.info("Database: %s", settings.DATABASE_URL.split('@')[-1])  # Hide credentials in logs
    try:
        settings.validate_easycars()
    except ValueError as e:
        logger.error("EasyCars configuration invalid: %s", e)
        raise

    # Development convenience; Alembic owns the production schema
    if settings.DEBUG:
        await init_db()


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down EasyCars Sync API...")
    await close_shared_client()
    reset_token_cache()
    await close_db()


@app.middleware("http")
async def prometheus_http_middleware(request, call_next):
    """Record request metrics keyed by route template."""
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = getattr(response, "status_code", 500) or 500
        return response
    finally:
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path) or request.url.path
        if path not in {"/api/metrics", "/metrics"}:
            HTTP_REQUESTS_TOTAL.labels(
                method=request.method,
                path=path,
                status_code=str(status_code),
            ).inc()
            HTTP_REQUEST_DURATION_SECONDS.labels(
                method=request.method,
                path=path,
            ).observe(time.perf_counter() - start)


@app.get("/health")
async def health_check():
    """Health check endpoint - verifies DB connectivity."""
    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        return {"status": "healthy", "service": "easycars-sync", "version": "0.1.0"}
    except Exception as e:
        logger.warning("Health check failed: %s", e)
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "service": "easycars-sync", "error": str(e)}
        )


@app.get("/api/metrics")
async def prometheus_metrics():
    """Prometheus scrape endpoint (includes the easycars_sync_* series)."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Include routers
app.include_router(credentials.router, prefix="/api")
app.include_router(easycars.router, prefix="/api")
