"""
Main FastAPI application.
eBay Repricer API.
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from repricer.api.competitors import router as competitors_router
from repricer.api.dependencies import get_gateway
from repricer.api.execution import router as execution_router
from repricer.api.rules import router as rules_router
from repricer.api.strategies import router as strategies_router
from repricer.core.config import get_settings
from repricer.core.database import check_database_connection, close_db, init_db
from repricer.core.errors import RepricerError
from repricer.core.logging import configure_logging
from repricer.core.scheduler import setup_scheduler, shutdown_scheduler
from repricer.db.mongodb import check_mongo_connection, close_mongo_client, ensure_indexes
from repricer.models.schemas import HealthResponse

configure_logging()

logger = structlog.get_logger()
settings = get_settings()

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting eBay Repricer API", env=settings.app_env)

    try:
        await init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))

    try:
        await ensure_indexes()
    except Exception as e:
        logger.error("Failed to create MongoDB indexes", error=str(e))

    if settings.scheduler_enabled:
        setup_scheduler()

    yield

    # Shutdown
    logger.info("Shutting down eBay Repricer API")

    if settings.scheduler_enabled:
        shutdown_scheduler()

    await get_gateway().close()
    await close_db()
    close_mongo_client()


app = FastAPI(
    title="eBay Repricer API",
    description="""
    Competitor-driven repricing for eBay listings.

    ## Features

    * **Pricing strategies**: match, beat or stay above the lowest competitor
    * **Competitor rules**: exclude competitors by country, condition, title words or seller
    * **Manual competitors**: track specific competing listings per item
    * **Execution**: reprice one listing or every listing with an active strategy
    * **History**: every pushed price change is recorded
    """,
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "health", "description": "Service status"},
        {"name": "strategies", "description": "Pricing strategies and listing bindings"},
        {"name": "rules", "description": "Competitor rules"},
        {"name": "competitors", "description": "Manually tracked competitors"},
        {"name": "execution", "description": "Repricing runs and history"},
    ],
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RepricerError)
async def repricer_exception_handler(request: Request, exc: RepricerError):
    """Translate typed errors into their HTTP status."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request failed",
        path=request.url.path,
        method=request.method,
        code=exc.code,
        error=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.message,
            "code": exc.code,
        }
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "detail": str(exc) if settings.app_debug else None
        }
    )


app.include_router(strategies_router)
app.include_router(rules_router)
app.include_router(competitors_router)
app.include_router(execution_router)


@app.get("/", tags=["health"])
async def root():
    """Root endpoint."""
    return {
        "service": "eBay Repricer",
        "version": VERSION,
        "docs": "/docs"
    }


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """
    Health check endpoint.

    Returns status of all dependencies.
    """
    ebay_api_status = "not_configured"

    db_ok, db_error = await check_database_connection()
    db_status = "healthy" if db_ok else f"unhealthy: {db_error}"

    mongo_ok, mongo_error = await check_mongo_connection()
    mongo_status = "healthy" if mongo_ok else f"unhealthy: {mongo_error}"

    if settings.ebay_api_configured and settings.ebay_seller_configured:
        ebay_api_status = "configured"
    elif settings.ebay_api_configured:
        ebay_api_status = "browse_only"

    healthy = db_ok and mongo_ok
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=VERSION,
        database=db_status,
        mongodb=mongo_status,
        ebay_api=ebay_api_status
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "repricer.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
    )
