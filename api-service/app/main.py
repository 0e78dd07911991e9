"""
FastAPI Main Application
Back-office authorization and tenancy API
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from app.core.config import settings
from app.core.cache import cache
from app.core.database import AsyncSessionLocal, engine
from app.core.logging import setup_logging
from app.api.v1.endpoints import health
from app.api.v1.router import api_router
from app.middleware.logging import LoggingMiddleware
from app.services.bootstrap_rbac import bootstrap_rbac

# Setup structured logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting back-office API", environment=settings.ENVIRONMENT)

    # Schema is owned by Alembic; only reference data is ensured here
    async with AsyncSessionLocal() as session:
        await bootstrap_rbac(session)

    yield

    logger.info("Shutting down back-office API")
    await cache.close()
    await engine.dispose()


app = FastAPI(
    title="Back Office API",
    description="Multi-tenant back-office authorization and tenant scoping",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan
)

cors_origins = list(settings.CORS_ORIGINS)
if settings.ENVIRONMENT == "development" and not cors_origins:
    cors_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
    max_age=600,
)
app.add_middleware(LoggingMiddleware)

app.include_router(api_router, prefix="/api/v1")
app.include_router(health.router, prefix="/health", tags=["health"])


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower()
    )
