"""
FastAPI Application Entry Point
Document access service with file and applicant document routes
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from edumatch.core.config import settings
from edumatch.core.logging import setup_logging, get_logger
from edumatch.core.exceptions import AppException, PermissionException
from edumatch.models.common import HealthResponse
from edumatch.api.v1 import router as api_v1_router

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan management"""
    logger.info("Starting EduMatch Document Access...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.DEBUG}")

    # Startup
    try:
        from edumatch.db.session import init_db
        from edumatch.storage.client import init_minio

        await init_db()
        await init_minio()

        logger.info("All services initialized successfully")

    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        # Requests fail closed until the backends come up

    yield

    # Shutdown
    logger.info("Shutting down...")
    try:
        from edumatch.db.session import close_db

        await close_db()

        logger.info("Shutdown complete")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Authorization and delivery of stored application documents, profile images and attachments",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan
)


# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# GZip Middleware
app.add_middleware(GZipMiddleware, minimum_size=1000)


# Exception Handlers
@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle application-specific exceptions"""
    if isinstance(exc, PermissionException):
        logger.warning(f"Forbidden {request.method} {request.url.path}: reason={exc.reason}")
    elif exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message} {exc.details}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "details": exc.details,
                "timestamp": exc.timestamp,
            }
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions"""
    if isinstance(exc.detail, dict):
        error_code = exc.detail.get("code", "http_error")
        error_message = exc.detail.get("message", str(exc.detail))
    else:
        error_code = str(exc.detail).lower().replace(" ", "_")
        error_message = str(exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": error_code,
                "message": error_message,
                "timestamp": None,
            }
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle validation errors"""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "validation_error",
                "message": "Invalid request parameters",
                "details": {"errors": exc.errors()},
                "timestamp": None,
            }
        },
    )


# Include routers
app.include_router(api_v1_router, prefix="/api/v1")


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs_url": "/docs" if settings.DEBUG else None,
    }


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    health_status = {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "timestamp": None,
        "services": {},
        "cache": None,
    }

    try:
        from edumatch.db.session import get_db_session
        from sqlalchemy import text
        async for session in get_db_session():
            await session.execute(text("SELECT 1"))
            health_status["services"]["postgres"] = "healthy"
            break
    except Exception as e:
        health_status["status"] = "degraded"
        health_status["services"]["postgres"] = f"unhealthy: {str(e)}"

    try:
        from edumatch.storage.client import get_object_storage
        storage = get_object_storage()
        await asyncio.to_thread(storage.client.bucket_exists, storage.bucket)
        health_status["services"]["minio"] = "healthy"
    except Exception as e:
        health_status["status"] = "degraded"
        health_status["services"]["minio"] = f"unhealthy: {str(e)}"

    try:
        from edumatch.services.access.service import get_access_service
        health_status["cache"] = await get_access_service().cache.get_stats()
    except AppException as e:
        logger.debug(f"Decision cache stats unavailable: {e.message}")

    return health_status


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "edumatch.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info",
    )
