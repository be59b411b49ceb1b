"""
Quiz Assessment Platform
FastAPI application factory and configuration
"""

import logging
import time
from typing import Optional

from fastapi import FastAPI, Request, status, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError

# Import API routers
from .api import (
    auth,
    quizzes,
    students,
    analytics
)

from .database.connection import Database
from .dependencies import RateLimiter, create_redis_client
from .exceptions import AppException, PersistenceException
from ..config import Settings, get_settings

# Configure logging
logger = logging.getLogger(__name__)


class RequestContextMiddleware:
    """Middleware to add request timing"""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            start_time = time.time()

            async def send_wrapper(message):
                if message["type"] == "http.response.start":
                    process_time = time.time() - start_time
                    message["headers"] = list(message.get("headers", []))
                    message["headers"].append(
                        (b"x-process-time", f"{process_time:.6f}".encode())
                    )
                await send(message)

            await self.app(scope, receive, send_wrapper)
        else:
            await self.app(scope, receive, send)


def error_response(exc: AppException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={**exc.to_dict(), "timestamp": time.time()}
    )


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    rate_limiter: Optional[RateLimiter] = None
) -> FastAPI:
    """Create and configure the FastAPI application"""

    if settings is None:
        settings = get_settings()

    # Create FastAPI instance
    app = FastAPI(
        title="Quiz Assessment API",
        description="Backend API for quiz submission, scoring and reporting",
        version=settings.VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        default_response_class=JSONResponse
    )

    # Shared resources, built once and read by dependencies
    app.state.settings = settings
    app.state.database = database or Database(settings)
    app.state.rate_limiter = rate_limiter or RateLimiter.from_settings(
        settings, create_redis_client(settings)
    )

    # Add custom middleware
    app.add_middleware(RequestContextMiddleware)

    # Exception handlers
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        """Handle custom application exceptions"""
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Reject malformed requests with field locations only, never input values"""
        fields = [
            ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "VALIDATION_ERROR",
                "message": "Missing or malformed fields",
                "details": {"fields": fields},
                "timestamp": time.time()
            }
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        """Handle store failures that escaped the service layer"""
        logger.error(f"Database error on {request.url.path}: {exc}")
        return error_response(PersistenceException())

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions"""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "HTTP_ERROR",
                "message": exc.detail,
                "timestamp": time.time()
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.exception(f"Unexpected error on {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "INTERNAL_ERROR",
                "message": "An internal server error occurred",
                "timestamp": time.time()
            }
        )

    # Health check endpoint
    @app.get("/health", tags=["System"])
    async def health_check():
        """API health check endpoint"""
        database_status = await app.state.database.check_health()
        return {
            "status": "healthy" if database_status["database"] == "connected" else "degraded",
            "api_version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "timestamp": time.time(),
            **database_status
        }

    # Include API routers
    app.include_router(auth.router, tags=["Authentication"])
    app.include_router(quizzes.router, tags=["Quizzes"])
    app.include_router(students.router, tags=["Students"])
    app.include_router(analytics.router, tags=["Analytics"])

    logger.info("✅ Backend API configured successfully")
    return app


# Export the app factory
__all__ = ["create_app"]
