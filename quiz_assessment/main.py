#!/usr/bin/env python3
"""
Quiz Assessment Platform
Main application entry point and configuration
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from redis.exceptions import RedisError

from .config import Settings, get_settings
from .backend.app import create_app
from .backend.database.connection import init_database
from .backend.utils.helpers import setup_logging

# Configure logging
logger = logging.getLogger(__name__)


def create_main_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the main FastAPI application"""

    if settings is None:
        settings = get_settings()

    # Mount the backend API
    backend_app = create_app(settings)
    database = backend_app.state.database
    rate_limiter = backend_app.state.rate_limiter

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup and shutdown events"""

        # Startup
        logger.info(f"🚀 Starting {settings.APP_NAME} in {settings.ENVIRONMENT} mode...")

        await init_database(database)

        if rate_limiter.redis_client is not None:
            try:
                await rate_limiter.redis_client.ping()
                logger.info("✅ Redis connection established")
            except RedisError as e:
                logger.warning(f"⚠️ Redis connection failed, rate limiting will allow all requests: {e}")

        logger.info("🎉 Application startup complete!")

        yield

        # Shutdown
        logger.info("🛑 Shutting down application...")
        if rate_limiter.redis_client is not None:
            await rate_limiter.redis_client.aclose()
        await database.dispose()
        logger.info("✅ Application shutdown complete")

    main_app = FastAPI(
        title=settings.APP_NAME,
        description="Timed multiple-choice quizzes with scoring and admin reporting",
        version=settings.VERSION,
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
        openapi_url="/api/openapi.json" if settings.DEBUG else None
    )

    # Add middleware
    main_app.add_middleware(GZipMiddleware, minimum_size=1000)
    main_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        expose_headers=["x-process-time"]
    )

    main_app.mount("/api", backend_app)

    # Health check endpoint
    @main_app.get("/health")
    async def health_check():
        """Application health check endpoint"""
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            **(await database.check_health())
        }

    return main_app


def main():
    """Main entry point"""
    settings = get_settings()
    setup_logging(settings)

    try:
        uvicorn.run(
            "quiz_assessment.main:create_main_app",
            factory=True,
            host=settings.HOST,
            port=settings.PORT,
            reload=settings.DEBUG,
            log_level="info" if settings.DEBUG else "warning",
            access_log=settings.DEBUG
        )
    except KeyboardInterrupt:
        logger.info("Application stopped by user")


if __name__ == "__main__":
    main()
