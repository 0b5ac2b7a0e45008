"""
FastAPI application entry point for the POS access core.

Exposes the authentication operations to the local POS front end.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from posauth.api.v1 import api_router
from posauth.context import AuthContext
from posauth.core.config import Settings, get_settings
from posauth.core.exceptions import StorageUnavailableError
from posauth.core.logging import configure_logging


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure FastAPI application."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        Application lifespan handler.

        Opens the credential store once and releases it on shutdown.
        """
        configure_logging(settings)
        async with AuthContext.open(settings) as context:
            app.state.auth_context = context
            yield
            app.state.auth_context = None

    app = FastAPI(
        title=settings.app_name,
        description="""
        ## POS Access Core

        Credential verification, lockout, session lifecycle and role-based
        access control for a point-of-sale back office.

        - **Lockout**: 3 failed attempts lock an account for 5 minutes
        - **Sessions**: one current session per installation, expiring after
          8 hours of inactivity
        - **RBAC**: data-driven role configs with access levels 1-5
        """,
        version=settings.app_version,
        openapi_url=f"{settings.api_v1_prefix}/openapi.json",
        docs_url=f"{settings.api_v1_prefix}/docs",
        redoc_url=f"{settings.api_v1_prefix}/redoc",
        lifespan=lifespan,
    )

    # CORS middleware; the bearer token travels in a header, not a cookie
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )

    @app.exception_handler(StorageUnavailableError)
    async def storage_unavailable_handler(
        request: Request, exc: StorageUnavailableError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": exc.message, "error": exc.code.value},
            headers={"Retry-After": "5"},
        )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "app": settings.app_name,
            "version": settings.app_version,
        }

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "app": settings.app_name,
            "version": settings.app_version,
            "docs": f"{settings.api_v1_prefix}/docs",
            "openapi": f"{settings.api_v1_prefix}/openapi.json",
        }

    # Include API router
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    return app


# Create application instance
app = create_application()
