"""
FastAPI application for the campaign server.

This module builds the application object served by uvicorn:
- CORS middleware for the browser client (origins from ``[security]``)
- Exception handlers mapping ``ServiceError`` and ``DatabaseError``
- All route modules under ``/api`` plus the ``/`` and ``/health`` endpoints

API docs (``/docs``, ``/redoc``, ``/openapi.json``) follow
``config.docs_should_be_enabled`` so production deployments hide them.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campaign_server import __version__
from campaign_server.api.errors import install_error_handlers
from campaign_server.api.routes import register_routes
from campaign_server.config import config


def create_app() -> FastAPI:
    """Build a configured FastAPI application."""
    docs = config.docs_should_be_enabled
    app = FastAPI(
        title="Campaign Server",
        version=__version__,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        openapi_url="/openapi.json" if docs else None,
    )

    # ========================================================================
    # MIDDLEWARE CONFIGURATION
    # ========================================================================

    # The refresh token travels in a cookie, so credentials must be allowed
    # and origins must be explicit.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_origins,
        allow_credentials=config.security.cors_allow_credentials,
        allow_methods=config.security.cors_allow_methods,
        allow_headers=config.security.cors_allow_headers,
    )

    install_error_handlers(app)
    register_routes(app)
    return app


# ============================================================================
# APPLICATION INITIALIZATION
# ============================================================================

app = create_app()


if __name__ == "__main__":
    import uvicorn

    from campaign_server.config import configure_logging

    configure_logging()
    uvicorn.run(app, host=config.server.host, port=config.server.port)
