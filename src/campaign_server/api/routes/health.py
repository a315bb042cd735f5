"""Health and root endpoints.

The version string comes from ``campaign_server.__version__``, which reads
the installed package metadata.
"""

from fastapi import APIRouter

from campaign_server import __version__
from campaign_server.api.models import HealthResponse


def router() -> APIRouter:
    api = APIRouter(tags=["health"])

    @api.get("/")
    def root():
        """API identity and current version."""
        return {"message": "Campaign Server API", "version": __version__}

    @api.get("/health", response_model=HealthResponse)
    def health_check():
        """Liveness check; does not touch the database."""
        return HealthResponse(status="ok", version=__version__)

    return api
