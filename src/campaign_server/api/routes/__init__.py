"""
Route registration entry point for the FastAPI application.

Each module exposes ``router()`` returning an ``APIRouter``; the modules
mirror the service modules they call.
"""

from fastapi import FastAPI

from campaign_server.api.routes import (
    auth,
    campaigns,
    characters,
    choices,
    entities,
    entity_types,
    health,
    location_types,
    locations,
    notes,
    packs,
    relationships,
    sessions,
    system,
    views,
    world_builder,
    worlds,
)


def register_routes(app: FastAPI) -> None:
    """Register all API routes with the FastAPI app."""
    app.include_router(health.router())
    for module in (
        auth,
        worlds,
        campaigns,
        characters,
        entity_types,
        entities,
        location_types,
        locations,
        relationships,
        notes,
        sessions,
        choices,
        packs,
        world_builder,
        system,
        views,
    ):
        app.include_router(module.router())
