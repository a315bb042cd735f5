"""HTTP API layer: FastAPI app, routers, request models and auth helpers."""
