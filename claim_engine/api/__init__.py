"""HTTP layer: FastAPI app, dependencies and routes."""
