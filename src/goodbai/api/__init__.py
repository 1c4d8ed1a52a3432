"""HTTP API: FastAPI app, routers, schemas, dependencies and exception handlers."""

from goodbai.api.app import create_app

__all__ = ["create_app"]
