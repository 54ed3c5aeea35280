"""Router modules for FastAPI web API."""

from web.routers import health, images, status, uploads

__all__ = ["health", "images", "status", "uploads"]
