"""inventory_api -- FastAPI webhook endpoint and admin routes."""

from inventory_api.app import create_app

__all__ = ["create_app"]
