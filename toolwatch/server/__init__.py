"""HTTP surface: the Starlette app, its lifespan and the management API."""

from toolwatch.server.app import create_app

__all__ = ["create_app"]
