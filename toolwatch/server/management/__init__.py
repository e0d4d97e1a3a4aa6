"""Management API package.

Exposes ``create_management_app`` to build the management ASGI sub-app.
"""

from starlette.applications import Starlette

from toolwatch.server.management.router import management_routes


def create_management_app() -> Starlette:
    """Build the management sub-application from ``management_routes``."""
    return Starlette(routes=management_routes.routes)


__all__ = ["create_management_app", "management_routes"]
