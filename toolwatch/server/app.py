"""Starlette ASGI application factory."""

import logging
from typing import Optional

from starlette.applications import Starlette
from starlette.routing import Mount

from toolwatch.config.schema import ToolwatchConfig
from toolwatch.constants import MANAGEMENT_API_PREFIX, SERVER_NAME
from toolwatch.runtime.service import MonitorService
from toolwatch.server.lifespan import app_lifespan
from toolwatch.server.management import create_management_app

logger = logging.getLogger(__name__)


def create_app(
    service: Optional[MonitorService] = None,
    *,
    config_path: Optional[str] = None,
    config: Optional[ToolwatchConfig] = None,
) -> Starlette:
    """Create and return the Starlette ASGI application.

    Parameters
    ----------
    service:
        Pre-built service (e.g. with an injected HTTP client); one is
        created at startup otherwise.
    config_path, config:
        Where the lifespan loads the monitor configuration from.  The CLI
        sets ``state.config_file_path`` instead.
    """
    mgmt_app = create_management_app()
    routes = []
    if config is None or config.server.management.enabled:
        routes.append(Mount(MANAGEMENT_API_PREFIX, app=mgmt_app))
    application = Starlette(lifespan=app_lifespan, routes=routes)

    # Store mgmt_app reference so lifespan can propagate service state to it.
    application.state.mgmt_app = mgmt_app  # type: ignore[attr-defined]
    application.state.config_file_path = config_path  # type: ignore[attr-defined]
    application.state.monitor_config = config  # type: ignore[attr-defined]
    if service is not None:
        application.state.monitor_service = service  # type: ignore[attr-defined]
        mgmt_app.state.monitor_service = service  # type: ignore[attr-defined]

    logger.info("Starlette ASGI app '%s' created. Manage on %s", SERVER_NAME, MANAGEMENT_API_PREFIX)
    return application
