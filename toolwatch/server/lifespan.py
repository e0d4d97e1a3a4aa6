"""Application lifespan management - startup and shutdown sequences.

This module provides the Starlette ``lifespan`` async context manager that
delegates lifecycle management to :class:`~toolwatch.runtime.MonitorService`.

The display/console status callbacks are kept here so that the runtime
service layer stays presentation-agnostic.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from starlette.applications import Starlette

from toolwatch.constants import SERVER_NAME, SERVER_VERSION
from toolwatch.display.console import (
    disp_console_status,
    gen_status_info,
    log_file_status,
)
from toolwatch.errors import ConfigurationError
from toolwatch.runtime.service import MonitorService

logger = logging.getLogger(__name__)


def _propagate(app: Starlette, service: MonitorService) -> None:
    """Expose the service on the app and the management sub-app state."""
    app_s = app.state
    app_s.monitor_service = service  # type: ignore[attr-defined]
    mgmt_app = getattr(app_s, "mgmt_app", None)
    if mgmt_app is not None:
        mgmt_app.state.monitor_service = service  # type: ignore[attr-defined]
        mgmt_app.state.host = getattr(app_s, "host", "127.0.0.1")  # type: ignore[attr-defined]
        mgmt_app.state.port = getattr(app_s, "port", 0)  # type: ignore[attr-defined]


async def _overview(service: MonitorService) -> dict:
    status = await service.get_service_status()
    return {
        "targets_total": status.targets_total,
        "targets_healthy": status.targets_healthy,
        "incidents_open": status.open_incidents,
    }


@asynccontextmanager
async def app_lifespan(app: Starlette) -> AsyncIterator[None]:
    """Application lifespan management: startup and shutdown.

    Uses the :class:`MonitorService` already on ``app.state`` when there is
    one, otherwise creates it.  The config comes from
    ``app.state.config_file_path`` or, without a path, from an in-memory
    ``app.state.monitor_config``.
    """
    app_s = app.state
    logger.info("Server '%s' v%s startup sequence started...", SERVER_NAME, SERVER_VERSION)

    config_path: Optional[str] = getattr(app_s, "config_file_path", None)
    config = getattr(app_s, "monitor_config", None)
    logger.info("Configuration file in use: %s", config_path or "(in-memory)")

    service: Optional[MonitorService] = getattr(app_s, "monitor_service", None)
    if service is None:
        service = MonitorService()
    _propagate(app, service)

    startup_ok = False
    err_detail_msg: Optional[str] = None

    try:
        status_info_init = gen_status_info(app_s, "Server is starting...")
        disp_console_status("Initialization", status_info_init)
        log_file_status(status_info_init)

        if config_path:
            await service.start(config_path)
        else:
            await service.start(config=config)

        logger.info("Lifespan startup phase completed successfully.")
        startup_ok = True

        status_info_ready = gen_status_info(
            app_s, "Monitor started and is probing targets.", **(await _overview(service))
        )
        disp_console_status("Service Ready", status_info_ready)
        log_file_status(status_info_ready)
        yield

    except ConfigurationError as e_cfg:
        logger.exception("Configuration error: %s", e_cfg)
        err_detail_msg = f"Configuration error: {e_cfg}"
        status_info_fail = gen_status_info(app_s, "Server startup failed.", err_msg=err_detail_msg)
        disp_console_status("Startup Failed", status_info_fail)
        log_file_status(status_info_fail, log_lvl=logging.ERROR)
        raise
    except Exception as e_exc:
        logger.exception("Unexpected error during lifespan startup: %s", e_exc)
        err_detail_msg = f"Unexpected error: {type(e_exc).__name__} - {e_exc}"
        status_info_fail = gen_status_info(app_s, "Server startup failed.", err_msg=err_detail_msg)
        disp_console_status("Startup Failed", status_info_fail)
        log_file_status(status_info_fail, log_lvl=logging.ERROR)
        raise
    finally:
        logger.info("Server '%s' shutdown sequence started...", SERVER_NAME)
        status_info_shutdown = gen_status_info(
            app_s, "Server is shutting down...", **(await _overview(service))
        )
        disp_console_status("Shutting Down", status_info_shutdown)
        log_file_status(status_info_shutdown, log_lvl=logging.WARNING)

        await service.stop()

        final_msg_short = (
            "Server shut down normally."
            if startup_ok
            else (
                f"Server exited abnormally"
                f"{(f' - Error: {err_detail_msg}' if err_detail_msg else '')}"
            )
        )
        status_info_final = gen_status_info(
            app_s, final_msg_short, err_msg=err_detail_msg if not startup_ok else None
        )
        disp_console_status("Final Status", status_info_final, is_final=True)
        log_file_status(status_info_final, log_lvl=logging.INFO if startup_ok else logging.ERROR)
        logger.info("Server '%s' shutdown sequence completed.", SERVER_NAME)
