"""Console status display and log-file status writing."""

import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

from toolwatch.constants import (
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_LEVEL,
    MANAGEMENT_API_PREFIX,
    SERVER_NAME,
    SERVER_VERSION,
)

logger = logging.getLogger(__name__)


def gen_status_info(
    app_state: Optional[object],
    status_msg: str,
    err_msg: Optional[str] = None,
    targets_total: Optional[int] = None,
    targets_healthy: Optional[int] = None,
    incidents_open: Optional[int] = None,
) -> Dict[str, Any]:
    """Collect what the console banner and the log file report at each stage."""
    host = getattr(app_state, "host", "N/A")
    port = getattr(app_state, "port", 0)

    info: Dict[str, Any] = {
        "ts": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "status_msg": status_msg,
        "host": host,
        "port": port,
        "log_fpath": getattr(app_state, "actual_log_file", DEFAULT_LOG_FILE),
        "log_lvl_cfg": getattr(app_state, "file_log_level_configured", DEFAULT_LOG_LEVEL),
        "manage_url": f"http://{host}:{port}{MANAGEMENT_API_PREFIX}" if port else "N/A",
        "cfg_fpath": getattr(app_state, "config_file_path", None) or "N/A",
        "err_msg": err_msg,
    }
    if targets_total is not None:
        info["targets_total"] = targets_total
    if targets_healthy is not None:
        info["targets_healthy"] = targets_healthy
    if incidents_open is not None:
        info["incidents_open"] = incidents_open
    return info


def disp_console_status(stage: str, status_info: Dict[str, Any], is_final: bool = False) -> None:
    """Print a status block to the console (server mode)."""
    line_len = 70
    header = f" {SERVER_NAME} v{SERVER_VERSION} "

    if stage == "Initialization" or is_final:
        print(f"\n{'=' * line_len}")
        print(f"{header:-^{line_len}}")
        print("=" * line_len)

    print(f"[{status_info['ts']}] {stage} Status: {status_info['status_msg']}")

    if stage == "Initialization":
        print(f"    Management API: {status_info['manage_url']}")
        print(f"    Config File: {os.path.basename(status_info['cfg_fpath'])}")
        print(f"    Log File: {status_info['log_fpath']} (level: {status_info['log_lvl_cfg']})")

    if "targets_total" in status_info:
        print(
            f"    Targets: {status_info.get('targets_healthy', 0)} / "
            f"{status_info['targets_total']} healthy"
        )
    if status_info.get("incidents_open"):
        print(f"    Open cascade incidents: {status_info['incidents_open']}")
    if status_info.get("err_msg"):
        print(f"    !! Error: {status_info['err_msg']}")

    print(("=" if is_final else "-") * line_len)


def log_file_status(status_info: Dict[str, Any], log_lvl: int = logging.INFO) -> None:
    """Write the same status block to the log file."""
    log_lines = [
        f"Server Status Update: {status_info['status_msg']}",
        f"  Management API: {status_info['manage_url']}",
        f"  Config File Used: {status_info['cfg_fpath']}",
        f"  Configured File Log Level: {status_info['log_lvl_cfg']}",
        f"  Actual Log File: {status_info['log_fpath']}",
    ]
    if "targets_total" in status_info:
        log_lines.append(
            f"  Targets: {status_info.get('targets_healthy', 0)}/"
            f"{status_info['targets_total']} healthy"
        )
    if "incidents_open" in status_info:
        log_lines.append(f"  Open cascade incidents: {status_info['incidents_open']}")
    if status_info.get("err_msg"):
        log_lines.append(f"  Error Details: {status_info['err_msg']}")
    logger.log(log_lvl, "\n".join(log_lines))
