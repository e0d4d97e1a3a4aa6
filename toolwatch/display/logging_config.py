"""Logging configuration setup."""

import copy
import logging
import logging.config
import os
import re
import sys
from datetime import datetime
from typing import Optional, Set, Tuple

from toolwatch.constants import LOG_DIR

# ── Secret redaction filter ──────────────────────────────────────────────

_REDACTED = "***REDACTED***"


class SecretRedactionFilter(logging.Filter):
    """Replaces registered secret values (probe header tokens) in log records.

    Values are registered by the config loader as it reads probe headers.
    """

    def __init__(self) -> None:
        super().__init__()
        self._secrets: Set[str] = set()
        self._pattern: Optional[re.Pattern] = None

    def register(self, value: str) -> None:
        # Short values would redact ordinary words.
        if not value or len(value) < 4 or value in self._secrets:
            return
        self._secrets.add(value)
        escaped = sorted((re.escape(s) for s in self._secrets), key=len, reverse=True)
        self._pattern = re.compile("|".join(escaped))

    def redact(self, text: str) -> str:
        if self._pattern is None:
            return text
        return self._pattern.sub(_REDACTED, text)

    def filter(self, record: logging.LogRecord) -> bool:
        if self._pattern is None:
            return True
        if isinstance(record.msg, str):
            record.msg = self.redact(record.msg)
        if isinstance(record.args, dict):
            record.args = {
                k: self.redact(v) if isinstance(v, str) else v for k, v in record.args.items()
            }
        elif isinstance(record.args, tuple):
            record.args = tuple(self.redact(a) if isinstance(a, str) else a for a in record.args)
        return True


# Module-level singleton so the config loader can register values.
secret_redaction_filter = SecretRedactionFilter()

_FILE_LOGGERS = (
    "toolwatch",
    "toolwatch.monitor",
    "toolwatch.server",
    "toolwatch.config",
    "toolwatch.runtime",
    "uvicorn",
    "uvicorn.error",
    "starlette",
    "httpx",
)

BASE_LOG_CFG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple_file": {
            "format": "%(asctime)s - %(name)25s:%(lineno)-4d - %(levelname)-7s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "file_handler": {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "simple_file",
            "filename": "temp_log_name.log",
            "encoding": "utf-8",
        },
    },
    "loggers": {
        "uvicorn.access": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "WARNING",
        },
    },
    "root": {
        "handlers": ["file_handler"],
        "level": "WARNING",
    },
}


def build_log_config(log_fpath: str, level: str) -> dict:
    """dictConfig payload writing every Toolwatch logger to *log_fpath*."""
    log_cfg: dict = copy.deepcopy(BASE_LOG_CFG)
    log_cfg["handlers"]["file_handler"]["filename"] = log_fpath
    for name in _FILE_LOGGERS:
        # httpx logs every request at INFO; keep it quieter than our own loggers.
        lvl = level if name != "httpx" or level == "DEBUG" else "WARNING"
        log_cfg["loggers"][name] = {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": lvl,
        }
    log_cfg["loggers"]["uvicorn.access"]["level"] = "INFO" if level == "DEBUG" else "WARNING"
    log_cfg["root"]["level"] = level if level == "DEBUG" else "WARNING"
    return log_cfg


def setup_logging(log_lvl_str: str, *, quiet: bool = False) -> Tuple[str, str]:
    """Set up file logging with a timestamped file name under ``logs/``.

    Args:
        log_lvl_str: The desired log level string (e.g., 'debug', 'info').
        quiet: If *True*, suppress the console notice.

    Returns:
        A tuple of (log_file_path, validated_log_level).
    """
    log_lvl_valid = log_lvl_str.upper()
    if log_lvl_valid not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        if not quiet:
            print(f"Warning: invalid log level '{log_lvl_str}'. Using 'INFO'.")
        log_lvl_valid = "INFO"

    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    os.makedirs(LOG_DIR, exist_ok=True)
    log_fpath = os.path.join(LOG_DIR, f"toolwatch_{ts}_{log_lvl_valid}.log")

    try:
        logging.config.dictConfig(build_log_config(log_fpath, log_lvl_valid))
        for handler in logging.root.handlers:
            handler.addFilter(secret_redaction_filter)
        if not quiet:
            print(f"Logging initialized. File log level: {log_lvl_valid}, log file: {log_fpath}")
    except (ValueError, TypeError, AttributeError, ImportError, OSError) as e_log_cfg:
        print(f"Error applying logging configuration: {e_log_cfg}", file=sys.stderr)

    return log_fpath, log_lvl_valid
