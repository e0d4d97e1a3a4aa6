"""CLI argument parsing and main entry point.

Subcommands:

* ``toolwatch server``   run the monitor with its management API (Uvicorn).
* ``toolwatch validate`` load a config file and print the resulting targets.
* ``toolwatch status``   query a running server and print target health.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

import httpx
import uvicorn
from rich.console import Console

from toolwatch.api_client import ApiClient, ApiClientError
from toolwatch.config import build_dependencies, build_targets, load_toolwatch_config
from toolwatch.config.schema import ToolwatchConfig
from toolwatch.constants import DEFAULT_HOST, DEFAULT_PORT, SERVER_NAME, SERVER_VERSION
from toolwatch.display.logging_config import setup_logging
from toolwatch.display.status_table import build_targets_table, render_status
from toolwatch.errors import ConfigurationError
from toolwatch.monitor.checkers.registry import DEFAULT_CHECKER_KEYS

module_logger = logging.getLogger(__name__)

uvicorn_svr_inst: Optional[uvicorn.Server] = None

# Config file search order (first match wins)
_CONFIG_SEARCH_ORDER = ("toolwatch.yaml", "toolwatch.yml", "config.yaml", "config.yml")


def _find_config_file() -> str:
    """Locate the config file in the working directory.

    Falls back to ``CWD/toolwatch.yaml`` if nothing exists (loader will error).
    """
    for name in _CONFIG_SEARCH_ORDER:
        candidate = os.path.join(os.getcwd(), name)
        if os.path.isfile(candidate):
            return candidate
    return os.path.join(os.getcwd(), _CONFIG_SEARCH_ORDER[0])


def _resolve_config_path(cli_value: Optional[str]) -> str:
    """CLI flag, then ``TOOLWATCH_CONFIG``, then auto-detect."""
    config_path = cli_value or os.environ.get("TOOLWATCH_CONFIG") or _find_config_file()
    return os.path.abspath(config_path)


# ── ``toolwatch server`` ────────────────────────────────────────────────


async def _run_server(
    host: Optional[str],
    port: Optional[int],
    log_lvl_cli: str,
    config_path: Optional[str] = None,
) -> None:
    """Async main for the server subcommand."""
    global uvicorn_svr_inst

    log_fpath, cfg_log_lvl = setup_logging(log_lvl_cli)
    module_logger.info(
        "---- %s v%s starting (file log level: %s) ----",
        SERVER_NAME,
        SERVER_VERSION,
        cfg_log_lvl,
    )

    cfg_abs_path = _resolve_config_path(config_path)
    module_logger.info("Configuration file path resolved to: %s", cfg_abs_path)

    # Host/port: CLI flag, then the config's server section.
    config: Optional[ToolwatchConfig] = None
    try:
        config = load_toolwatch_config(cfg_abs_path)
    except ConfigurationError as e_cfg:
        module_logger.error("Configuration error: %s", e_cfg)
        print(f"\nError: {e_cfg}\n", file=sys.stderr)
        raise SystemExit(2) from e_cfg
    host = host or config.server.host
    port = port or config.server.port

    from toolwatch.server.app import create_app

    app = create_app(config_path=cfg_abs_path, config=config)
    app_s = app.state
    app_s.host = host
    app_s.port = port
    app_s.actual_log_file = log_fpath
    app_s.file_log_level_configured = cfg_log_lvl

    uvicorn_cfg = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_config=None,
        log_level=cfg_log_lvl.lower() if cfg_log_lvl == "DEBUG" else "warning",
    )
    uvicorn_svr_inst = uvicorn.Server(uvicorn_cfg)

    module_logger.info("Preparing to start Uvicorn server: http://%s:%s", host, port)
    try:
        await uvicorn_svr_inst.serve()
    except (KeyboardInterrupt, SystemExit) as e_exit:
        module_logger.info("Server stopped due to '%s'.", type(e_exit).__name__)
    except Exception as e_serve:
        module_logger.exception("Unexpected error while running Uvicorn server: %s", e_serve)
        raise
    finally:
        module_logger.info("%s has shut down or is shutting down.", SERVER_NAME)


def _cmd_server(args: argparse.Namespace) -> None:
    """Entry-point for ``toolwatch server``."""

    def _sigterm_handler(sig: int, frame: object) -> None:
        module_logger.info("SIGTERM received, shutting down gracefully...")
        if uvicorn_svr_inst is not None:
            uvicorn_svr_inst.should_exit = True

    signal.signal(signal.SIGTERM, _sigterm_handler)

    try:
        asyncio.run(
            _run_server(
                host=args.host,
                port=args.port,
                log_lvl_cli=args.log_level,
                config_path=args.config,
            )
        )
    except KeyboardInterrupt:
        module_logger.info("%s main program interrupted by KeyboardInterrupt.", SERVER_NAME)
    except Exception as e_fatal:
        module_logger.exception(
            "%s main program encountered an uncaught fatal error: %s", SERVER_NAME, e_fatal
        )
        sys.exit(1)
    finally:
        module_logger.info("%s application finished.", SERVER_NAME)


# ── ``toolwatch validate`` ──────────────────────────────────────────────


def _cmd_validate(args: argparse.Namespace) -> None:
    """Load and validate a config file; print its targets."""
    console = Console()
    try:
        config = load_toolwatch_config(args.config)
        targets = build_targets(config, DEFAULT_CHECKER_KEYS)
        edges = build_dependencies(config)
    except ConfigurationError as e_cfg:
        console.print(f"[bold red]Invalid configuration:[/] {e_cfg}")
        sys.exit(2)

    console.print(build_targets_table(targets.values()))
    critical_edges = sum(1 for edge in edges if edge.critical)
    console.print(
        f"[green]OK[/]: {len(targets)} target(s), {len(edges)} dependency edge(s) "
        f"({critical_edges} critical)."
    )


# ── ``toolwatch status`` ────────────────────────────────────────────────


async def _fetch_status(url: str) -> dict:
    async with ApiClient(url) as api:
        return await api.fetch_overview()


def _cmd_status(args: argparse.Namespace) -> None:
    """Show target health of a running server."""
    console = Console()
    try:
        payload = asyncio.run(_fetch_status(args.url))
    except httpx.TransportError as e_conn:
        console.print(f"[bold red]Cannot reach {args.url}:[/] {e_conn}")
        sys.exit(1)
    except ApiClientError as e_api:
        console.print(f"[bold red]Management API error:[/] {e_api}")
        sys.exit(1)
    render_status(payload, console)


# ── Parser ──────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser with server/validate/status subcommands."""
    parser = argparse.ArgumentParser(
        prog="toolwatch",
        description=f"{SERVER_NAME} v{SERVER_VERSION}",
    )
    subparsers = parser.add_subparsers(dest="command")

    # ── server ──────────────────────────────────────────────────
    sp_server = subparsers.add_parser(
        "server",
        help="Run the health monitor and its management API (Uvicorn)",
    )
    sp_server.add_argument(
        "--host",
        type=str,
        default=None,
        help=f"Host address (default: config server.host or {DEFAULT_HOST})",
    )
    sp_server.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"Port (default: config server.port or {DEFAULT_PORT})",
    )
    sp_server.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Set file logging level (default: info)",
    )
    sp_server.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="PATH",
        help="Path to configuration file (YAML). Default: $TOOLWATCH_CONFIG or auto-detect",
    )
    sp_server.set_defaults(func=_cmd_server)

    # ── validate ────────────────────────────────────────────────
    sp_validate = subparsers.add_parser(
        "validate",
        help="Validate a configuration file and list its targets",
    )
    sp_validate.add_argument("config", metavar="PATH", help="Configuration file (YAML)")
    sp_validate.set_defaults(func=_cmd_validate)

    # ── status ──────────────────────────────────────────────────
    sp_status = subparsers.add_parser(
        "status",
        help="Show target health from a running server",
    )
    sp_status.add_argument(
        "--url",
        type=str,
        default=f"http://{DEFAULT_HOST}:{DEFAULT_PORT}",
        help=f"Server URL (default: http://{DEFAULT_HOST}:{DEFAULT_PORT})",
    )
    sp_status.set_defaults(func=_cmd_status)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Program entry point: parse arguments and dispatch to subcommand."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)
    else:
        args.func(args)


if __name__ == "__main__":
    main()
