"""
Command line entry point: ``beans-mcp-server [workspace-root] [options]``.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import re
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import DEFAULT_MCP_PORT, Settings, get_settings
from .utils.errors import ConfigurationError
from .utils.logging import get_logger, setup_logging

logger = get_logger("cli")

UNSAFE_CLI_PATH = re.compile(r"[\s;&|><$(){}\[\]`]")
TRANSPORTS = ("stdio", "http")

EPILOG = """\
Workspace resolution order (highest to lowest priority):
  1. --workspace-root CLI argument (or positional)
  2. MCP roots declared by the connected client (stdio only)
  3. Current working directory

Environment variables:
  BEANS_MCP_PORT         Override the default MCP port
  BEANS_VSCODE_MCP_PORT  Override the default MCP port (VS Code extension)
  BEANS_CLI_PATH         Default path to the beans CLI
  BEANS_VSCODE_OUTPUT_LOG, BEANS_VSCODE_LOG_DIR
                         Extension output log and the directory it may live in
"""


@dataclass
class ServerConfig:
    workspace_root: str
    workspace_explicit: bool
    cli_path: str
    port: int
    log_dir: Optional[str] = None
    transport: str = "stdio"

    @property
    def resolved_log_dir(self) -> str:
        """Log directory, defaulting to the workspace root."""
        return self.log_dir or self.workspace_root


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="beans-mcp-server",
        description="MCP server exposing a Beans workspace through the beans CLI.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "workspace_root",
        nargs="?",
        metavar="workspace-root",
        help="Path to workspace root. If omitted, the server asks the connected client "
        "for its declared roots and falls back to the current directory.",
    )
    parser.add_argument(
        "--workspace",
        "--workspace-root",
        dest="workspace_flag",
        metavar="PATH",
        help="Alias for the workspace-root positional argument",
    )
    parser.add_argument("--cli-path", metavar="PATH", help="Path to the beans CLI executable (default: beans)")
    parser.add_argument("--port", type=int, metavar="NUMBER", help=f"MCP server port (default: {DEFAULT_MCP_PORT})")
    parser.add_argument("--log-dir", metavar="PATH", help="Directory for log output (default: workspace root)")
    parser.add_argument(
        "--transport",
        choices=TRANSPORTS,
        default="stdio",
        help="stdio (default) or http (JSON-RPC on /mcp)",
    )
    return parser


def parse_cli_args(argv: Sequence[str], settings: Optional[Settings] = None) -> ServerConfig:
    settings = settings or get_settings()
    args = build_parser().parse_args(list(argv))

    workspace = args.workspace_flag or args.workspace_root
    workspace_explicit = bool(workspace)

    cli_path = settings.cli_path
    if args.cli_path is not None:
        if UNSAFE_CLI_PATH.search(args.cli_path):
            raise ConfigurationError("Invalid CLI path")
        cli_path = args.cli_path

    port = settings.mcp_port if settings.mcp_port > 0 else DEFAULT_MCP_PORT
    if args.port is not None and args.port > 0:
        port = args.port

    return ServerConfig(
        workspace_root=os.path.abspath(workspace) if workspace else os.getcwd(),
        workspace_explicit=workspace_explicit,
        cli_path=cli_path,
        port=port,
        log_dir=os.path.abspath(args.log_dir) if args.log_dir else None,
        transport=args.transport,
    )


def run_http_server(config: ServerConfig, settings: Settings) -> None:
    import uvicorn

    from .main import create_app
    from .services.cli_backend import BeansCliBackend

    backend = BeansCliBackend(
        config.workspace_root,
        cli_path=config.cli_path,
        log_dir=config.resolved_log_dir,
        settings=settings,
    )
    logger.info(f"Starting HTTP MCP server | {settings.http_host}:{config.port} | workspace={config.workspace_root}")
    uvicorn.run(
        create_app(backend, settings),
        host=settings.http_host,
        port=config.port,
        log_level=settings.log_level.lower(),
    )


def main(argv: Optional[List[str]] = None) -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)

    try:
        config = parse_cli_args(sys.argv[1:] if argv is None else argv, settings)
        if config.transport == "http":
            run_http_server(config, settings)
        else:
            from .mcp.server import run_stdio_server

            asyncio.run(run_stdio_server(config, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except Exception as exc:
        logger.error(f"Beans MCP server failed: {exc}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
