"""
stdio MCP server for beans.

Built on the low-level ``mcp`` SDK server. Tools are registered once against
a ``MutableBackend``; when no workspace was given on the command line, the
first tool call asks the client for its roots and swaps in a backend for the
first local root it declares.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Tuple
from urllib.parse import urlparse
from urllib.request import url2pathname

import mcp.types as types
from mcp.server import Server
from mcp.server.session import ServerSession
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError

from ..config import Settings
from ..services.backend import BeansBackend
from ..services.cli_backend import BeansCliBackend
from ..services.mutable import MutableBackend
from ..utils.logging import get_logger
from .tools import ToolRegistry

if TYPE_CHECKING:
    from ..cli import ServerConfig

logger = get_logger("mcp")

# Resolution outcomes
RESOLVED = "resolved"
UNSUPPORTED = "unsupported"
EMPTY = "empty"
NO_LOCAL_ROOT = "no-local-root"
FAILED = "failed"


class RootsResolution(NamedTuple):
    path: Optional[str]
    outcome: str


RootsResolver = Callable[[ServerSession], Awaitable[RootsResolution]]


def file_uri_to_path(uri: str) -> Optional[str]:
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return None
    return url2pathname(parsed.path)


async def discover_roots(session: ServerSession) -> RootsResolution:
    """Ask the client for its roots and pick the first local filesystem path.

    "Capability not supported" and "supported but nothing usable" are
    separate outcomes; all of them except ``resolved`` carry no path.
    """
    wanted = types.ClientCapabilities(roots=types.RootsCapability())
    if not session.check_client_capability(wanted):
        return RootsResolution(None, UNSUPPORTED)

    try:
        result = await session.list_roots()
    except McpError as exc:
        logger.debug(f"roots/list rejected by client: {exc}")
        return RootsResolution(None, UNSUPPORTED)

    if not result.roots:
        return RootsResolution(None, EMPTY)

    for root in result.roots:
        path = file_uri_to_path(str(root.uri))
        if path:
            return RootsResolution(path, RESOLVED)
    return RootsResolution(None, NO_LOCAL_ROOT)


async def resolve_workspace_from_roots(session: ServerSession) -> Optional[str]:
    resolution = await discover_roots(session)
    return resolution.path


class WorkspaceBinder:
    """Resolves the workspace from client roots once and installs the result.

    Concurrent first calls share a single resolution. A failed resolution
    leaves the current backend in place.
    """

    def __init__(
        self,
        mutable: MutableBackend,
        backend_factory: Callable[[str], BeansBackend],
        resolver: RootsResolver = discover_roots,
    ) -> None:
        self.mutable = mutable
        self.backend_factory = backend_factory
        self.resolver = resolver
        self._task: Optional[asyncio.Future] = None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def ensure_bound(self, session: ServerSession) -> RootsResolution:
        if self._task is None:
            self._task = asyncio.ensure_future(self._bind(session))
        return await asyncio.shield(self._task)

    async def _bind(self, session: ServerSession) -> RootsResolution:
        try:
            resolution = await self.resolver(session)
        except Exception as exc:
            logger.warning(f"Workspace resolution failed, keeping fallback workspace: {exc}")
            return RootsResolution(None, FAILED)

        if resolution.path:
            self.mutable.set_inner(self.backend_factory(resolution.path))
            logger.info(f"Workspace resolved from client roots | path={resolution.path}")
        else:
            logger.info(f"Workspace not resolved from client roots | outcome={resolution.outcome} | keeping fallback")
        return resolution


def _to_tool(spec_dict: Dict[str, Any]) -> types.Tool:
    return types.Tool(
        name=spec_dict["name"],
        title=spec_dict["title"],
        description=spec_dict["description"],
        inputSchema=spec_dict["inputSchema"],
        annotations=types.ToolAnnotations(**spec_dict["annotations"]),
    )


def create_beans_mcp_server(
    backend: BeansBackend,
    *,
    name: str = "beans-mcp-server",
    version: str = "0.1.0",
    binder: Optional[WorkspaceBinder] = None,
) -> Tuple[Server, ToolRegistry]:
    """Create the MCP server with every beans tool bound to ``backend``."""
    registry = ToolRegistry(backend)
    server: Server = Server(name, version=version)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return [_to_tool(spec.to_dict()) for spec in registry.specs]

    @server.call_tool()
    async def call_tool(tool_name: str, arguments: Dict[str, Any]) -> List[types.TextContent]:
        if binder is not None and not binder.done:
            await binder.ensure_bound(server.request_context.session)
        result = await registry.call(tool_name, arguments)
        return [types.TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

    return server, registry


async def run_stdio_server(
    config: "ServerConfig",
    settings: Settings,
    resolver: RootsResolver = discover_roots,
) -> None:
    """Serve beans tools over stdio until the client disconnects."""

    def make_backend(workspace_root: str, log_dir: Optional[str]) -> BeansBackend:
        return BeansCliBackend(workspace_root, cli_path=config.cli_path, log_dir=log_dir, settings=settings)

    mutable = MutableBackend(make_backend(config.workspace_root, config.resolved_log_dir))

    binder = None
    if config.workspace_explicit:
        logger.info(f"Workspace set explicitly | path={config.workspace_root}")
    else:
        # A discovered workspace only inherits an explicitly configured log dir.
        binder = WorkspaceBinder(mutable, lambda root: make_backend(root, config.log_dir), resolver)

    server, _ = create_beans_mcp_server(
        mutable,
        name=settings.server_name,
        version=settings.server_version,
        binder=binder,
    )

    logger.info(f"Starting stdio MCP server | {settings.server_name} {settings.server_version}")
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
