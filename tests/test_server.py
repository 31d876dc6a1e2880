import asyncio
import json
import os

import mcp.types as types
import pytest
from mcp.server import Server
from mcp.shared.exceptions import McpError
from mcp.shared.memory import create_connected_server_and_client_session

from beans_mcp.mcp.server import (
    EMPTY,
    FAILED,
    NO_LOCAL_ROOT,
    RESOLVED,
    UNSUPPORTED,
    RootsResolution,
    WorkspaceBinder,
    create_beans_mcp_server,
    discover_roots,
    file_uri_to_path,
    resolve_workspace_from_roots,
)
from beans_mcp.services.mutable import MutableBackend
from tests._helpers import FakeBackend, make_bean


class FakeSession:
    """Just enough of ServerSession for roots discovery."""

    def __init__(self, roots=None, supports_roots=True, error=None):
        self.roots = roots or []
        self.supports_roots = supports_roots
        self.error = error
        self.list_roots_calls = 0

    def check_client_capability(self, capability):
        return self.supports_roots

    async def list_roots(self):
        self.list_roots_calls += 1
        if self.error is not None:
            raise self.error
        return types.ListRootsResult(roots=[types.Root(uri=uri) for uri in self.roots])


class TestDiscoverRoots:
    @pytest.mark.asyncio
    async def test_first_of_two_roots_wins(self):
        resolution = await discover_roots(FakeSession(["file:///a", "file:///b"]))
        assert resolution == RootsResolution("/a", RESOLVED)

    @pytest.mark.asyncio
    async def test_no_roots_is_empty(self):
        assert await discover_roots(FakeSession([])) == RootsResolution(None, EMPTY)

    @pytest.mark.asyncio
    async def test_capability_not_declared(self):
        session = FakeSession(["file:///a"], supports_roots=False)
        assert await discover_roots(session) == RootsResolution(None, UNSUPPORTED)
        assert session.list_roots_calls == 0

    @pytest.mark.asyncio
    async def test_client_rejects_roots_request(self):
        error = McpError(types.ErrorData(code=types.METHOD_NOT_FOUND, message="Method not found"))
        assert await discover_roots(FakeSession(error=error)) == RootsResolution(None, UNSUPPORTED)

    @pytest.mark.asyncio
    async def test_resolve_workspace_returns_path_or_none(self):
        assert await resolve_workspace_from_roots(FakeSession(["file:///a", "file:///b"])) == "/a"
        assert await resolve_workspace_from_roots(FakeSession([])) is None


@pytest.mark.asyncio
async def test_no_local_root_outcome():
    class RemoteOnly(FakeSession):
        async def list_roots(self):
            # Root.uri only validates file URLs, so build the reply unvalidated
            root = types.Root.model_construct(uri="https://example.com/repo", name=None)
            return types.ListRootsResult.model_construct(roots=[root])

    assert await discover_roots(RemoteOnly()) == RootsResolution(None, NO_LOCAL_ROOT)


def test_file_uri_to_path():
    assert file_uri_to_path("file:///home/me/project") == os.path.normpath("/home/me/project")
    assert file_uri_to_path("file:///home/me/my%20project") == os.path.normpath("/home/me/my project")
    assert file_uri_to_path("https://example.com/x") is None


class TestWorkspaceBinder:
    @pytest.mark.asyncio
    async def test_resolved_root_swaps_backend(self):
        fallback = FakeBackend(name="cwd")
        mutable = MutableBackend(fallback)
        created = []

        def factory(root):
            backend = FakeBackend(name=root)
            created.append(backend)
            return backend

        binder = WorkspaceBinder(mutable, factory)
        resolution = await binder.ensure_bound(FakeSession(["file:///a", "file:///b"]))

        assert resolution.outcome == RESOLVED
        assert [b.name for b in created] == ["/a"]
        assert mutable.inner is created[0]
        assert binder.done

    @pytest.mark.asyncio
    async def test_unresolved_keeps_fallback(self):
        fallback = FakeBackend(name="cwd")
        mutable = MutableBackend(fallback)
        binder = WorkspaceBinder(mutable, lambda root: FakeBackend(name=root))

        resolution = await binder.ensure_bound(FakeSession([]))
        assert resolution.outcome == EMPTY
        assert mutable.inner is fallback

    @pytest.mark.asyncio
    async def test_resolves_only_once_under_concurrency(self):
        calls = []
        gate = asyncio.Event()

        async def resolver(session):
            calls.append(session)
            await gate.wait()
            return RootsResolution("/a", RESOLVED)

        mutable = MutableBackend(FakeBackend(name="cwd"))
        binder = WorkspaceBinder(mutable, lambda root: FakeBackend(name=root), resolver)

        session = FakeSession()
        waiters = [asyncio.ensure_future(binder.ensure_bound(session)) for _ in range(3)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*waiters)

        assert len(calls) == 1
        assert all(r.path == "/a" for r in results)
        await binder.ensure_bound(session)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_resolver_failure_keeps_fallback(self):
        async def resolver(session):
            raise ConnectionError("client went away")

        fallback = FakeBackend(name="cwd")
        mutable = MutableBackend(fallback)
        binder = WorkspaceBinder(mutable, lambda root: FakeBackend(name=root), resolver)

        resolution = await binder.ensure_bound(FakeSession())
        assert resolution == RootsResolution(None, FAILED)
        assert mutable.inner is fallback


class TestCreateServer:
    def test_returns_server_and_registry(self):
        backend = FakeBackend()
        server, registry = create_beans_mcp_server(backend, name="beans-test", version="9.9.9")

        assert isinstance(server, Server)
        assert server.name == "beans-test"
        assert registry.backend is backend
        assert types.ListToolsRequest in server.request_handlers
        assert types.CallToolRequest in server.request_handlers

    @pytest.mark.asyncio
    async def test_list_tools_handler(self):
        server, _ = create_beans_mcp_server(FakeBackend())
        handler = server.request_handlers[types.ListToolsRequest]

        response = await handler(types.ListToolsRequest(method="tools/list"))
        tools = {tool.name: tool for tool in response.root.tools}

        assert "beans_query" in tools
        assert tools["beans_delete"].annotations.destructiveHint is True
        assert tools["beans_view"].annotations.readOnlyHint is True
        assert "beanId" in tools["beans_view"].inputSchema["properties"]


# =============================================================================
# Through a connected client session
# =============================================================================


def roots_callback(*uris):
    async def list_roots(context):
        return types.ListRootsResult(roots=[types.Root(uri=uri) for uri in uris])

    return list_roots


def bound_server(fallback, created):
    def factory(root):
        backend = FakeBackend([make_bean("b1", status="todo"), make_bean("b2", status="draft")], name=root)
        created.append(backend)
        return backend

    mutable = MutableBackend(fallback)
    server, _ = create_beans_mcp_server(mutable, binder=WorkspaceBinder(mutable, factory))
    return server, mutable


class TestStdioSession:
    @pytest.mark.asyncio
    async def test_first_call_binds_first_declared_root(self):
        fallback = FakeBackend(name="cwd")
        created = []
        server, mutable = bound_server(fallback, created)

        async with create_connected_server_and_client_session(
            server, list_roots_callback=roots_callback("file:///a", "file:///b")
        ) as client:
            assert created == []
            result = await client.call_tool("beans_view", {"beanId": "b1"})
            await client.call_tool("beans_view", {"beanId": "b2"})

        assert result.isError is False
        assert json.loads(result.content[0].text)["bean"]["id"] == "b1"
        assert [b.name for b in created] == [os.path.normpath("/a")]
        assert mutable.inner is created[0]
        assert fallback.calls == []
        assert created[0].count("list_beans") == 2

    @pytest.mark.asyncio
    async def test_client_without_roots_keeps_fallback(self):
        fallback = FakeBackend([make_bean("b1")], name="cwd")
        created = []
        server, mutable = bound_server(fallback, created)

        async with create_connected_server_and_client_session(server) as client:
            result = await client.call_tool("beans_view", {"beanId": "b1"})

        assert result.isError is False
        assert created == []
        assert mutable.inner is fallback

    @pytest.mark.asyncio
    async def test_refused_delete_is_an_error_result(self):
        backend = FakeBackend([make_bean("b1", status="todo")])
        server, _ = create_beans_mcp_server(backend)

        async with create_connected_server_and_client_session(server) as client:
            result = await client.call_tool("beans_delete", {"beanId": "b1"})

        assert result.isError is True
        assert result.content[0].text == "Only draft and scrapped beans are deletable unless force=true"
        assert backend.count("delete_bean") == 0
