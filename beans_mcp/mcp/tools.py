"""
Beans MCP tools.

Tool declarations (name, title, description, input model, annotations) and
the handler factories that bind each tool to a ``BeansBackend``. Handlers
receive an already validated input model and return a JSON-serializable dict.

Both transports use ``ToolRegistry``: the stdio server for ``tools/list`` and
``tools/call``, and the FastAPI JSON-RPC route.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import ValidationError

from ..schemas.bean import DELETABLE_STATUSES, BeanRecord
from ..schemas.tools import (
    BeanFileInput,
    CreateInput,
    DeleteInput,
    EditInput,
    InitInput,
    OutputInput,
    QueryInput,
    ReopenInput,
    ToolInput,
    UpdateInput,
    ViewInput,
)
from ..services.backend import BeanDraft, BeansBackend, BeanUpdate
from ..services.query import handle_query_operation
from ..utils.errors import BeanNotFound, BeansError, BusinessRuleError, ValidationFailure
from ..utils.logging import get_logger

logger = get_logger("mcp")

ToolHandler = Callable[[Any], Awaitable[Dict[str, Any]]]

SHOW_OUTPUT_MESSAGE = (
    "When using VS Code UI, run command `Beans: Show Output` to open extension logs. "
    "In MCP mode, rely on tool error outputs and host logs."
)


# =============================================================================
# HANDLERS
# =============================================================================


async def get_bean_by_id(backend: BeansBackend, bean_id: str) -> BeanRecord:
    """Look a bean up in a fresh list snapshot."""
    try:
        beans = await backend.list_beans()
    except BeansError as exc:
        raise type(exc)(f"Failed to fetch bean {bean_id}: {exc.message}") from exc

    for bean in beans:
        if bean.id == bean_id:
            return bean
    raise BeanNotFound(f"Failed to fetch bean {bean_id}: Bean not found: {bean_id}")


def _update_from(params: EditInput, body: Optional[str] = None) -> BeanUpdate:
    return BeanUpdate(
        status=params.status,
        type=params.type,
        priority=params.priority,
        parent=params.parent,
        clear_parent=bool(params.clear_parent),
        blocking=params.blocking,
        blocked_by=params.blocked_by,
        body=body,
    )


def init_handler(backend: BeansBackend) -> ToolHandler:
    async def handle(params: InitInput) -> Dict[str, Any]:
        return await backend.init_workspace(params.prefix)

    return handle


def view_handler(backend: BeansBackend) -> ToolHandler:
    async def handle(params: ViewInput) -> Dict[str, Any]:
        bean = await get_bean_by_id(backend, params.bean_id)
        return {"bean": bean.to_dict()}

    return handle


def create_handler(backend: BeansBackend) -> ToolHandler:
    async def handle(params: CreateInput) -> Dict[str, Any]:
        draft = BeanDraft(
            title=params.title,
            type=params.type,
            status=params.status,
            priority=params.priority,
            description=params.description,
            parent=params.parent,
        )
        bean = await backend.create_bean(draft)
        logger.info(f"Created bean {bean.id}")
        return {"bean": bean.to_dict()}

    return handle


def edit_handler(backend: BeansBackend) -> ToolHandler:
    async def handle(params: EditInput) -> Dict[str, Any]:
        bean = await backend.update_bean(params.bean_id, _update_from(params))
        return {"bean": bean.to_dict()}

    return handle


def update_handler(backend: BeansBackend) -> ToolHandler:
    async def handle(params: UpdateInput) -> Dict[str, Any]:
        bean = await backend.update_bean(params.bean_id, _update_from(params, body=params.body))
        return {"bean": bean.to_dict()}

    return handle


def reopen_handler(backend: BeansBackend) -> ToolHandler:
    async def handle(params: ReopenInput) -> Dict[str, Any]:
        bean = await get_bean_by_id(backend, params.bean_id)
        if bean.status != params.required_current_status:
            raise BusinessRuleError(f"Bean {params.bean_id} is not {params.required_current_status}")

        updated = await backend.update_bean(params.bean_id, BeanUpdate(status=params.target_status))
        return {"bean": updated.to_dict()}

    return handle


def delete_handler(backend: BeansBackend) -> ToolHandler:
    async def handle(params: DeleteInput) -> Dict[str, Any]:
        bean = await get_bean_by_id(backend, params.bean_id)
        if not params.force and bean.status not in DELETABLE_STATUSES:
            raise BusinessRuleError("Only draft and scrapped beans are deletable unless force=true")

        result = await backend.delete_bean(params.bean_id)
        logger.info(f"Deleted bean {params.bean_id} | status={bean.status} | force={params.force}")
        return result

    return handle


def query_handler(backend: BeansBackend) -> ToolHandler:
    async def handle(params: QueryInput) -> Dict[str, Any]:
        return await handle_query_operation(backend, params)

    return handle


def bean_file_handler(backend: BeansBackend) -> ToolHandler:
    async def handle(params: BeanFileInput) -> Dict[str, Any]:
        if params.operation == "read":
            return await backend.read_bean_file(params.path)
        if params.operation == "edit":
            return await backend.edit_bean_file(params.path, params.content or "")
        if params.operation == "create":
            return await backend.create_bean_file(
                params.path, params.content or "", overwrite=bool(params.overwrite)
            )
        if params.operation == "delete":
            return await backend.delete_bean_file(params.path)
        raise ValidationFailure("Unsupported operation")

    return handle


def output_handler(backend: BeansBackend) -> ToolHandler:
    async def handle(params: OutputInput) -> Dict[str, Any]:
        if params.operation == "read":
            return await backend.read_output_log(params.lines)
        return {"message": SHOW_OUTPUT_MESSAGE}

    return handle


# =============================================================================
# TOOL DEFINITIONS
# =============================================================================


@dataclass(frozen=True)
class ToolSpec:
    name: str
    title: str
    description: str
    input_model: Type[ToolInput]
    factory: Callable[[BeansBackend], ToolHandler]
    read_only: bool = False
    destructive: bool = False
    idempotent: bool = False

    @property
    def input_schema(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema(by_alias=True)

    @property
    def annotations(self) -> Dict[str, bool]:
        return {
            "readOnlyHint": self.read_only,
            "destructiveHint": self.destructive,
            "idempotentHint": self.idempotent,
            "openWorldHint": False,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "inputSchema": self.input_schema,
            "annotations": self.annotations,
        }


TOOL_SPECS: List[ToolSpec] = [
    ToolSpec(
        name="beans_init",
        title="Initialize Beans Workspace",
        description="Initialize Beans in the current workspace, equivalent to the extension init command.",
        input_model=InitInput,
        factory=init_handler,
        idempotent=True,
    ),
    ToolSpec(
        name="beans_view",
        title="View Bean",
        description="Fetch full bean details by ID.",
        input_model=ViewInput,
        factory=view_handler,
        read_only=True,
        idempotent=True,
    ),
    ToolSpec(
        name="beans_create",
        title="Create Bean",
        description="Create a new bean.",
        input_model=CreateInput,
        factory=create_handler,
    ),
    ToolSpec(
        name="beans_edit",
        title="Edit Bean Metadata",
        description="Update bean metadata fields (status/type/priority/parent/blocking).",
        input_model=EditInput,
        factory=edit_handler,
    ),
    ToolSpec(
        name="beans_reopen",
        title="Reopen Bean",
        description="Reopen a completed or scrapped bean into a non-closed status.",
        input_model=ReopenInput,
        factory=reopen_handler,
    ),
    ToolSpec(
        name="beans_update",
        title="Update Bean",
        description=(
            "Update bean metadata fields (status/type/priority/parent/blocking) and body. "
            "Consolidated replacement for per-field update tools."
        ),
        input_model=UpdateInput,
        factory=update_handler,
    ),
    ToolSpec(
        name="beans_delete",
        title="Delete Bean",
        description="Delete a bean (intended for draft/scrapped beans).",
        input_model=DeleteInput,
        factory=delete_handler,
        destructive=True,
    ),
    ToolSpec(
        name="beans_query",
        title="Query Beans",
        description=(
            "Unified query tool for refresh, filter, search, and sort operations, "
            "plus llm_context and open_config."
        ),
        input_model=QueryInput,
        factory=query_handler,
        read_only=True,
        idempotent=True,
    ),
    ToolSpec(
        name="beans_bean_file",
        title="Bean File Operations",
        description="Read, create, edit, or delete files under .beans (operation param).",
        input_model=BeanFileInput,
        factory=bean_file_handler,
    ),
    ToolSpec(
        name="beans_output",
        title="Beans Output Tools",
        description="Read extension output log or show guidance (operation param).",
        input_model=OutputInput,
        factory=output_handler,
        read_only=True,
        idempotent=True,
    ),
]


def tool_definitions() -> List[Dict[str, Any]]:
    return [spec.to_dict() for spec in TOOL_SPECS]


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(p) for p in error.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {error.get('msg')}")
    return "; ".join(parts)


# =============================================================================
# REGISTRY
# =============================================================================


class ToolRegistry:
    """Binds every tool to one backend and dispatches validated calls."""

    def __init__(self, backend: BeansBackend, specs: Optional[List[ToolSpec]] = None) -> None:
        self.backend = backend
        self._specs: Dict[str, ToolSpec] = {spec.name: spec for spec in (specs or TOOL_SPECS)}
        self._handlers: Dict[str, ToolHandler] = {
            name: spec.factory(backend) for name, spec in self._specs.items()
        }

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    @property
    def specs(self) -> List[ToolSpec]:
        return list(self._specs.values())

    def validate(self, name: str, arguments: Optional[Dict[str, Any]]) -> ToolInput:
        spec = self._specs.get(name)
        if spec is None:
            raise ValidationFailure(f"Unknown tool: {name}")
        try:
            return spec.input_model.model_validate(arguments or {})
        except ValidationError as exc:
            raise ValidationFailure(f"Invalid arguments for {name}: {_format_validation_error(exc)}") from exc

    async def call(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = self.validate(name, arguments)

        start = time.perf_counter()
        try:
            result = await self._handlers[name](params)
        except Exception as exc:
            latency_ms = (time.perf_counter() - start) * 1000
            logger.warning(f"TOOL_CALL | {name} | error | {latency_ms:.1f}ms | {exc}")
            raise

        latency_ms = (time.perf_counter() - start) * 1000
        logger.info(f"TOOL_CALL | {name} | ok | {latency_ms:.1f}ms")
        return result
