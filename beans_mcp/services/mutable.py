"""
Swappable backend.

The MCP server is built against a ``MutableBackend`` so that the workspace
it operates on can change after startup, once the client reports its roots.
Each call is bound to the backend installed at the moment the call is made;
a swap never redirects work that is already in flight.
"""

from __future__ import annotations

from typing import Any, Awaitable, Dict, List, Optional

from ..schemas.bean import BeanRecord
from ..utils.logging import get_logger
from .backend import BeanDraft, BeanFilter, BeansBackend, BeanUpdate

logger = get_logger("backend")


class MutableBackend(BeansBackend):
    def __init__(self, inner: BeansBackend) -> None:
        self._inner = inner

    @property
    def inner(self) -> BeansBackend:
        return self._inner

    def set_inner(self, backend: BeansBackend) -> None:
        previous, self._inner = self._inner, backend
        logger.info(f"Backend swapped | {previous!r} -> {backend!r}")

    # The forwarding methods are plain functions returning the inner
    # coroutine, so the target is resolved synchronously at call time.

    def init_workspace(self, prefix: Optional[str] = None) -> Awaitable[Dict[str, Any]]:
        return self._inner.init_workspace(prefix)

    def list_beans(self, bean_filter: Optional[BeanFilter] = None) -> Awaitable[List[BeanRecord]]:
        return self._inner.list_beans(bean_filter)

    def create_bean(self, draft: BeanDraft) -> Awaitable[BeanRecord]:
        return self._inner.create_bean(draft)

    def update_bean(self, bean_id: str, update: BeanUpdate) -> Awaitable[BeanRecord]:
        return self._inner.update_bean(bean_id, update)

    def delete_bean(self, bean_id: str) -> Awaitable[Dict[str, Any]]:
        return self._inner.delete_bean(bean_id)

    def open_config(self) -> Awaitable[Dict[str, Any]]:
        return self._inner.open_config()

    def graphql_schema(self) -> Awaitable[str]:
        return self._inner.graphql_schema()

    def read_output_log(self, lines: Optional[int] = None) -> Awaitable[Dict[str, Any]]:
        return self._inner.read_output_log(lines)

    def read_bean_file(self, relative_path: str) -> Awaitable[Dict[str, Any]]:
        return self._inner.read_bean_file(relative_path)

    def edit_bean_file(self, relative_path: str, content: str) -> Awaitable[Dict[str, Any]]:
        return self._inner.edit_bean_file(relative_path, content)

    def create_bean_file(
        self, relative_path: str, content: str, overwrite: bool = False
    ) -> Awaitable[Dict[str, Any]]:
        return self._inner.create_bean_file(relative_path, content, overwrite)

    def delete_bean_file(self, relative_path: str) -> Awaitable[Dict[str, Any]]:
        return self._inner.delete_bean_file(relative_path)

    def write_instructions(self, content: str) -> Awaitable[str]:
        return self._inner.write_instructions(content)
