"""
Backend contract for beans workspaces.

Every MCP tool talks to a ``BeansBackend``. The production implementation
shells out to the beans CLI (``cli_backend.BeansCliBackend``); tests plug in
in-memory fakes, and ``mutable.MutableBackend`` forwards to whichever backend
is currently installed.

All operations are coroutines and report failure by raising. A backend never
retries and never returns a partial result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..schemas.bean import BeanRecord


@dataclass
class BeanFilter:
    """Upstream narrowing for ``list_beans``. Empty fields mean no constraint."""

    status: List[str] = field(default_factory=list)
    type: List[str] = field(default_factory=list)
    search: Optional[str] = None

    def to_variables(self) -> Dict[str, Any]:
        variables: Dict[str, Any] = {}
        if self.status:
            variables["status"] = list(self.status)
        if self.type:
            variables["type"] = list(self.type)
        if self.search:
            variables["search"] = self.search
        return variables


@dataclass
class BeanDraft:
    title: str
    type: str
    status: Optional[str] = None
    priority: Optional[str] = None
    description: Optional[str] = None
    parent: Optional[str] = None


@dataclass
class BeanUpdate:
    """Changes to apply to an existing bean.

    ``parent`` and ``clear_parent`` are mutually exclusive; when both are
    given, ``parent`` wins. ``blocking`` and ``blocked_by`` are additions to
    the existing relationship lists, not replacements.
    """

    status: Optional[str] = None
    type: Optional[str] = None
    priority: Optional[str] = None
    parent: Optional[str] = None
    clear_parent: bool = False
    blocking: Optional[List[str]] = None
    blocked_by: Optional[List[str]] = None
    body: Optional[str] = None


class BeansBackend(ABC):
    """Execution strategy for every beans workspace operation."""

    @abstractmethod
    async def init_workspace(self, prefix: Optional[str] = None) -> Dict[str, Any]:
        """Initialize beans in the workspace. Safe to repeat."""

    @abstractmethod
    async def list_beans(self, bean_filter: Optional[BeanFilter] = None) -> List[BeanRecord]:
        """Return the beans matching ``bean_filter``, in no particular order."""

    @abstractmethod
    async def create_bean(self, draft: BeanDraft) -> BeanRecord:
        ...

    @abstractmethod
    async def update_bean(self, bean_id: str, update: BeanUpdate) -> BeanRecord:
        """Apply ``update`` and return the bean as it is afterwards."""

    @abstractmethod
    async def delete_bean(self, bean_id: str) -> Dict[str, Any]:
        """Delete a bean. Callers enforce the draft/scrapped rule."""

    @abstractmethod
    async def open_config(self) -> Dict[str, Any]:
        """Return ``{"configPath", "content"}`` of the workspace config file."""

    @abstractmethod
    async def graphql_schema(self) -> str:
        ...

    @abstractmethod
    async def read_output_log(self, lines: Optional[int] = None) -> Dict[str, Any]:
        """Return the last ``lines`` lines of the extension output log.

        Result keys: ``path``, ``content`` and ``linesReturned``.
        """

    @abstractmethod
    async def read_bean_file(self, relative_path: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def edit_bean_file(self, relative_path: str, content: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def create_bean_file(
        self, relative_path: str, content: str, overwrite: bool = False
    ) -> Dict[str, Any]:
        """Create a file under the sandbox; fails if it exists unless ``overwrite``."""

    @abstractmethod
    async def delete_bean_file(self, relative_path: str) -> Dict[str, Any]:
        """Delete a file under the sandbox; fails if it does not exist."""

    @abstractmethod
    async def write_instructions(self, content: str) -> str:
        """Write the LLM instructions document into the workspace and return its path."""
