"""Input models for the beans MCP tools.

These models are the validation layer: a request that does not fit its model
is rejected before any handler or backend call happens. Field aliases match
the camelCase argument names clients send.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Annotated

from .bean import (
    MAX_DESCRIPTION_LENGTH,
    MAX_ID_LENGTH,
    MAX_LOG_LINES,
    MAX_METADATA_LENGTH,
    MAX_PATH_LENGTH,
    MAX_PREFIX_LENGTH,
    MAX_TITLE_LENGTH,
    SortMode,
)

RelationId = Annotated[str, Field(max_length=MAX_ID_LENGTH)]
FilterValue = Annotated[str, Field(max_length=MAX_METADATA_LENGTH)]


class ToolInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class InitInput(ToolInput):
    prefix: Optional[str] = Field(
        default=None,
        max_length=MAX_PREFIX_LENGTH,
        description="Optional workspace prefix for bean IDs",
    )


class ViewInput(ToolInput):
    bean_id: str = Field(min_length=1, max_length=MAX_ID_LENGTH, alias="beanId")


class CreateInput(ToolInput):
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    type: str = Field(min_length=1, max_length=MAX_METADATA_LENGTH)
    status: Optional[str] = Field(default=None, max_length=MAX_METADATA_LENGTH)
    priority: Optional[str] = Field(default=None, max_length=MAX_METADATA_LENGTH)
    description: Optional[str] = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    parent: Optional[str] = Field(default=None, max_length=MAX_ID_LENGTH)


class EditInput(ToolInput):
    bean_id: str = Field(min_length=1, max_length=MAX_ID_LENGTH, alias="beanId")
    status: Optional[str] = Field(default=None, max_length=MAX_METADATA_LENGTH)
    type: Optional[str] = Field(default=None, max_length=MAX_METADATA_LENGTH)
    priority: Optional[str] = Field(default=None, max_length=MAX_METADATA_LENGTH)
    parent: Optional[str] = Field(default=None, max_length=MAX_ID_LENGTH)
    clear_parent: Optional[bool] = Field(default=None, alias="clearParent")
    blocking: Optional[List[RelationId]] = None
    blocked_by: Optional[List[RelationId]] = Field(default=None, alias="blockedBy")


class UpdateInput(EditInput):
    body: Optional[str] = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)


class ReopenInput(ToolInput):
    bean_id: str = Field(min_length=1, max_length=MAX_ID_LENGTH, alias="beanId")
    required_current_status: Literal["completed", "scrapped"] = Field(alias="requiredCurrentStatus")
    target_status: str = Field(default="todo", max_length=MAX_METADATA_LENGTH, alias="targetStatus")


class DeleteInput(ToolInput):
    bean_id: str = Field(min_length=1, max_length=MAX_ID_LENGTH, alias="beanId")
    force: bool = False


class QueryInput(ToolInput):
    operation: Literal["refresh", "filter", "search", "sort", "llm_context", "open_config"] = "refresh"
    mode: Optional[SortMode] = None
    statuses: Optional[List[FilterValue]] = None
    types: Optional[List[FilterValue]] = None
    search: Optional[str] = Field(default=None, max_length=MAX_TITLE_LENGTH)
    include_closed: Optional[bool] = Field(default=None, alias="includeClosed")
    tags: Optional[List[FilterValue]] = None
    write_to_workspace_instructions: Optional[bool] = Field(default=None, alias="writeToWorkspaceInstructions")


class BeanFileInput(ToolInput):
    operation: Literal["read", "edit", "create", "delete"]
    path: str = Field(min_length=1, max_length=MAX_PATH_LENGTH)
    content: Optional[str] = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    overwrite: Optional[bool] = None


class OutputInput(ToolInput):
    operation: Literal["read", "show"] = "read"
    lines: Optional[int] = Field(default=None, ge=1, le=MAX_LOG_LINES)
