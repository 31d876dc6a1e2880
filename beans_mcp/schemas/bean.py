from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_ID_LENGTH = 128
MAX_TITLE_LENGTH = 1024
MAX_METADATA_LENGTH = 128
MAX_DESCRIPTION_LENGTH = 65536  # 64KB
MAX_PATH_LENGTH = 1024
MAX_PREFIX_LENGTH = 32
MAX_LOG_LINES = 5000

SortMode = Literal["status-priority-type-title", "updated", "created", "id"]
SORT_MODES: tuple[str, ...] = ("status-priority-type-title", "updated", "created", "id")
DEFAULT_SORT_MODE: SortMode = "status-priority-type-title"

CLOSED_STATUSES = frozenset({"completed", "scrapped"})
DELETABLE_STATUSES = frozenset({"draft", "scrapped"})


class BeanRecord(BaseModel):
    """A single bean as reported by the beans CLI.

    Field names follow Python conventions; the CLI's camelCase keys are
    accepted and emitted through aliases. Unknown keys are kept so that a
    record can be handed back exactly as the CLI produced it.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    slug: str = ""
    path: str = ""
    title: str = ""
    body: str = ""
    status: str = ""
    type: str = ""
    priority: Optional[str] = None
    tags: Optional[List[str]] = None
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    blocking_ids: Optional[List[str]] = Field(default=None, alias="blockingIds")
    blocked_by_ids: Optional[List[str]] = Field(default=None, alias="blockedByIds")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
    etag: Optional[str] = None

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)
