"""
Query engine for beans.

Pure functions over a list of ``BeanRecord`` already fetched from a backend:
sorting, tag filtering and free-text search. ``handle_query_operation`` glues
them to a backend for the ``beans_query`` tool; it is the only function here
that performs I/O, and it calls ``list_beans`` at most once per request.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..schemas.bean import DEFAULT_SORT_MODE, BeanRecord
from ..schemas.tools import QueryInput
from ..utils.errors import ValidationFailure
from ..utils.logging import get_logger
from .backend import BeanFilter, BeansBackend

logger = get_logger("query")

UNKNOWN_WEIGHT = 99

STATUS_WEIGHTS: Dict[str, int] = {
    "in-progress": 0,
    "todo": 1,
    "draft": 2,
    "completed": 3,
    "scrapped": 4,
}

PRIORITY_WEIGHTS: Dict[str, int] = {
    "critical": 0,
    "high": 1,
    "normal": 2,
    "low": 3,
    "deferred": 4,
}

TYPE_WEIGHTS: Dict[str, int] = {
    "milestone": 0,
    "epic": 1,
    "feature": 2,
    "bug": 3,
    "task": 4,
}

DEFAULT_PRIORITY = "normal"
LIST_OPERATIONS = frozenset({"refresh", "filter", "search", "sort"})

# Fractional seconds of any length, as emitted for RFC3339Nano timestamps
_FRACTION_RE = re.compile(r"(?<=:\d\d)\.(\d+)")


def _parse_timestamp(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        text = value.strip().replace("Z", "+00:00")
        # fromisoformat only takes 3 or 6 fractional digits before Python 3.11
        text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _recency_key(value: Optional[str]) -> Tuple[int, float]:
    # Newest first; missing or unparsable timestamps after every dated bean.
    ts = _parse_timestamp(value)
    if ts is None:
        return (1, 0.0)
    return (0, -ts)


def _weight_key(bean: BeanRecord) -> Tuple[int, int, int, str]:
    return (
        STATUS_WEIGHTS.get(bean.status, UNKNOWN_WEIGHT),
        PRIORITY_WEIGHTS.get(bean.priority or DEFAULT_PRIORITY, UNKNOWN_WEIGHT),
        TYPE_WEIGHTS.get(bean.type, UNKNOWN_WEIGHT),
        bean.title,
    )


def sort_beans(beans: Iterable[BeanRecord], mode: Optional[str] = None) -> List[BeanRecord]:
    """Return a new list of beans ordered by ``mode``.

    The sort is stable, so beans that compare equal keep their input order.
    Unknown modes fall back to the default status/priority/type/title order.
    """
    mode = mode or DEFAULT_SORT_MODE
    if mode == "updated":
        return sorted(beans, key=lambda b: _recency_key(b.updated_at))
    if mode == "created":
        return sorted(beans, key=lambda b: _recency_key(b.created_at))
    if mode == "id":
        return sorted(beans, key=lambda b: b.id)
    return sorted(beans, key=_weight_key)


def filter_beans(
    beans: Iterable[BeanRecord],
    tags: Optional[Sequence[str]] = None,
    include_closed: Optional[bool] = None,
) -> List[BeanRecord]:
    """Keep beans carrying at least one of ``tags``; drop closed ones if asked."""
    wanted = set(tags or ())
    result = []
    for bean in beans:
        if wanted and not wanted.intersection(bean.tags or ()):
            continue
        if include_closed is False and bean.is_closed:
            continue
        result.append(bean)
    return result


def search_beans(beans: Iterable[BeanRecord], text: Optional[str] = None) -> List[BeanRecord]:
    """Case-insensitive substring match against title, id and tags."""
    needle = (text or "").strip().lower()
    if not needle:
        return list(beans)

    def matches(bean: BeanRecord) -> bool:
        haystack = [bean.title, bean.id, *(bean.tags or ())]
        return any(needle in (value or "").lower() for value in haystack)

    return [bean for bean in beans if matches(bean)]


def build_llm_instructions(graphql_schema: str) -> str:
    """Render the workspace instructions document handed to coding agents."""
    return f"""---
applyTo: "**"
description: How to track work with Beans in this workspace
---

# Beans task tracking

This workspace tracks work as *beans*: markdown records under `.beans/`
managed by the `beans` CLI. Use the Beans MCP tools instead of editing
bean files by hand.

## Workflow

- Run `beans_query` with `operation: "refresh"` to see current work,
  ordered by status, priority, type and title.
- Use `operation: "filter"` (statuses, types, tags) or
  `operation: "search"` to narrow the list.
- Create work with `beans_create`; set status, priority and relationships
  with `beans_update`.
- Move a bean to `in-progress` before starting it and to `completed` when
  done. Use `beans_reopen` to bring back a completed or scrapped bean.
- Only `draft` and `scrapped` beans can be deleted without `force`.

## Statuses, priorities and types

- Statuses: {", ".join(STATUS_WEIGHTS)}
- Priorities: {", ".join(PRIORITY_WEIGHTS)}
- Types: {", ".join(TYPE_WEIGHTS)}

## GraphQL schema

```graphql
{graphql_schema.strip()}
```
"""


def _list_result(beans: List[BeanRecord]) -> Dict[str, Any]:
    return {"count": len(beans), "beans": [bean.to_dict() for bean in beans]}


async def handle_query_operation(backend: BeansBackend, query: QueryInput) -> Dict[str, Any]:
    operation = query.operation

    if operation == "llm_context":
        schema = await backend.graphql_schema()
        instructions = build_llm_instructions(schema)
        result: Dict[str, Any] = {"graphqlSchema": schema, "instructions": instructions}
        if query.write_to_workspace_instructions:
            result["instructionsPath"] = await backend.write_instructions(instructions)
            logger.info(f"Wrote workspace instructions | path={result['instructionsPath']}")
        return result

    if operation == "open_config":
        return await backend.open_config()

    if operation not in LIST_OPERATIONS:
        raise ValidationFailure(f"Unsupported query operation: {operation}")

    bean_filter = BeanFilter(status=list(query.statuses or ()), type=list(query.types or ()))
    beans = await backend.list_beans(bean_filter)
    beans = filter_beans(beans, tags=query.tags, include_closed=query.include_closed)
    beans = search_beans(beans, query.search)

    mode = query.mode or DEFAULT_SORT_MODE
    result = _list_result(sort_beans(beans, mode))
    if operation == "sort":
        result["mode"] = mode
    logger.debug(f"Query {operation} | count={result['count']}")
    return result
