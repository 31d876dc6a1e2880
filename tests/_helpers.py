"""Test helpers: in-memory backend, bean factory and a fake beans CLI."""

import asyncio
import os
import stat
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from beans_mcp.schemas.bean import BeanRecord
from beans_mcp.services.backend import BeanDraft, BeanFilter, BeansBackend, BeanUpdate


def make_bean(bean_id: str, **fields: Any) -> BeanRecord:
    data: Dict[str, Any] = {
        "id": bean_id,
        "slug": bean_id,
        "path": f"{bean_id}.md",
        "title": bean_id.title(),
        "body": "",
        "status": "todo",
        "type": "task",
    }
    data.update(fields)
    return BeanRecord.model_validate(data)


class FakeBackend(BeansBackend):
    """In-memory backend recording every call as ``(method, args)``."""

    def __init__(self, beans: Optional[List[BeanRecord]] = None, name: str = "fake"):
        self.beans: List[BeanRecord] = list(beans or [])
        self.name = name
        self.calls: List[tuple] = []
        self.files: Dict[str, str] = {}
        self.schema = "type Query { beans: [Bean!]! }"
        self.workspace_root = f"/workspace/{name}"

    def __repr__(self):
        return f"FakeBackend({self.name!r})"

    def _find(self, bean_id: str) -> BeanRecord:
        for bean in self.beans:
            if bean.id == bean_id:
                return bean
        raise KeyError(bean_id)

    async def init_workspace(self, prefix=None):
        self.calls.append(("init_workspace", prefix))
        return {"initialized": True}

    async def list_beans(self, bean_filter: Optional[BeanFilter] = None):
        self.calls.append(("list_beans", bean_filter))
        beans = list(self.beans)
        if bean_filter is not None:
            if bean_filter.status:
                beans = [b for b in beans if b.status in bean_filter.status]
            if bean_filter.type:
                beans = [b for b in beans if b.type in bean_filter.type]
        return beans

    async def create_bean(self, draft: BeanDraft):
        self.calls.append(("create_bean", draft))
        bean = make_bean(
            f"bean-{len(self.beans) + 1}",
            title=draft.title,
            type=draft.type,
            status=draft.status or "todo",
            body=draft.description or "",
        )
        self.beans.append(bean)
        return bean

    async def update_bean(self, bean_id: str, update: BeanUpdate):
        self.calls.append(("update_bean", bean_id, update))
        bean = self._find(bean_id)
        changes: Dict[str, Any] = {}
        for key in ("status", "type", "priority", "body"):
            value = getattr(update, key)
            if value is not None:
                changes[key] = value
        if update.parent is not None:
            changes["parent_id"] = update.parent
        elif update.clear_parent:
            changes["parent_id"] = None
        if update.blocking:
            changes["blocking_ids"] = (bean.blocking_ids or []) + list(update.blocking)
        updated = bean.model_copy(update=changes)
        self.beans[self.beans.index(bean)] = updated
        return updated

    async def delete_bean(self, bean_id: str):
        self.calls.append(("delete_bean", bean_id))
        self.beans.remove(self._find(bean_id))
        return {"deleted": True, "beanId": bean_id}

    async def open_config(self):
        self.calls.append(("open_config",))
        return {"configPath": f"{self.workspace_root}/.beans.yml", "content": "beans:\n  prefix: fake\n"}

    async def graphql_schema(self):
        self.calls.append(("graphql_schema",))
        return self.schema

    async def read_output_log(self, lines=None):
        self.calls.append(("read_output_log", lines))
        return {"path": "/logs/beans-output.log", "content": "line", "linesReturned": 1}

    async def read_bean_file(self, relative_path):
        self.calls.append(("read_bean_file", relative_path))
        return {"path": relative_path, "content": self.files[relative_path]}

    async def edit_bean_file(self, relative_path, content):
        self.calls.append(("edit_bean_file", relative_path, content))
        self.files[relative_path] = content
        return {"path": relative_path, "bytes": len(content)}

    async def create_bean_file(self, relative_path, content, overwrite=False):
        self.calls.append(("create_bean_file", relative_path, content, overwrite))
        if relative_path in self.files and not overwrite:
            raise FileExistsError(relative_path)
        self.files[relative_path] = content
        return {"path": relative_path, "bytes": len(content), "created": True}

    async def delete_bean_file(self, relative_path):
        self.calls.append(("delete_bean_file", relative_path))
        if relative_path not in self.files:
            raise FileNotFoundError(relative_path)
        del self.files[relative_path]
        return {"path": relative_path, "deleted": True}

    async def write_instructions(self, content):
        self.calls.append(("write_instructions", content))
        return f"{self.workspace_root}/.github/instructions/beans-tasks.instructions.md"

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)


class SlowBackend(FakeBackend):
    """FakeBackend whose ``list_beans`` waits until ``release`` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def list_beans(self, bean_filter=None):
        self.started.set()
        await self.release.wait()
        return await super().list_beans(bean_filter)


FAKE_CLI_SOURCE = '''#!{python}
"""Stand-in for the beans CLI, keeping state in .beans/fake-state.json."""
import json
import os
import sys
import time

MODE = os.environ.get("BEANS_FAKE_MODE", "")
STATE = os.path.join(os.getcwd(), ".beans", "fake-state.json")


def load():
    if not os.path.exists(STATE):
        return []
    with open(STATE, encoding="utf-8") as f:
        return json.load(f)


def save(beans):
    os.makedirs(os.path.dirname(STATE), exist_ok=True)
    with open(STATE, "w", encoding="utf-8") as f:
        json.dump(beans, f)


def find(beans, bean_id):
    for bean in beans:
        if bean["id"] == bean_id:
            return bean
    return None


def add_unique(target, values):
    for value in values:
        if value not in target:
            target.append(value)


def handle(query, variables):
    beans = load()
    if "createBean" in query:
        data = variables["input"]
        bean_id = "bean-%d" % (len(beans) + 1)
        bean = {{
            "id": bean_id,
            "slug": bean_id,
            "path": bean_id + ".md",
            "title": data["title"],
            "body": data.get("body", ""),
            "status": data.get("status", "todo"),
            "type": data["type"],
            "priority": data.get("priority"),
            "tags": [],
            "parentId": data.get("parent"),
            "blockingIds": [],
            "blockedByIds": [],
            "createdAt": "2026-01-01T00:00:00Z",
            "updatedAt": "2026-01-01T00:00:00Z",
        }}
        beans.append(bean)
        save(beans)
        return {{"createBean": bean}}
    if "updateBean" in query:
        bean = find(beans, variables["id"])
        if bean is None:
            return {{"errors": [{{"message": "bean not found: " + variables["id"]}}]}}
        data = variables["input"]
        for key in ("status", "type", "priority", "body"):
            if key in data:
                bean[key] = data[key]
        if "parent" in data:
            bean["parentId"] = data["parent"] or None
        add_unique(bean["blockingIds"], data.get("addBlocking", []))
        add_unique(bean["blockedByIds"], data.get("addBlockedBy", []))
        save(beans)
        return {{"updateBean": bean}}
    if "deleteBean" in query:
        bean = find(beans, variables["id"])
        beans.remove(bean)
        save(beans)
        return {{"deleteBean": True}}
    bean_filter = (variables or {{}}).get("filter") or {{}}
    if bean_filter.get("status"):
        beans = [b for b in beans if b["status"] in bean_filter["status"]]
    if bean_filter.get("type"):
        beans = [b for b in beans if b["type"] in bean_filter["type"]]
    return {{"beans": beans}}


def main(argv):
    if MODE == "fail":
        sys.stderr.write("boom: workspace not initialized\\n")
        return 3
    if MODE == "sleep":
        time.sleep(10)
        return 0
    if MODE == "flood":
        sys.stdout.write("x" * 200000)
        return 0
    if MODE == "garbage":
        sys.stdout.write("definitely not json")
        return 0
    if argv[:1] == ["env"]:
        sys.stdout.write(json.dumps(dict(os.environ)))
        return 0
    if argv[:1] == ["init"]:
        os.makedirs(".beans", exist_ok=True)
        with open(os.path.join(".beans", "init-args.json"), "w", encoding="utf-8") as f:
            json.dump(argv[1:], f)
        sys.stdout.write("initialized\\n")
        return 0
    if argv[:2] == ["graphql", "--schema"]:
        sys.stdout.write("\\ntype Query {{ beans: [Bean!]! }}\\n\\n")
        return 0
    if argv[:2] == ["graphql", "--json"]:
        variables = {{}}
        if "--variables" in argv:
            variables = json.loads(argv[argv.index("--variables") + 1])
        sys.stdout.write(json.dumps(handle(argv[2], variables)))
        return 0
    sys.stderr.write("unknown command: %s\\n" % " ".join(argv))
    return 2


sys.exit(main(sys.argv[1:]))
'''


def write_fake_cli(directory: Path) -> Path:
    """Write an executable fake beans CLI into ``directory`` and return its path."""
    path = directory / "fake-beans"
    path.write_text(FAKE_CLI_SOURCE.format(python=sys.executable), encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def cli_env(mode: str = "", **extra: str) -> Dict[str, str]:
    """Environment source for the CLI backend: PATH plus test variables."""
    env = {"PATH": os.environ.get("PATH", ""), "BEANS_FAKE_MODE": mode}
    env.update(extra)
    return env
