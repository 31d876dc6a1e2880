"""
Beans CLI backend.

Wraps the ``beans`` executable and exposes it through the ``BeansBackend``
contract:

- structured operations go through ``beans graphql --json <query>``; the CLI
  prints the data object directly, without a ``{"data": ...}`` envelope
- each invocation runs with a whitelisted environment, a wall-clock timeout
  and an output ceiling
- raw file access is confined to ``<workspace>/.beans``
"""

from __future__ import annotations

import asyncio
import json
import os
import secrets
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from ..config import Settings, get_settings
from ..schemas.bean import BeanRecord
from ..utils.errors import (
    CliError,
    CliOutputParseError,
    CliOutputTooLarge,
    CliTimeout,
    SandboxViolation,
    ValidationFailure,
)
from ..utils.logging import get_logger
from ..utils.paths import is_path_within_root
from . import graphql
from .backend import BeanDraft, BeanFilter, BeansBackend, BeanUpdate

logger = get_logger("backend")

SAFE_ENV_KEYS: Tuple[str, ...] = ("PATH", "HOME", "USER", "LANG", "LC_ALL", "LC_CTYPE", "SHELL", "TERM")
SAFE_ENV_PREFIX = "BEANS_"

BEANS_DIR = ".beans"
CONFIG_FILE = ".beans.yml"
DEFAULT_OUTPUT_LOG = Path(".vscode") / "logs" / "beans-output.log"
INSTRUCTIONS_FILE = Path(".github") / "instructions" / "beans-tasks.instructions.md"
DEFAULT_LOG_LINES = 500
OUTPUT_EXCERPT = 1000
READ_CHUNK = 64 * 1024


def build_safe_env(
    source: Optional[Mapping[str, str]] = None,
    allowlist: Iterable[str] = SAFE_ENV_KEYS,
    prefix: Optional[str] = SAFE_ENV_PREFIX,
) -> Dict[str, str]:
    """Copy only whitelisted variables (plus ``BEANS_*``) from ``source``."""
    source = os.environ if source is None else source
    env = {key: source[key] for key in allowlist if source.get(key)}
    if prefix:
        env.update({key: value for key, value in source.items() if key.startswith(prefix)})
    return env


async def _read_bounded(stream: asyncio.StreamReader, limit: int) -> bytes:
    chunks: List[bytes] = []
    total = 0
    while True:
        chunk = await stream.read(READ_CHUNK)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise CliOutputTooLarge(f"Beans CLI output exceeded {limit} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def _communicate(process: asyncio.subprocess.Process, limit: int) -> Tuple[bytes, bytes]:
    stdout_task = asyncio.ensure_future(_read_bounded(process.stdout, limit))
    stderr_task = asyncio.ensure_future(_read_bounded(process.stderr, limit))
    try:
        stdout, stderr = await asyncio.gather(stdout_task, stderr_task)
    except BaseException:
        stdout_task.cancel()
        stderr_task.cancel()
        raise
    await process.wait()
    return stdout, stderr


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass


async def _atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` next to ``path`` and rename it into place."""
    tmp_path = path.with_name(f".{path.name}.{secrets.token_hex(6)}.tmp")
    try:
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(content)
        await aiofiles.os.replace(tmp_path, path)
    except BaseException:
        try:
            await aiofiles.os.remove(tmp_path)
        except FileNotFoundError:
            pass
        raise


class BeansCliBackend(BeansBackend):
    """Backend that runs the beans CLI once per operation."""

    def __init__(
        self,
        workspace_root: Union[str, Path],
        cli_path: str = "beans",
        log_dir: Optional[Union[str, Path]] = None,
        settings: Optional[Settings] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        settings = settings or get_settings()
        self.workspace_root = Path(os.path.abspath(workspace_root))
        self.cli_path = cli_path
        self.log_dir = Path(os.path.abspath(log_dir)) if log_dir else None
        self.timeout = settings.cli_timeout
        self.max_output_bytes = settings.cli_max_output_bytes
        self.output_log_path = settings.output_log_path
        self.vscode_log_dir = settings.vscode_log_dir
        self._env_source = env

    def __repr__(self) -> str:
        return f"BeansCliBackend(workspace_root={str(self.workspace_root)!r}, cli_path={self.cli_path!r})"

    # ------------------------------------------------------------------
    # Process plumbing
    # ------------------------------------------------------------------

    def _safe_env(self) -> Dict[str, str]:
        return build_safe_env(self._env_source)

    async def _run_cli(self, args: List[str]) -> str:
        command = args[0] if args else ""
        logger.debug(f"CLI_EXEC | {self.cli_path} {command} | cwd={self.workspace_root}")
        try:
            process = await asyncio.create_subprocess_exec(
                self.cli_path,
                *args,
                cwd=str(self.workspace_root),
                env=self._safe_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise CliError(f"Failed to start Beans CLI '{self.cli_path}': {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                _communicate(process, self.max_output_bytes),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            _kill(process)
            await process.wait()
            raise CliTimeout(f"Beans CLI '{command}' timed out after {self.timeout:g}s")
        except CliOutputTooLarge:
            _kill(process)
            await process.wait()
            raise

        stdout_text = stdout.decode("utf-8", errors="replace")
        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip() or stdout_text.strip()
            raise CliError(
                f"Beans CLI '{command}' exited with code {process.returncode}: {detail[:OUTPUT_EXCERPT]}"
            )
        return stdout_text

    async def _execute_graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        args = ["graphql", "--json", query]
        if variables is not None:
            args.extend(["--variables", json.dumps(variables)])

        stdout = await self._run_cli(args)
        try:
            payload = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise CliOutputParseError(
                f"Failed to parse Beans CLI GraphQL output: {exc}\nOutput: {stdout[:OUTPUT_EXCERPT]}"
            ) from exc

        if not isinstance(payload, dict):
            raise CliOutputParseError(
                f"Unexpected Beans CLI GraphQL output\nOutput: {stdout[:OUTPUT_EXCERPT]}"
            )
        errors = payload.get("errors")
        if errors:
            messages = ", ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
            raise CliError(f"GraphQL error: {messages}")
        return payload

    @staticmethod
    def _field(payload: Dict[str, Any], key: str) -> Any:
        if key not in payload:
            raise CliOutputParseError(f"Beans CLI response is missing '{key}'")
        return payload[key]

    @staticmethod
    def _to_bean(item: Any) -> BeanRecord:
        try:
            return BeanRecord.model_validate(item)
        except ValidationError as exc:
            excerpt = json.dumps(item, default=str)[:OUTPUT_EXCERPT]
            raise CliOutputParseError(
                f"Unexpected bean in Beans CLI GraphQL output: {exc.error_count()} validation error(s)\nOutput: {excerpt}"
            ) from exc

    # ------------------------------------------------------------------
    # Sandbox
    # ------------------------------------------------------------------

    @property
    def beans_root(self) -> Path:
        return self.workspace_root / BEANS_DIR

    def resolve_bean_file_path(self, relative_path: str) -> Path:
        cleaned = relative_path.strip().lstrip("/")
        if not cleaned:
            raise ValidationFailure("Path is required")

        target = Path(os.path.abspath(self.beans_root / cleaned))
        if not is_path_within_root(self.beans_root, target):
            raise SandboxViolation("Path must stay within .beans directory")
        return target

    def resolve_output_log_path(self) -> Path:
        configured = self.output_log_path or (self.workspace_root / DEFAULT_OUTPUT_LOG)
        output_path = Path(os.path.abspath(configured))

        within_workspace = is_path_within_root(self.workspace_root, output_path)
        log_dir = self.vscode_log_dir or self.log_dir
        within_log_dir = bool(log_dir) and is_path_within_root(log_dir, output_path)

        if not within_workspace and not within_log_dir:
            raise SandboxViolation("Output log path must stay within the workspace or VS Code log directory")
        return output_path

    # ------------------------------------------------------------------
    # Workspace operations
    # ------------------------------------------------------------------

    async def init_workspace(self, prefix: Optional[str] = None) -> Dict[str, Any]:
        args = ["init"]
        if prefix:
            args.extend(["--prefix", prefix])
        await self._run_cli(args)
        logger.info(f"Initialized beans workspace at {self.workspace_root}")
        return {"initialized": True}

    async def list_beans(self, bean_filter: Optional[BeanFilter] = None) -> List[BeanRecord]:
        variables = {"filter": (bean_filter or BeanFilter()).to_variables()}
        payload = await self._execute_graphql(graphql.LIST_BEANS_QUERY, variables)
        beans = self._field(payload, "beans") or []
        return [self._to_bean(item) for item in beans]

    async def create_bean(self, draft: BeanDraft) -> BeanRecord:
        create_input = {
            "title": draft.title,
            "type": draft.type,
            "status": draft.status,
            "priority": draft.priority,
            "body": draft.description,
            "parent": draft.parent,
        }
        create_input = {key: value for key, value in create_input.items() if value is not None}

        payload = await self._execute_graphql(graphql.CREATE_BEAN_MUTATION, {"input": create_input})
        return self._to_bean(self._field(payload, "createBean"))

    async def update_bean(self, bean_id: str, update: BeanUpdate) -> BeanRecord:
        update_input: Dict[str, Any] = {}
        for key in ("status", "type", "priority", "body"):
            value = getattr(update, key)
            if value is not None:
                update_input[key] = value

        if update.parent is not None:
            update_input["parent"] = update.parent
        elif update.clear_parent:
            update_input["parent"] = ""

        if update.blocking:
            update_input["addBlocking"] = list(update.blocking)
        if update.blocked_by:
            update_input["addBlockedBy"] = list(update.blocked_by)

        payload = await self._execute_graphql(
            graphql.UPDATE_BEAN_MUTATION,
            {"id": bean_id, "input": update_input},
        )
        return self._to_bean(self._field(payload, "updateBean"))

    async def delete_bean(self, bean_id: str) -> Dict[str, Any]:
        await self._execute_graphql(graphql.DELETE_BEAN_MUTATION, {"id": bean_id})
        return {"deleted": True, "beanId": bean_id}

    async def open_config(self) -> Dict[str, Any]:
        config_path = self.workspace_root / CONFIG_FILE
        async with aiofiles.open(config_path, "r", encoding="utf-8") as f:
            content = await f.read()
        return {"configPath": str(config_path), "content": content}

    async def graphql_schema(self) -> str:
        stdout = await self._run_cli(["graphql", "--schema"])
        return stdout.strip()

    async def read_output_log(self, lines: Optional[int] = None) -> Dict[str, Any]:
        output_path = self.resolve_output_log_path()
        max_lines = lines if lines and lines > 0 else DEFAULT_LOG_LINES

        ring: Deque[str] = deque(maxlen=max_lines)
        async with aiofiles.open(output_path, "r", encoding="utf-8", errors="replace") as f:
            async for line in f:
                line = line.rstrip("\r\n")
                if line:
                    ring.append(line)

        return {
            "path": str(output_path),
            "content": "\n".join(ring),
            "linesReturned": len(ring),
        }

    # ------------------------------------------------------------------
    # Files under .beans
    # ------------------------------------------------------------------

    async def read_bean_file(self, relative_path: str) -> Dict[str, Any]:
        absolute_path = self.resolve_bean_file_path(relative_path)
        async with aiofiles.open(absolute_path, "r", encoding="utf-8") as f:
            content = await f.read()
        return {"path": str(absolute_path), "content": content}

    async def edit_bean_file(self, relative_path: str, content: str) -> Dict[str, Any]:
        absolute_path = self.resolve_bean_file_path(relative_path)
        await aiofiles.os.makedirs(absolute_path.parent, exist_ok=True)
        await _atomic_write_text(absolute_path, content)
        return {"path": str(absolute_path), "bytes": len(content.encode("utf-8"))}

    async def create_bean_file(
        self, relative_path: str, content: str, overwrite: bool = False
    ) -> Dict[str, Any]:
        absolute_path = self.resolve_bean_file_path(relative_path)
        await aiofiles.os.makedirs(absolute_path.parent, exist_ok=True)

        if overwrite:
            await _atomic_write_text(absolute_path, content)
        else:
            # "x" fails with FileExistsError and leaves an existing file untouched
            async with aiofiles.open(absolute_path, "x", encoding="utf-8") as f:
                try:
                    await f.write(content)
                except BaseException:
                    await aiofiles.os.remove(absolute_path)
                    raise

        return {
            "path": str(absolute_path),
            "bytes": len(content.encode("utf-8")),
            "created": True,
        }

    async def delete_bean_file(self, relative_path: str) -> Dict[str, Any]:
        absolute_path = self.resolve_bean_file_path(relative_path)
        await aiofiles.os.remove(absolute_path)
        return {"path": str(absolute_path), "deleted": True}

    async def write_instructions(self, content: str) -> str:
        target = self.workspace_root / INSTRUCTIONS_FILE
        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        await _atomic_write_text(target, content)
        return str(target)
