"""
Test configuration and fixtures for the beans MCP server tests.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from beans_mcp.config import Settings

from tests._helpers import FakeBackend, make_bean, write_fake_cli

ENV_VARS = (
    "BEANS_CLI_PATH",
    "BEANS_CLI_TIMEOUT",
    "BEANS_CLI_MAX_OUTPUT",
    "BEANS_MCP_PORT",
    "BEANS_VSCODE_MCP_PORT",
    "BEANS_VSCODE_OUTPUT_LOG",
    "BEANS_VSCODE_LOG_DIR",
    "BEANS_MCP_LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of Settings."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def workspace(tmp_path) -> Path:
    """A workspace root with an empty .beans directory."""
    root = tmp_path / "workspace"
    (root / ".beans").mkdir(parents=True)
    return root


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, cli_timeout=5.0, cli_max_output_bytes=1024 * 1024)


@pytest.fixture
def fake_cli(tmp_path) -> Path:
    if sys.platform == "win32":
        pytest.skip("fake beans CLI relies on a shebang")
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    return write_fake_cli(bin_dir)


@pytest.fixture
def sample_beans():
    return [
        make_bean("bean1", title="Active Task", status="in-progress", type="task", tags=["urgent", "backend"]),
        make_bean("bean2", title="Completed Feature", status="completed", type="feature", tags=["frontend"]),
        make_bean("bean3", title="Draft Docs", status="draft", type="task", tags=["docs"]),
    ]


@pytest.fixture
def fake_backend(sample_beans) -> FakeBackend:
    return FakeBackend(sample_beans)


def pytest_configure(config):
    """Configure custom test markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: runs the fake beans CLI as a real subprocess")
