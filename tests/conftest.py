"""Shared test fixtures."""

from __future__ import annotations

import logging
import shlex
import sys

import pytest

from agent_runner.config import WorkspaceSettings


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """CLI runs reconfigure the root logger against a captured stream."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def workspace(tmp_path) -> WorkspaceSettings:
    settings = WorkspaceSettings(root=tmp_path / "workspace")
    settings.group_dir.mkdir(parents=True)
    settings.ipc_input_dir.mkdir(parents=True)
    return settings


@pytest.fixture()
def echo_agent_command() -> str:
    """Command line of the local codex stand-in."""
    return shlex.join([sys.executable, "-m", "agent_runner.runner.backend.echo_agent"])


@pytest.fixture()
def echo_agent_env(monkeypatch, workspace, echo_agent_command):
    """Point the runner at the echo agent and the temporary workspace."""
    monkeypatch.setenv("AGENT_RUNNER_CODEX_COMMAND", echo_agent_command)
    monkeypatch.setenv("AGENT_RUNNER_WORKSPACE_ROOT", str(workspace.root))
    monkeypatch.setenv("AGENT_RUNNER_INPUT_TEMP_FILE", "")
    monkeypatch.setenv("AGENT_RUNNER_IPC_POLL_SECONDS", "0.05")
    for name in ("CODEX_MODEL", "OPENAI_MODEL", "ECHO_AGENT_EXIT_CODE", "ECHO_AGENT_FAIL"):
        monkeypatch.delenv(name, raising=False)
    return workspace
