"""Runtime configuration for the agent runner."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

_DEFAULT_CALLBACK_ARGS = ("/tmp/dist/ipc-mcp-stdio.js",)  # noqa: S108
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(slots=True)
class WorkspaceSettings:
    """Mounted workspace layout shared with the agent process."""

    root: Path = Path("/workspace")

    @property
    def group_dir(self) -> Path:
        return self.root / "group"

    @property
    def ipc_dir(self) -> Path:
        return self.root / "ipc"

    @property
    def ipc_input_dir(self) -> Path:
        return self.ipc_dir / "input"

    @property
    def project_dir(self) -> Path:
        return self.root / "project"

    @property
    def global_dir(self) -> Path:
        return self.root / "global"

    @property
    def extra_dir(self) -> Path:
        return self.root / "extra"


@dataclass(slots=True)
class CodexSettings:
    """How the codex executable is launched."""

    command: str = "codex"
    sandbox_mode: str = "workspace-write"
    diagnostic_tail_chars: int = 500

    def command_argv(self) -> list[str]:
        """Split the configured command into an argv prefix."""

        return shlex.split(self.command)


@dataclass(slots=True)
class CallbackServerSettings:
    """Cooperating MCP server the agent uses to call back into the host."""

    name: str = "agent_runner"
    command: str = "node"
    args: tuple[str, ...] = _DEFAULT_CALLBACK_ARGS


@dataclass(slots=True)
class MailboxSettings:
    """Polled IPC mailbox settings."""

    poll_interval_seconds: float = 0.5
    message_suffix: str = ".json"
    close_sentinel_name: str = "_close"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    workspace: WorkspaceSettings = field(default_factory=WorkspaceSettings)
    codex: CodexSettings = field(default_factory=CodexSettings)
    callback: CallbackServerSettings = field(default_factory=CallbackServerSettings)
    mailbox: MailboxSettings = field(default_factory=MailboxSettings)
    input_temp_file: Path | None = Path("/tmp/input.json")  # noqa: S108
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, workspace_root: Path | None = None) -> Settings:
        """Load settings from environment with container defaults."""

        temp_file_raw = os.getenv("AGENT_RUNNER_INPUT_TEMP_FILE", "/tmp/input.json").strip()  # noqa: S108
        return cls(
            workspace=WorkspaceSettings(
                root=workspace_root
                or Path(os.getenv("AGENT_RUNNER_WORKSPACE_ROOT", "/workspace")),
            ),
            codex=CodexSettings(
                command=os.getenv("AGENT_RUNNER_CODEX_COMMAND", "codex"),
                sandbox_mode=os.getenv("AGENT_RUNNER_CODEX_SANDBOX", "workspace-write"),
                diagnostic_tail_chars=int(
                    os.getenv("AGENT_RUNNER_DIAGNOSTIC_TAIL_CHARS", "500"),
                ),
            ),
            callback=CallbackServerSettings(
                name=os.getenv("AGENT_RUNNER_CALLBACK_NAME", "agent_runner"),
                command=os.getenv("AGENT_RUNNER_CALLBACK_COMMAND", "node"),
                args=_collect_callback_args(),
            ),
            mailbox=MailboxSettings(
                poll_interval_seconds=float(os.getenv("AGENT_RUNNER_IPC_POLL_SECONDS", "0.5")),
            ),
            input_temp_file=Path(temp_file_raw) if temp_file_raw else None,
            log_level=os.getenv("AGENT_RUNNER_LOG_LEVEL", "INFO").strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error for values the runner cannot work with."""

        if not self.codex.command_argv():
            raise ValueError("AGENT_RUNNER_CODEX_COMMAND must not be empty.")
        if not self.codex.sandbox_mode.strip():
            raise ValueError("AGENT_RUNNER_CODEX_SANDBOX must not be empty.")
        if self.codex.diagnostic_tail_chars <= 0:
            raise ValueError("AGENT_RUNNER_DIAGNOSTIC_TAIL_CHARS must be > 0.")
        if not self.callback.name.strip() or "." in self.callback.name:
            raise ValueError(
                f"Invalid AGENT_RUNNER_CALLBACK_NAME: {self.callback.name!r}. "
                "Expected a non-empty name without dots.",
            )
        if self.mailbox.poll_interval_seconds <= 0:
            raise ValueError("AGENT_RUNNER_IPC_POLL_SECONDS must be > 0.")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"Invalid AGENT_RUNNER_LOG_LEVEL: {self.log_level!r}")


def _collect_callback_args() -> tuple[str, ...]:
    raw = os.getenv("AGENT_RUNNER_CALLBACK_ARGS")
    if raw is None:
        return _DEFAULT_CALLBACK_ARGS
    return tuple(part.strip() for part in raw.split(",") if part.strip())
