"""Controllers for runner CLI commands."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from agent_runner.config import Settings
from agent_runner.runner.events import parse_turn_output
from agent_runner.runner.mailbox import IpcMailbox
from agent_runner.runner.output import OutputChannel
from agent_runner.runner.session import run_session

_LOG_FORMAT = "[agent-runner] %(levelname)s %(name)s: %(message)s"


@dataclass(slots=True)
class RunCommand:
    """CLI input for one session run."""

    raw_input: str | bytes
    workspace_root: Path | None


@dataclass(slots=True)
class ParseCommand:
    """CLI input for offline parsing of a captured event stream."""

    stdout_text: str


@dataclass(slots=True)
class SendCommand:
    """CLI input for posting a follow-up message."""

    text: str
    workspace_root: Path | None


@dataclass(slots=True)
class CloseCommand:
    """CLI input for closing a running session."""

    workspace_root: Path | None


@dataclass(slots=True)
class ParseResult:
    """Parsed turn rendered for the CLI."""

    lines: list[str]
    success: bool


class RunnerCliController:
    """Coordinates session runs and host-side mailbox operations."""

    def run(self, command: RunCommand, *, stdout: TextIO, stderr: TextIO) -> int:
        settings = Settings.from_env(workspace_root=command.workspace_root)
        settings.validate()
        configure_logging(settings.log_level, stream=stderr)
        return asyncio.run(
            run_session(
                command.raw_input,
                settings=settings,
                output=OutputChannel(stdout),
            ),
        )

    def parse(self, command: ParseCommand) -> ParseResult:
        result = parse_turn_output(command.stdout_text)
        return ParseResult(
            lines=[json.dumps(result.to_dict(), ensure_ascii=False, indent=2)],
            success=result.ok,
        )

    def send(self, command: SendCommand) -> list[str]:
        if not command.text:
            raise ValueError("Message text must not be empty.")
        path = _mailbox(command.workspace_root).post_message(command.text)
        return [f"Message queued: {path.name}"]

    def close(self, command: CloseCommand) -> list[str]:
        mailbox = _mailbox(command.workspace_root)
        mailbox.request_close()
        return [f"Close requested: {mailbox.close_sentinel}"]


def configure_logging(level: str, *, stream: TextIO) -> None:
    """Route all diagnostics to ``stream`` so stdout carries result records only."""

    logging.basicConfig(level=level, format=_LOG_FORMAT, stream=stream, force=True)


def _mailbox(workspace_root: Path | None) -> IpcMailbox:
    settings = Settings.from_env(workspace_root=workspace_root)
    return IpcMailbox(
        settings.workspace.ipc_input_dir,
        message_suffix=settings.mailbox.message_suffix,
        close_sentinel_name=settings.mailbox.close_sentinel_name,
    )
