"""Backend interface for one agent turn."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from agent_runner.runner.contracts import RunInput
from agent_runner.runner.models import TurnResult


@dataclass(slots=True)
class TurnRequest:
    """Inputs required to execute one turn."""

    prompt: str
    session_id: str | None
    run_input: RunInput


@dataclass(slots=True)
class ProcessOutput:
    """Captured streams of one finished agent process."""

    exit_code: int
    stdout: str
    stderr: str


class AgentBackend(Protocol):
    """Protocol implemented by turn runners."""

    async def run_turn(self, request: TurnRequest) -> TurnResult:
        """Run one turn to completion and return its single outcome."""
