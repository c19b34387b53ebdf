"""Turn backend implementations."""

from agent_runner.runner.backend.base import AgentBackend, ProcessOutput, TurnRequest
from agent_runner.runner.backend.codex_backend import CodexBackend

__all__ = [
    "AgentBackend",
    "CodexBackend",
    "ProcessOutput",
    "TurnRequest",
]
