"""Top-level session loop: run a turn, emit its result, wait for the next message."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from agent_runner.config import Settings, WorkspaceSettings
from agent_runner.runner.backend import AgentBackend, CodexBackend, TurnRequest
from agent_runner.runner.contracts import RunInput, RunOutput, read_run_input
from agent_runner.runner.errors import InputError
from agent_runner.runner.failure_classifier import classify_turn_failure
from agent_runner.runner.instructions import build_initial_prompt
from agent_runner.runner.mailbox import IpcMailbox
from agent_runner.runner.models import FailureClass, SessionState
from agent_runner.runner.output import OutputChannel

logger = logging.getLogger(__name__)


class MessageSource(Protocol):
    """Follow-up input between turns."""

    def prepare(self) -> None:
        """Reset state left over by an earlier run."""

    def drain(self) -> list[str]:
        """Return every message already pending, without waiting."""

    async def wait_for_message(self) -> str | None:
        """Block until the next message text, or ``None`` once close is requested."""


class SessionLoop:
    """Strictly sequential turn loop owning the session id of one run."""

    def __init__(
        self,
        *,
        run_input: RunInput,
        backend: AgentBackend,
        messages: MessageSource,
        output: OutputChannel,
        workspace: WorkspaceSettings,
    ) -> None:
        self.run_input = run_input
        self.backend = backend
        self.messages = messages
        self.output = output
        self.workspace = workspace
        self.session_id = run_input.session_id
        self.state = SessionState.INIT

    async def run(self) -> int:
        """Drive turns until the host closes the session (0) or a turn fails (1)."""

        try:
            prompt = self._initial_prompt()
            while True:
                self.state = SessionState.RUNNING
                logger.info("Starting turn (session: %s)...", self.session_id or "new")
                result = await self.backend.run_turn(
                    TurnRequest(prompt=prompt, session_id=self.session_id, run_input=self.run_input),
                )
                if not result.ok:
                    return self._fail(
                        result.error or "Agent turn failed without error message",
                        result.failure_class or FailureClass.INTERNAL,
                    )

                if result.session_id:
                    self.session_id = result.session_id
                self.output.emit(
                    RunOutput.success(result=result.assistant_text, session_id=self.session_id),
                )
                self.output.emit(RunOutput.heartbeat(session_id=self.session_id))

                self.state = SessionState.AWAITING_INPUT
                logger.info("Turn ended, waiting for next IPC message...")
                next_message = await self.messages.wait_for_message()
                if next_message is None:
                    logger.info("Close sentinel received, exiting")
                    self.state = SessionState.CLOSED
                    return 0
                logger.info("Got new message (%d chars), starting next turn", len(next_message))
                prompt = next_message
        except Exception as error:  # noqa: BLE001
            logger.exception("Agent error")
            return self._fail(str(error) or type(error).__name__, FailureClass.INTERNAL)

    def _initial_prompt(self) -> str:
        self.messages.prepare()
        prompt = build_initial_prompt(self.run_input, self.workspace)
        pending = self.messages.drain()
        if pending:
            logger.info("Draining %d pending IPC messages into initial prompt", len(pending))
            prompt += "\n" + "\n".join(pending)
        return prompt

    def _fail(self, error: str, failure_class: FailureClass) -> int:
        diagnosis = classify_turn_failure(failure_class=failure_class, error=error)
        logger.error("Agent error (%s): %s", diagnosis.describe(), error)
        self.output.emit(RunOutput.failure(error=error, session_id=self.session_id))
        self.state = SessionState.FAILED
        return 1


async def run_session(
    raw_input: str | bytes,
    *,
    settings: Settings,
    output: OutputChannel,
    backend: AgentBackend | None = None,
    messages: MessageSource | None = None,
) -> int:
    """Parse the initial input document and run the session loop over it."""

    try:
        run_input = read_run_input(raw_input)
    except InputError as error:
        logger.error("Invalid input (%s): %s", error.failure_class.value, error)
        output.emit(RunOutput.failure(error=f"Failed to parse input: {error}"))
        return 1

    _remove_input_temp_file(settings.input_temp_file)
    logger.info("Received input for group: %s", run_input.group_folder)

    loop = SessionLoop(
        run_input=run_input,
        backend=backend
        or CodexBackend(
            workspace=settings.workspace,
            codex=settings.codex,
            callback=settings.callback,
        ),
        messages=messages
        or IpcMailbox(
            settings.workspace.ipc_input_dir,
            poll_interval_seconds=settings.mailbox.poll_interval_seconds,
            message_suffix=settings.mailbox.message_suffix,
            close_sentinel_name=settings.mailbox.close_sentinel_name,
        ),
        output=output,
        workspace=settings.workspace,
    )
    return await loop.run()


def _remove_input_temp_file(path: Path | None) -> None:
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as error:
        logger.warning("Could not remove input file %s: %s", path, error)
