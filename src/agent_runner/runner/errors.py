"""Error taxonomy of the runner."""

from __future__ import annotations

from agent_runner.runner.models import FailureClass


class InputError(ValueError):
    """Initial input document is unreadable or malformed."""

    failure_class = FailureClass.INPUT_ERROR


class MailboxRecordError(ValueError):
    """One mailbox file could not be turned into a message."""

    failure_class = FailureClass.MAILBOX_RECORD


class TurnError(RuntimeError):
    """Turn failure that ends the session loop."""

    failure_class = FailureClass.INTERNAL

    def __init__(self, message: str, *, session_id: str | None = None) -> None:
        super().__init__(message)
        self.session_id = session_id


class ProcessLaunchError(TurnError):
    """Agent executable could not be started."""

    failure_class = FailureClass.PROCESS_LAUNCH


class ProcessExitError(TurnError):
    """Agent process exited with a non-zero status."""

    failure_class = FailureClass.PROCESS_EXIT

    def __init__(self, message: str, *, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class ProtocolFatalError(TurnError):
    """Event stream reported a fatal event or never reported completion."""

    failure_class = FailureClass.PROTOCOL_FATAL
