"""Domain models for agent turns and the session loop."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FailureClass(str, Enum):
    """Normalized failure categories of one run."""

    INPUT_ERROR = "input_error"
    PROCESS_LAUNCH = "process_launch"
    PROCESS_EXIT = "process_exit"
    PROTOCOL_FATAL = "protocol_fatal"
    MAILBOX_RECORD = "mailbox_record"
    INTERNAL = "internal"


class SessionState(str, Enum):
    """Session loop lifecycle states."""

    INIT = "init"
    RUNNING = "running"
    AWAITING_INPUT = "awaiting_input"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class TurnResult:
    """Outcome of exactly one agent turn.

    ``assistant_text`` is only set on success and is ``None`` (never ``""``)
    when the turn produced no visible text.
    """

    ok: bool
    assistant_text: str | None = None
    session_id: str | None = None
    error: str | None = None
    failure_class: FailureClass | None = None

    @classmethod
    def success(cls, *, assistant_text: str | None, session_id: str | None) -> TurnResult:
        text = assistant_text if assistant_text else None
        return cls(ok=True, assistant_text=text, session_id=session_id)

    @classmethod
    def failure(
        cls,
        *,
        error: str,
        session_id: str | None,
        failure_class: FailureClass,
    ) -> TurnResult:
        return cls(
            ok=False,
            assistant_text=None,
            session_id=session_id,
            error=error,
            failure_class=failure_class,
        )

    def to_dict(self) -> dict[str, object]:
        """Plain mapping used by the ``parse`` CLI command."""

        return {
            "ok": self.ok,
            "assistantText": self.assistant_text,
            "sessionId": self.session_id,
            "error": self.error,
            "failureClass": self.failure_class.value if self.failure_class else None,
        }
