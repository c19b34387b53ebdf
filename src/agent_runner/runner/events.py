"""Deterministic reduction of a codex ``exec --json`` event stream into one turn result.

Every non-blank stdout line is parsed on its own; lines that are not JSON
objects are skipped because the agent interleaves plain diagnostics with
protocol records. Each record is classified by its ``type`` tag into an
``EventKind`` and then inspected by small, default-safe helpers, one per
concern: session id, fatal errors, completion, and assistant text.

Text precedence is fixed: finalized assistant messages win over streamed
deltas whenever both appear in the same turn.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias

from agent_runner.runner.models import FailureClass, TurnResult

JsonValue: TypeAlias = (
    None | bool | int | float | str | list["JsonValue"] | dict[str, "JsonValue"]
)
JsonObject: TypeAlias = dict[str, JsonValue]

SESSION_ID_KEYS: frozenset[str] = frozenset({"session_id", "thread_id", "conversation_id"})
TRANSIENT_ERROR_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^Reconnecting\.\.\.", re.IGNORECASE),
)
COMPLETED_STATUSES: frozenset[str] = frozenset({"completed", "success"})

MISSING_COMPLETION_ERROR = "Codex turn did not report successful completion"
DEFAULT_TURN_FAILED_ERROR = "Codex reported turn.failed"
DEFAULT_ERROR_EVENT_ERROR = "Codex emitted error event"
DEFAULT_CANCELLED_ERROR = "Codex turn was cancelled"


class EventKind(str, Enum):
    """Record categories the parser distinguishes."""

    TURN_COMPLETED = "turn_completed"
    TURN_ENDED = "turn_ended"
    TURN_FAILED = "turn_failed"
    TURN_CANCELLED = "turn_cancelled"
    ERROR = "error"
    RESPONSE_ITEM = "response_item"
    MESSAGE = "message"
    OUTPUT_TEXT = "output_text"
    ASSISTANT_DELTA = "assistant_delta"
    UNKNOWN = "unknown"


_KIND_BY_TYPE: dict[str, EventKind] = {
    "turn.completed": EventKind.TURN_COMPLETED,
    "turn.ended": EventKind.TURN_ENDED,
    "turn.failed": EventKind.TURN_FAILED,
    "turn.cancelled": EventKind.TURN_CANCELLED,
    "error": EventKind.ERROR,
    "response_item": EventKind.RESPONSE_ITEM,
    "message": EventKind.MESSAGE,
    "assistant.message": EventKind.MESSAGE,
    "response.output_text.delta": EventKind.OUTPUT_TEXT,
    "response.output_text.done": EventKind.OUTPUT_TEXT,
    "turn.output_text.delta": EventKind.OUTPUT_TEXT,
    "turn.output_text.done": EventKind.OUTPUT_TEXT,
    "assistant": EventKind.ASSISTANT_DELTA,
    "assistant.delta": EventKind.ASSISTANT_DELTA,
}

_TEXT_CONTENT_TYPES = frozenset({"output_text", "text"})


@dataclass(slots=True, frozen=True)
class StreamEvent:
    """One protocol record tagged by kind; ``fields`` keeps the raw object."""

    kind: EventKind
    type_tag: str
    fields: JsonObject

    @classmethod
    def from_record(cls, record: JsonObject) -> StreamEvent:
        raw_type = record.get("type")
        type_tag = raw_type if isinstance(raw_type, str) else ""
        return cls(
            kind=_KIND_BY_TYPE.get(type_tag, EventKind.UNKNOWN),
            type_tag=type_tag,
            fields=record,
        )

    def get(self, key: str) -> JsonValue:
        return self.fields.get(key)

    def get_object(self, key: str) -> JsonObject | None:
        value = self.fields.get(key)
        return value if isinstance(value, dict) else None


@dataclass(slots=True)
class _TurnAccumulator:
    session_id: str | None = None
    fatal_error: str | None = None
    completed: bool = False
    final_parts: list[str] = field(default_factory=list)
    delta_parts: list[str] = field(default_factory=list)


def parse_turn_output(stdout: str) -> TurnResult:
    """Reduce the complete stdout of one agent invocation to a turn result.

    Never raises. A failed result never carries assistant text and its error
    message is either extracted from a fatal record or a fixed diagnostic.
    """

    acc = _TurnAccumulator()
    for event in read_events(stdout):
        if acc.session_id is None:
            acc.session_id = find_string_value(event.fields, SESSION_ID_KEYS)
        if acc.fatal_error is None:
            acc.fatal_error = fatal_error_message(event)
        if not acc.completed:
            acc.completed = is_turn_completed(event)
        acc.final_parts.extend(final_text_parts(event))
        acc.delta_parts.extend(delta_text_parts(event))

    if acc.fatal_error is not None:
        return TurnResult.failure(
            error=acc.fatal_error,
            session_id=acc.session_id,
            failure_class=FailureClass.PROTOCOL_FATAL,
        )
    if not acc.completed:
        return TurnResult.failure(
            error=MISSING_COMPLETION_ERROR,
            session_id=acc.session_id,
            failure_class=FailureClass.PROTOCOL_FATAL,
        )

    chosen = acc.final_parts or acc.delta_parts
    text = "".join(chosen).replace("\r\n", "\n").strip()
    return TurnResult.success(assistant_text=text or None, session_id=acc.session_id)


def read_events(stdout: str) -> list[StreamEvent]:
    """Parse JSON-object lines, skipping blank and non-protocol lines.

    Records are separated by newlines only; U+2028, U+2029 and NEL may appear raw
    inside JSON strings.
    """

    events: list[StreamEvent] = []
    for line in stdout.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        try:
            parsed: Any = json.loads(stripped)
        except (ValueError, RecursionError):
            continue
        if isinstance(parsed, dict):
            events.append(StreamEvent.from_record(parsed))
    return events


def find_string_value(value: JsonValue, keys: frozenset[str]) -> str | None:
    """Return the first non-empty string stored under one of ``keys``.

    Uses an explicit stack instead of recursion. A map's own keys are checked
    before anything nested inside it, and nested values are visited in
    document order.
    """

    stack: list[JsonValue] = [value]
    while stack:
        current = stack.pop()
        if isinstance(current, list):
            stack.extend(reversed(current))
            continue
        if not isinstance(current, dict):
            continue

        nested: list[JsonValue] = []
        for key, item in current.items():
            if key in keys and isinstance(item, str) and item:
                return item
            if isinstance(item, (dict, list)):
                nested.append(item)
        stack.extend(reversed(nested))
    return None


def fatal_error_message(event: StreamEvent) -> str | None:
    """Return the failure message of a fatal record, ``None`` otherwise."""

    if event.kind is EventKind.TURN_FAILED:
        return _event_message(event) or DEFAULT_TURN_FAILED_ERROR
    if event.kind is EventKind.ERROR:
        message = _event_message(event) or DEFAULT_ERROR_EVENT_ERROR
        if is_transient_error(message):
            return None
        return message
    if event.kind is EventKind.TURN_CANCELLED:
        return _event_message(event) or DEFAULT_CANCELLED_ERROR
    return None


def is_transient_error(message: str) -> bool:
    return any(pattern.search(message) for pattern in TRANSIENT_ERROR_PATTERNS)


def is_turn_completed(event: StreamEvent) -> bool:
    if event.kind is EventKind.TURN_COMPLETED:
        return True
    status = event.get("status")
    if event.kind is EventKind.TURN_ENDED and isinstance(status, str):
        return _is_completed_status(status)
    turn = event.get_object("turn")
    return turn is not None and _is_completed_status(turn.get("status"))


def final_text_parts(event: StreamEvent) -> list[str]:
    """Text of a finalized assistant message record."""

    if event.kind is EventKind.RESPONSE_ITEM:
        payload = event.get_object("payload")
        if payload is None or not _is_assistant_message(payload):
            return []
        return text_from_content(payload.get("content"))
    if event.kind is EventKind.MESSAGE and event.get("role") == "assistant":
        return text_from_content(event.get("content"))
    return []


def delta_text_parts(event: StreamEvent) -> list[str]:
    """Text of a streamed delta record."""

    if event.kind is EventKind.OUTPUT_TEXT:
        text = _non_blank(event.get("delta")) or _non_blank(event.get("text"))
    elif event.kind is EventKind.ASSISTANT_DELTA:
        text = _non_blank(event.get("text")) or _non_blank(event.get("delta"))
    else:
        return []
    return [text] if text else []


def text_from_content(content: JsonValue) -> list[str]:
    """Collect textual fragments from a content list, descending into nested lists."""

    if not isinstance(content, list):
        return []

    parts: list[str] = []
    for item in content:
        if not isinstance(item, dict):
            continue
        if item.get("type") in _TEXT_CONTENT_TYPES:
            text = _non_blank(item.get("text"))
            if text:
                parts.append(text)
        nested = item.get("content")
        if isinstance(nested, list):
            parts.extend(text_from_content(nested))
    return parts


def _event_message(event: StreamEvent) -> str | None:
    message = _non_blank(event.get("message"))
    if message:
        return message
    for container_key in ("error", "payload"):
        container = event.get_object(container_key)
        if container is not None:
            message = _non_blank(container.get("message"))
            if message:
                return message
    return None


def _is_assistant_message(payload: JsonObject) -> bool:
    return payload.get("type") == "message" and payload.get("role") == "assistant"


def _is_completed_status(value: JsonValue) -> bool:
    return isinstance(value, str) and value.lower() in COMPLETED_STATUSES


def _non_blank(value: JsonValue) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None
