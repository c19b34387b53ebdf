from __future__ import annotations

import json

import allure

from agent_runner.runner.events import (
    DEFAULT_CANCELLED_ERROR,
    DEFAULT_ERROR_EVENT_ERROR,
    DEFAULT_TURN_FAILED_ERROR,
    MISSING_COMPLETION_ERROR,
    SESSION_ID_KEYS,
    EventKind,
    StreamEvent,
    find_string_value,
    parse_turn_output,
    read_events,
)
from agent_runner.runner.models import FailureClass

pytestmark = [
    allure.epic("Agent Turns"),
    allure.feature("Event Stream Parsing"),
]


def _stream(*events: object) -> str:
    return "\n".join(event if isinstance(event, str) else json.dumps(event) for event in events)


def _assistant_item(text: str) -> dict[str, object]:
    return {
        "type": "response_item",
        "payload": {
            "type": "message",
            "role": "assistant",
            "content": [{"type": "output_text", "text": text}],
        },
    }


def test_finalized_message_wins_over_deltas() -> None:
    result = parse_turn_output(
        _stream(
            {"type": "thread.started", "thread_id": "t-1"},
            {"type": "response.output_text.delta", "delta": "partial"},
            _assistant_item("final answer"),
            {"type": "turn.completed"},
        ),
    )

    assert result.ok is True
    assert result.assistant_text == "final answer"
    assert result.session_id == "t-1"
    assert result.error is None


def test_deltas_are_concatenated_without_final_message() -> None:
    result = parse_turn_output(
        _stream(
            {"type": "response.output_text.delta", "delta": "A"},
            {"type": "response.output_text.delta", "delta": "B"},
            {"type": "turn.completed"},
        ),
    )

    assert result.ok is True
    assert result.assistant_text == "AB"


def test_fatal_record_fails_turn_even_with_completion_and_text() -> None:
    result = parse_turn_output(
        _stream(
            {"type": "thread.started", "thread_id": "t-2"},
            _assistant_item("should not leak"),
            {"type": "turn.failed", "error": {"message": "boom"}},
            {"type": "turn.completed"},
        ),
    )

    assert result.ok is False
    assert result.error == "boom"
    assert result.assistant_text is None
    assert result.session_id == "t-2"
    assert result.failure_class is FailureClass.PROTOCOL_FATAL


def test_first_fatal_message_is_kept() -> None:
    result = parse_turn_output(
        _stream(
            {"type": "error", "message": "first"},
            {"type": "turn.failed", "error": {"message": "second"}},
        ),
    )

    assert result.error == "first"


def test_reconnecting_error_is_transient() -> None:
    result = parse_turn_output(
        _stream(
            {"type": "error", "message": "Reconnecting... 1/5"},
            {"type": "error", "message": "reconnecting... 2/5"},
            {"type": "turn.completed"},
        ),
    )

    assert result.ok is True
    assert result.assistant_text is None


def test_error_events_fall_back_to_default_messages() -> None:
    assert parse_turn_output(_stream({"type": "error"})).error == DEFAULT_ERROR_EVENT_ERROR
    assert parse_turn_output(_stream({"type": "turn.failed"})).error == DEFAULT_TURN_FAILED_ERROR
    assert (
        parse_turn_output(_stream({"type": "turn.cancelled"})).error == DEFAULT_CANCELLED_ERROR
    )


def test_error_message_is_read_from_payload() -> None:
    result = parse_turn_output(
        _stream({"type": "turn.failed", "error": {}, "payload": {"message": "quota exceeded"}}),
    )

    assert result.error == "quota exceeded"


def test_missing_completion_is_a_failure() -> None:
    result = parse_turn_output(
        _stream(
            {"type": "thread.started", "thread_id": "t-3"},
            _assistant_item("unfinished"),
        ),
    )

    assert result.ok is False
    assert result.error == MISSING_COMPLETION_ERROR
    assert result.assistant_text is None
    assert result.session_id == "t-3"


def test_completion_recognized_from_ended_status_and_nested_turn() -> None:
    ended = parse_turn_output(_stream({"type": "turn.ended", "status": "Success"}))
    nested = parse_turn_output(_stream({"type": "event", "turn": {"status": "completed"}}))
    not_done = parse_turn_output(_stream({"type": "turn.ended", "status": "interrupted"}))

    assert ended.ok is True
    assert nested.ok is True
    assert not_done.ok is False


def test_empty_stream_fails_without_session() -> None:
    result = parse_turn_output("")

    assert result.ok is False
    assert result.session_id is None
    assert result.error == MISSING_COMPLETION_ERROR


def test_non_json_and_non_object_lines_are_skipped() -> None:
    result = parse_turn_output(
        _stream(
            "plain diagnostics",
            "{not json",
            "[1, 2, 3]",
            '"just a string"',
            "",
            "   ",
            {"type": "assistant.delta", "text": "hi"},
            {"type": "turn.completed"},
        ),
    )

    assert result.ok is True
    assert result.assistant_text == "hi"


def test_session_id_is_taken_from_first_record_that_has_one() -> None:
    result = parse_turn_output(
        _stream(
            {"type": "turn.started"},
            {"type": "session.created", "payload": {"conversation_id": "c-1"}},
            {"type": "thread.started", "thread_id": "t-late"},
            {"type": "turn.completed"},
        ),
    )

    assert result.session_id == "c-1"


def test_find_string_value_prefers_own_keys_then_document_order() -> None:
    record = {
        "a": {"session_id": "nested-first"},
        "b": {"session_id": "nested-second"},
        "thread_id": "top-level",
    }

    assert find_string_value(record, SESSION_ID_KEYS) == "top-level"
    del record["thread_id"]
    assert find_string_value(record, SESSION_ID_KEYS) == "nested-first"


def test_find_string_value_ignores_empty_and_non_string_values() -> None:
    record = {
        "session_id": "",
        "thread_id": 42,
        "items": [{"conversation_id": None}, {"conversation_id": "c-9"}],
    }

    assert find_string_value(record, SESSION_ID_KEYS) == "c-9"
    assert find_string_value({"other": "x"}, SESSION_ID_KEYS) is None


def test_find_string_value_handles_deep_nesting() -> None:
    value: dict[str, object] = {"session_id": "deep"}
    for _ in range(5000):
        value = {"child": value}

    assert find_string_value(value, SESSION_ID_KEYS) == "deep"


def test_message_records_with_nested_content() -> None:
    result = parse_turn_output(
        _stream(
            {
                "type": "assistant.message",
                "role": "assistant",
                "content": [
                    {"type": "text", "text": "one "},
                    {"type": "group", "content": [{"type": "output_text", "text": "two"}]},
                    {"type": "output_text", "text": "   "},
                    {"type": "image", "text": "ignored"},
                ],
            },
            {"type": "message", "role": "user", "content": [{"type": "text", "text": "nope"}]},
            {"type": "turn.completed"},
        ),
    )

    assert result.assistant_text == "one two"


def test_non_assistant_response_items_are_ignored() -> None:
    result = parse_turn_output(
        _stream(
            {
                "type": "response_item",
                "payload": {
                    "type": "message",
                    "role": "user",
                    "content": [{"type": "input_text", "text": "question"}],
                },
            },
            {"type": "turn.completed"},
        ),
    )

    assert result.ok is True
    assert result.assistant_text is None


def test_delta_field_precedence_depends_on_record_kind() -> None:
    result = parse_turn_output(
        _stream(
            {"type": "turn.output_text.delta", "delta": "x", "text": "ignored"},
            {"type": "assistant", "text": "y", "delta": "ignored"},
            {"type": "response.output_text.done", "delta": " ", "text": "z"},
            {"type": "turn.completed"},
        ),
    )

    assert result.assistant_text == "xyz"


def test_assistant_text_is_trimmed_and_line_endings_normalized() -> None:
    result = parse_turn_output(
        _stream(
            _assistant_item("\n  line one\r\nline two  \n"),
            {"type": "turn.completed"},
        ),
    )

    assert result.assistant_text == "line one\nline two"


def test_read_events_classifies_type_tags() -> None:
    events = read_events(_stream({"type": "turn.completed"}, {"type": 5}, {"no": "type"}))

    assert [event.kind for event in events] == [
        EventKind.TURN_COMPLETED,
        EventKind.UNKNOWN,
        EventKind.UNKNOWN,
    ]
    assert events[1].type_tag == ""


def test_stream_event_get_object_rejects_non_objects() -> None:
    event = StreamEvent.from_record({"type": "error", "error": "text"})

    assert event.get_object("error") is None
    assert event.get("error") == "text"


def test_single_assistant_message_turn() -> None:
    result = parse_turn_output(
        _stream(
            {"type": "thread.started", "thread_id": "t1"},
            _assistant_item("Hi"),
            {"type": "turn.completed"},
        ),
    )

    assert result.to_dict() == {
        "ok": True,
        "assistantText": "Hi",
        "sessionId": "t1",
        "error": None,
        "failureClass": None,
    }


def test_raw_line_separator_characters_stay_inside_json_strings() -> None:
    for text in ("a\u2028b", "c\u2029d", "x\x85y"):
        item = json.dumps(_assistant_item(text), ensure_ascii=False)
        assert text in item

        result = parse_turn_output(
            _stream(
                {"type": "thread.started", "thread_id": "t1"},
                {"type": "response.output_text.delta", "delta": "delta text"},
                item,
                {"type": "turn.completed"},
            ),
        )

        assert result.ok is True
        assert result.assistant_text == text
        assert result.session_id == "t1"


def test_turn_ended_with_other_status_ignores_nested_turn_status() -> None:
    result = parse_turn_output(
        _stream({"type": "turn.ended", "status": "interrupted", "turn": {"status": "completed"}}),
    )

    assert result.ok is False
    assert result.error == MISSING_COMPLETION_ERROR
