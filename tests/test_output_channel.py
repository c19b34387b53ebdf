from __future__ import annotations

import io
import json

import allure

from agent_runner.runner.contracts import RunOutput
from agent_runner.runner.output import (
    OUTPUT_END_MARKER,
    OUTPUT_START_MARKER,
    OutputChannel,
    extract_outputs,
)

pytestmark = [
    allure.epic("Session Loop"),
    allure.feature("Result Records"),
]


def test_emit_writes_one_json_line_between_markers() -> None:
    stream = io.StringIO()

    OutputChannel(stream).emit(RunOutput.success(result="héllo\nworld", session_id="t-1"))

    lines = stream.getvalue().splitlines()
    assert lines[0] == OUTPUT_START_MARKER
    assert lines[2] == OUTPUT_END_MARKER
    assert len(lines) == 3
    assert json.loads(lines[1]) == {
        "status": "success",
        "result": "héllo\nworld",
        "newSessionId": "t-1",
    }


def test_record_payload_shapes() -> None:
    assert RunOutput.heartbeat(session_id="t-1").to_payload() == {
        "status": "success",
        "result": None,
        "newSessionId": "t-1",
    }
    assert RunOutput.success(result=None, session_id=None).to_payload() == {
        "status": "success",
        "result": None,
    }
    assert RunOutput.failure(error="boom").to_payload() == {
        "status": "error",
        "result": None,
        "error": "boom",
    }
    assert RunOutput.failure(error="boom", session_id="t-2").to_payload()["newSessionId"] == "t-2"


def test_extract_outputs_ignores_noise_and_broken_records() -> None:
    stream = io.StringIO()
    channel = OutputChannel(stream)
    stream.write("log line before\n")
    channel.emit(RunOutput.success(result="one", session_id="t-1"))
    stream.write(f"{OUTPUT_START_MARKER}\n{{broken\n{OUTPUT_END_MARKER}\n")
    stream.write(f"{OUTPUT_END_MARKER}\n")
    channel.emit(RunOutput.failure(error="two", session_id="t-1"))
    stream.write(OUTPUT_START_MARKER + '\n{"unterminated": true}\n')

    payloads = extract_outputs(stream.getvalue())

    assert [payload.get("result") or payload.get("error") for payload in payloads] == [
        "one",
        "two",
    ]


def test_extract_outputs_keeps_raw_line_separators_in_results() -> None:
    stream = io.StringIO()
    OutputChannel(stream).emit(RunOutput.success(result="one\u2028two\x85three", session_id="t-1"))

    [payload] = extract_outputs(stream.getvalue())

    assert payload["result"] == "one\u2028two\x85three"
