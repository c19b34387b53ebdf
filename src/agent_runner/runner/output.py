"""Marker-delimited result records on stdout."""

from __future__ import annotations

import json
import logging
from typing import TextIO

from agent_runner.runner.contracts import RunOutput

OUTPUT_START_MARKER = "---AGENT_RUNNER_OUTPUT_START---"
OUTPUT_END_MARKER = "---AGENT_RUNNER_OUTPUT_END---"

logger = logging.getLogger(__name__)


class OutputChannel:
    """Writes each record as start marker, one JSON line, end marker."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def emit(self, output: RunOutput) -> None:
        body = json.dumps(output.to_payload(), ensure_ascii=False)
        self._stream.write(f"{OUTPUT_START_MARKER}\n{body}\n{OUTPUT_END_MARKER}\n")
        self._stream.flush()


def extract_outputs(text: str) -> list[dict[str, object]]:
    """Recover every record payload between marker pairs, in order.

    Lines outside marker pairs are ignored; a pair whose body is not a JSON
    object is skipped.
    """

    payloads: list[dict[str, object]] = []
    body: list[str] | None = None
    for line in text.split("\n"):
        stripped = line.strip()
        if stripped == OUTPUT_START_MARKER:
            body = []
            continue
        if stripped == OUTPUT_END_MARKER:
            if body is not None:
                _append_payload(payloads, "\n".join(body))
            body = None
            continue
        if body is not None:
            body.append(line)
    return payloads


def _append_payload(payloads: list[dict[str, object]], raw: str) -> None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Skipping undecodable result record (%d chars)", len(raw))
        return
    if isinstance(parsed, dict):
        payloads.append(parsed)
