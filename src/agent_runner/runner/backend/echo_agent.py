"""Local stand-in for ``codex exec --json`` used by integration tests.

Accepts the same argument surface as the codex CLI, ignores the flags, and
prints a JSON-lines turn that echoes the prompt back. A few environment
variables steer it into the failure paths:

* ``ECHO_AGENT_EXIT_CODE``: write a diagnostic and exit with this status;
* ``ECHO_AGENT_FAIL``: emit ``turn.failed`` with this message;
* ``ECHO_AGENT_CLOSE_SENTINEL``: touch this path after answering.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from uuid import uuid4

_OPTIONS_WITH_VALUE = {"--sandbox", "--model", "--add-dir", "--config", "-m", "-c"}


def parse_positionals(argv: list[str]) -> tuple[str | None, str]:
    """Return ``(resumed session id, prompt)`` from a codex argument list."""

    positionals: list[str] = []
    skip_next = False
    for arg in argv:
        if skip_next:
            skip_next = False
            continue
        if arg in _OPTIONS_WITH_VALUE:
            skip_next = True
            continue
        if arg.startswith("-"):
            continue
        positionals.append(arg)

    if positionals and positionals[0] == "exec":
        positionals = positionals[1:]
    if len(positionals) >= 3 and positionals[0] == "resume":  # noqa: PLR2004
        return positionals[1], positionals[2]
    return None, positionals[-1] if positionals else ""


def _emit(event: dict[str, object]) -> None:
    sys.stdout.write(json.dumps(event) + "\n")


def main(argv: list[str] | None = None) -> int:
    """Answer one turn in the codex event format."""

    session_id, prompt = parse_positionals(sys.argv[1:] if argv is None else argv)
    print(f"echo agent: prompt of {len(prompt)} chars", file=sys.stderr)

    exit_code = int(os.getenv("ECHO_AGENT_EXIT_CODE", "0"))
    if exit_code:
        print("echo agent: forced failure", file=sys.stderr)
        return exit_code

    thread_id = session_id or f"echo-{uuid4().hex[:12]}"
    _emit({"type": "thread.started", "thread_id": thread_id})
    _emit({"type": "turn.started"})
    print("not a protocol line")

    failure = os.getenv("ECHO_AGENT_FAIL")
    if failure:
        _emit({"type": "turn.failed", "error": {"message": failure}})
    else:
        _emit(
            {
                "type": "response_item",
                "payload": {
                    "type": "message",
                    "role": "assistant",
                    "content": [{"type": "output_text", "text": f"echo: {prompt}"}],
                },
            },
        )
        _emit({"type": "turn.completed", "usage": {"input_tokens": len(prompt)}})

    sentinel = os.getenv("ECHO_AGENT_CLOSE_SENTINEL")
    if sentinel:
        Path(sentinel).touch()
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
