"""Subprocess backend that runs one codex ``exec --json`` turn."""

from __future__ import annotations

import asyncio
import codecs
import json
import logging
import os
import shlex
from collections.abc import Callable, Mapping
from pathlib import Path

from agent_runner.config import CallbackServerSettings, CodexSettings, WorkspaceSettings
from agent_runner.runner.backend.base import ProcessOutput, TurnRequest
from agent_runner.runner.contracts import RunInput
from agent_runner.runner.errors import (
    ProcessExitError,
    ProcessLaunchError,
    ProtocolFatalError,
    TurnError,
)
from agent_runner.runner.events import parse_turn_output
from agent_runner.runner.models import TurnResult
from agent_runner.runner.sanitization import diagnostic_tail

logger = logging.getLogger(__name__)

MODEL_ENV_VARS = ("CODEX_MODEL", "OPENAI_MODEL")
CANONICAL_API_KEY_VAR = "CODEX_API_KEY"
FALLBACK_API_KEY_VAR = "OPENAI_API_KEY"

_READ_CHUNK_BYTES = 64 * 1024


class CodexBackend:
    """Spawn the codex CLI for one turn and reduce its event stream to a result."""

    def __init__(
        self,
        *,
        workspace: WorkspaceSettings,
        codex: CodexSettings,
        callback: CallbackServerSettings,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.workspace = workspace
        self.codex = codex
        self.callback = callback
        self._base_env = base_env

    async def run_turn(self, request: TurnRequest) -> TurnResult:
        try:
            return await self._run(request)
        except TurnError as error:
            return TurnResult.failure(
                error=str(error),
                session_id=error.session_id,
                failure_class=error.failure_class,
            )

    async def _run(self, request: TurnRequest) -> TurnResult:
        base_env = os.environ if self._base_env is None else self._base_env
        env = build_codex_env(base_env, request.run_input.secrets)
        args = build_codex_args(
            prompt=request.prompt,
            session_id=request.session_id,
            run_input=request.run_input,
            workspace=self.workspace,
            codex=self.codex,
            callback=self.callback,
            model=resolve_model(env),
        )
        argv = [*self.codex.command_argv(), *args]
        logger.info("Running: %s <prompt: %d chars>", shlex.join(argv[:-1]), len(request.prompt))

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(self.workspace.group_dir),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as error:
            raise ProcessLaunchError(f"Failed to start {argv[0]}: {error}") from error

        output = await collect_process_output(process, on_stderr_line=_log_stderr_line)
        if output.exit_code != 0:
            tail = diagnostic_tail(
                output.stderr,
                max_chars=self.codex.diagnostic_tail_chars,
                secrets=tuple(request.run_input.secrets.values()),
            )
            raise ProcessExitError(
                f"codex exited with code {output.exit_code}: {tail or 'no stderr'}",
                exit_code=output.exit_code,
            )

        parsed = parse_turn_output(output.stdout)
        if not parsed.ok:
            raise ProtocolFatalError(
                parsed.error or "Codex turn failed without error message",
                session_id=parsed.session_id,
            )
        return parsed


def build_codex_env(base_env: Mapping[str, str], secrets: Mapping[str, str]) -> dict[str, str]:
    """Host environment overlaid with secrets; the fallback API key is promoted when needed."""

    env = {**base_env, **secrets}
    if not env.get(CANONICAL_API_KEY_VAR) and env.get(FALLBACK_API_KEY_VAR):
        env[CANONICAL_API_KEY_VAR] = env[FALLBACK_API_KEY_VAR]
    return env


def resolve_model(env: Mapping[str, str]) -> str | None:
    for name in MODEL_ENV_VARS:
        value = env.get(name, "").strip()
        if value:
            return value
    return None


def collect_add_dirs(run_input: RunInput, workspace: WorkspaceSettings) -> list[str]:
    """Directories the sandboxed agent may write to, deduplicated in order."""

    dirs: list[Path] = [workspace.group_dir, workspace.ipc_dir]
    shared_dir = workspace.project_dir if run_input.is_main else workspace.global_dir
    if shared_dir.is_dir():
        dirs.append(shared_dir)
    if workspace.extra_dir.is_dir():
        dirs.extend(sorted(entry for entry in workspace.extra_dir.iterdir() if entry.is_dir()))
    return list(dict.fromkeys(str(path) for path in dirs))


def build_config_overrides(run_input: RunInput, callback: CallbackServerSettings) -> list[str]:
    """``--config`` values declaring the callback MCP server and its session context."""

    prefix = f"mcp_servers.{callback.name}"
    return [
        f"{prefix}.command={json.dumps(callback.command)}",
        f"{prefix}.args={json.dumps(list(callback.args))}",
        f"{prefix}.env.AGENT_RUNNER_CHAT_JID={json.dumps(run_input.chat_jid)}",
        f"{prefix}.env.AGENT_RUNNER_GROUP_FOLDER={json.dumps(run_input.group_folder)}",
        f"{prefix}.env.AGENT_RUNNER_IS_MAIN={json.dumps('1' if run_input.is_main else '0')}",
    ]


def build_codex_args(  # noqa: PLR0913
    *,
    prompt: str,
    session_id: str | None,
    run_input: RunInput,
    workspace: WorkspaceSettings,
    codex: CodexSettings,
    callback: CallbackServerSettings,
    model: str | None,
) -> list[str]:
    args = ["exec", "--json", "--skip-git-repo-check", "--sandbox", codex.sandbox_mode]
    if model:
        args.extend(["--model", model])
    for directory in collect_add_dirs(run_input, workspace):
        args.extend(["--add-dir", directory])
    for override in build_config_overrides(run_input, callback):
        args.extend(["--config", override])

    if session_id:
        args.extend(["resume", session_id, prompt])
    else:
        args.append(prompt)
    return args


async def collect_process_output(
    process: asyncio.subprocess.Process,
    *,
    on_stderr_line: Callable[[str], None],
) -> ProcessOutput:
    """Drain stdout and stderr concurrently, then wait for exit."""

    assert process.stdout is not None
    assert process.stderr is not None
    stdout_bytes, stderr_text = await asyncio.gather(
        _read_all(process.stdout),
        _forward_lines(process.stderr, on_stderr_line),
    )
    exit_code = await process.wait()
    return ProcessOutput(
        exit_code=exit_code,
        stdout=stdout_bytes.decode("utf-8", errors="replace"),
        stderr=stderr_text,
    )


async def _read_all(stream: asyncio.StreamReader) -> bytes:
    chunks: list[bytes] = []
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


async def _forward_lines(
    stream: asyncio.StreamReader,
    on_line: Callable[[str], None],
) -> str:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    collected: list[str] = []
    pending = ""
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        text = decoder.decode(chunk, final=not chunk)
        collected.append(text)
        pending += text
        *lines, pending = pending.split("\n")
        for line in lines:
            if line.strip():
                on_line(line.rstrip())
        if not chunk:
            break
    if pending.strip():
        on_line(pending.rstrip())
    return "".join(collected)


def _log_stderr_line(line: str) -> None:
    logger.info("codex: %s", line)
