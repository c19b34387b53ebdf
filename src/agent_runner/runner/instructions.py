"""Instruction files prepended to the first prompt of a run."""

from __future__ import annotations

import logging
from pathlib import Path

from agent_runner.config import WorkspaceSettings
from agent_runner.runner.contracts import RunInput

logger = logging.getLogger(__name__)

INSTRUCTION_FILE_NAMES = ("AGENTS.md", "CLAUDE.md")
SCHEDULED_TASK_PREFIX = (
    "[SCHEDULED TASK - The following message was sent automatically "
    "and is not coming directly from the user or group.]"
)


def read_instruction_file(*paths: Path) -> str | None:
    """First non-empty (stripped) file content among ``paths``."""

    for path in paths:
        try:
            if not path.is_file():
                continue
            content = path.read_text("utf-8").strip()
        except (OSError, UnicodeDecodeError) as error:
            logger.debug("Skipping unreadable instruction file %s: %s", path, error)
            continue
        if content:
            return content
    return None


def build_instruction_context(run_input: RunInput, workspace: WorkspaceSettings) -> str | None:
    group_instructions = read_instruction_file(
        *(workspace.group_dir / name for name in INSTRUCTION_FILE_NAMES),
    )
    global_root = (
        workspace.project_dir / "groups" / "global" if run_input.is_main else workspace.global_dir
    )
    global_instructions = read_instruction_file(
        *(global_root / name for name in INSTRUCTION_FILE_NAMES),
    )

    sections: list[str] = []
    if global_instructions:
        sections.append(f"Global instructions:\n{global_instructions}")
    if group_instructions:
        sections.append(f"Group instructions:\n{group_instructions}")
    if not sections:
        return None
    return (
        "Use the following project instructions as high-priority context:\n\n"
        + "\n\n".join(sections)
    )


def build_initial_prompt(run_input: RunInput, workspace: WorkspaceSettings) -> str:
    """First-turn prompt: scheduled-task marker, then instruction context around it."""

    prompt = run_input.prompt
    if run_input.is_scheduled_task:
        prompt = f"{SCHEDULED_TASK_PREFIX}\n\n{prompt}"

    context = build_instruction_context(run_input, workspace)
    if context:
        prompt = f"{context}\n\nUser request:\n{prompt}"
    return prompt
