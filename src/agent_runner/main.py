"""CLI entrypoint for agent-runner."""

import sys
from pathlib import Path

import rich_click as click

from agent_runner import __version__
from agent_runner.runner.controllers import (
    CloseCommand,
    ParseCommand,
    RunCommand,
    RunnerCliController,
    SendCommand,
)

click.rich_click.USE_MARKDOWN = True
RUNNER_CONTROLLER = RunnerCliController()


@click.group()
@click.version_option(version=__version__, prog_name="agent-runner")
def agent_runner() -> None:
    """Codex turn runner."""


@agent_runner.command("run")
@click.option(
    "--input",
    "input_file",
    type=click.File("rb"),
    default="-",
    show_default=True,
    help="Initial input JSON document; `-` reads stdin until EOF.",
)
@click.option(
    "--workspace-root",
    type=click.Path(path_type=Path),
    default=None,
    help="Workspace mount root. Defaults to AGENT_RUNNER_WORKSPACE_ROOT or /workspace.",
)
def run(input_file, workspace_root: Path | None) -> None:
    """Run agent turns until the host closes the session.

    Results are written to stdout between output markers; diagnostics go to stderr.
    """

    raw_input = input_file.read()
    try:
        status = RUNNER_CONTROLLER.run(
            RunCommand(raw_input=raw_input, workspace_root=workspace_root),
            stdout=sys.stdout,
            stderr=sys.stderr,
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    sys.exit(status)


@agent_runner.command("parse")
@click.argument("events_file", type=click.File("r", encoding="utf-8"), default="-")
def parse(events_file) -> None:
    """Parse a captured `codex exec --json` stream and print the turn result."""

    result = RUNNER_CONTROLLER.parse(ParseCommand(stdout_text=events_file.read()))
    _emit_lines(result.lines)
    if not result.success:
        sys.exit(1)


@agent_runner.command("send")
@click.option("--text", required=True, help="Follow-up message text.")
@click.option("--workspace-root", type=click.Path(path_type=Path), default=None)
def send(text: str, workspace_root: Path | None) -> None:
    """Queue a follow-up message for a running session."""

    try:
        lines = RUNNER_CONTROLLER.send(SendCommand(text=text, workspace_root=workspace_root))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@agent_runner.command("close")
@click.option("--workspace-root", type=click.Path(path_type=Path), default=None)
def close(workspace_root: Path | None) -> None:
    """Ask a running session to exit after its current turn."""

    _emit_lines(RUNNER_CONTROLLER.close(CloseCommand(workspace_root=workspace_root)))


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_runner()
