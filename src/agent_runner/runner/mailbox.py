"""Filesystem-backed, polled, at-most-once mailbox for follow-up messages."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path
from uuid import uuid4

from agent_runner.runner.contracts import read_mailbox_message, render_mailbox_message
from agent_runner.runner.errors import MailboxRecordError

logger = logging.getLogger(__name__)


class IpcMailbox:
    """Message files are consumed in filename order and deleted on read, valid or not.

    A separate sentinel file asks the run to end; it is checked before any
    message on every poll and removed as soon as it is seen.
    """

    def __init__(
        self,
        input_dir: Path,
        *,
        poll_interval_seconds: float = 0.5,
        message_suffix: str = ".json",
        close_sentinel_name: str = "_close",
    ) -> None:
        self.input_dir = input_dir
        self.poll_interval_seconds = poll_interval_seconds
        self.message_suffix = message_suffix
        self.close_sentinel = input_dir / close_sentinel_name

    def prepare(self) -> None:
        """Create the mailbox directory and drop a sentinel left by an earlier run."""

        self.input_dir.mkdir(parents=True, exist_ok=True)
        self.clear_close_sentinel()

    def clear_close_sentinel(self) -> None:
        try:
            self.close_sentinel.unlink(missing_ok=True)
        except OSError as error:
            logger.warning("Could not remove stale close sentinel: %s", error)

    def should_close(self) -> bool:
        if not self.close_sentinel.exists():
            return False
        self.clear_close_sentinel()
        return True

    def drain(self) -> list[str]:
        """Consume every pending message file and return the valid texts in order."""

        try:
            self.input_dir.mkdir(parents=True, exist_ok=True)
            paths = sorted(
                path
                for path in self.input_dir.iterdir()
                if path.name.endswith(self.message_suffix) and path.is_file()
            )
        except OSError as error:
            logger.error("IPC drain error: %s", error)
            return []

        messages: list[str] = []
        for path in paths:
            try:
                messages.append(self._consume(path))
            except (MailboxRecordError, OSError, UnicodeDecodeError) as error:
                logger.warning("Failed to process input file %s: %s", path.name, error)
        return messages

    async def wait_for_message(self) -> str | None:
        """Poll until a message arrives (joined text) or close is requested (``None``)."""

        while True:
            if self.should_close():
                return None
            messages = self.drain()
            if messages:
                return "\n".join(messages)
            await asyncio.sleep(self.poll_interval_seconds)

    def post_message(self, text: str) -> Path:
        """Host side: publish one message atomically under a time-ordered name."""

        self.input_dir.mkdir(parents=True, exist_ok=True)
        name = f"{time.time_ns()}-{uuid4().hex[:8]}"
        target = self.input_dir / f"{name}{self.message_suffix}"
        staging = self.input_dir / f".{name}.tmp"
        staging.write_text(render_mailbox_message(text), "utf-8")
        os.replace(staging, target)
        return target

    def request_close(self) -> None:
        """Host side: ask the run to end after the current turn."""

        self.input_dir.mkdir(parents=True, exist_ok=True)
        self.close_sentinel.touch()

    def _consume(self, path: Path) -> str:
        try:
            raw = path.read_text("utf-8")
        finally:
            path.unlink(missing_ok=True)
        return read_mailbox_message(raw)
