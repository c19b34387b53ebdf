"""Codex turn runner: drives an external agent process through a polled IPC mailbox."""

__version__ = "0.1.0"
