"""Wire contracts: initial run input, result records, mailbox messages."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from agent_runner.runner.errors import InputError, MailboxRecordError

MAILBOX_MESSAGE_TYPE = "message"


@dataclass(slots=True)
class RunInput:
    """Initial input document read once at startup."""

    prompt: str
    group_folder: str
    chat_jid: str
    is_main: bool
    session_id: str | None = None
    is_scheduled_task: bool = False
    assistant_name: str | None = None
    secrets: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class RunOutput:
    """One record of the result stream."""

    status: str
    result: str | None
    new_session_id: str | None = None
    error: str | None = None

    @classmethod
    def success(cls, *, result: str | None, session_id: str | None) -> RunOutput:
        return cls(status="success", result=result, new_session_id=session_id)

    @classmethod
    def heartbeat(cls, *, session_id: str | None) -> RunOutput:
        return cls(status="success", result=None, new_session_id=session_id)

    @classmethod
    def failure(cls, *, error: str, session_id: str | None = None) -> RunOutput:
        return cls(status="error", result=None, new_session_id=session_id, error=error)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status, "result": self.result}
        if self.new_session_id is not None:
            payload["newSessionId"] = self.new_session_id
        if self.error is not None:
            payload["error"] = self.error
        return payload


def read_run_input(raw: str | bytes) -> RunInput:
    """Deserialize and validate the initial input document."""

    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as error:
            raise InputError(f"input is not valid UTF-8: {error}") from error
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise InputError(f"input is not valid JSON: {error}") from error
    if not isinstance(payload, dict):
        raise InputError("input must be a JSON object")

    prompt = payload.get("prompt")
    group_folder = payload.get("groupFolder")
    chat_jid = payload.get("chatJid", "")
    is_main = payload.get("isMain", False)
    session_id = payload.get("sessionId")
    is_scheduled_task = payload.get("isScheduledTask", False)
    assistant_name = payload.get("assistantName")
    secrets = payload.get("secrets") or {}

    if not isinstance(prompt, str):
        raise InputError("input.prompt must be a string")
    if not isinstance(group_folder, str) or not group_folder.strip():
        raise InputError("input.groupFolder must be a non-empty string")
    if not isinstance(chat_jid, str):
        raise InputError("input.chatJid must be a string")
    if not isinstance(is_main, bool):
        raise InputError("input.isMain must be a boolean")
    if session_id is not None and not isinstance(session_id, str):
        raise InputError("input.sessionId must be a string when provided")
    if not isinstance(is_scheduled_task, bool):
        raise InputError("input.isScheduledTask must be a boolean")
    if assistant_name is not None and not isinstance(assistant_name, str):
        raise InputError("input.assistantName must be a string when provided")
    if not isinstance(secrets, dict) or not all(
        isinstance(key, str) and isinstance(value, str) for key, value in secrets.items()
    ):
        raise InputError("input.secrets must be an object of string values")

    return RunInput(
        prompt=prompt,
        group_folder=group_folder,
        chat_jid=chat_jid,
        is_main=is_main,
        session_id=session_id or None,
        is_scheduled_task=is_scheduled_task,
        assistant_name=assistant_name,
        secrets=dict(secrets),
    )


def read_mailbox_message(raw: str) -> str:
    """Validate one mailbox file body and return its text."""

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise MailboxRecordError(f"invalid JSON: {error}") from error
    if not isinstance(payload, dict):
        raise MailboxRecordError("message must be a JSON object")
    if payload.get("type") != MAILBOX_MESSAGE_TYPE:
        raise MailboxRecordError(f"unsupported message type: {payload.get('type')!r}")
    text = payload.get("text")
    if not isinstance(text, str) or not text:
        raise MailboxRecordError("message.text must be a non-empty string")
    return text


def render_mailbox_message(text: str) -> str:
    """Serialize one mailbox message body."""

    return json.dumps({"type": MAILBOX_MESSAGE_TYPE, "text": text}, ensure_ascii=False)
