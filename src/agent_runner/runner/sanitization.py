"""Redaction of agent diagnostics before they reach a result record."""

from __future__ import annotations

import re
from collections.abc import Callable

_Replacement = str | Callable[[re.Match[str]], str]

_REPLACEMENTS: tuple[tuple[re.Pattern[str], _Replacement], ...] = (
    (
        re.compile(r"(?i)\b(bearer)\s+[a-z0-9._\-]{8,}\b"),
        r"\1 [redacted-token]",
    ),
    (
        re.compile(r"(?i)\b(sk-[a-z0-9\-_]{8,})\b"),
        "[redacted-token]",
    ),
    (
        re.compile(
            r"(?i)\b(codex|openai|anthropic|agent_runner)[a-z0-9_]*_?(api_)?(key|token)\b"
            r"\s*[:=]\s*['\"]?[^'\" \n\r\t]+['\"]?",
        ),
        "[redacted-secret]",
    ),
    (
        re.compile(r"(?i)([?&](?:token|key|signature|auth)=[^&\s]+)"),
        lambda match: match.group(1).split("=")[0] + "=[redacted]",
    ),
)


def sanitize_excerpt(text: str, *, secrets: tuple[str, ...] = ()) -> str:
    """Redact known secret values and obvious token patterns."""

    redacted = text
    for secret in sorted(secrets, key=len, reverse=True):
        if len(secret) >= 4:  # noqa: PLR2004
            redacted = redacted.replace(secret, "[redacted-secret]")
    for pattern, replacement in _REPLACEMENTS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


def diagnostic_tail(text: str, *, max_chars: int, secrets: tuple[str, ...] = ()) -> str:
    """Last ``max_chars`` of a diagnostic stream, redacted; empty when nothing was written."""

    if max_chars <= 0:
        return ""
    return sanitize_excerpt(text, secrets=secrets)[-max_chars:]
