"""Deterministic diagnosis of failed turns for host-side logs."""

from __future__ import annotations

from dataclasses import dataclass

from agent_runner.runner.models import FailureClass

_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "insufficient",
    "billing",
    "credits",
    "usage limit",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "permission denied",
    "invalid api key",
    "authentication",
    "401",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "model is not available",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "429",
)
_NETWORK_PATTERNS: tuple[str, ...] = (
    "stream disconnected",
    "connection reset",
    "temporarily unavailable",
    "network error",
    "could not resolve host",
)

_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("billing_or_quota", _BILLING_OR_QUOTA_PATTERNS),
    ("access_or_auth", _ACCESS_OR_AUTH_PATTERNS),
    ("model_not_available", _MODEL_NOT_AVAILABLE_PATTERNS),
    ("rate_limit", _RATE_LIMIT_PATTERNS),
    ("network", _NETWORK_PATTERNS),
)


@dataclass(slots=True, frozen=True)
class TurnFailureDiagnosis:
    """Failure class plus the first matching reason rule."""

    failure_class: FailureClass
    reason_code: str
    matched_pattern: str | None

    def describe(self) -> str:
        return f"class={self.failure_class.value} reason={self.reason_code}"


def classify_turn_failure(*, failure_class: FailureClass, error: str) -> TurnFailureDiagnosis:
    """Attach a reason code to a failed turn; rules are checked in priority order."""

    haystack = error.lower()
    for reason_code, patterns in _RULES:
        for pattern in patterns:
            if pattern in haystack:
                return TurnFailureDiagnosis(
                    failure_class=failure_class,
                    reason_code=reason_code,
                    matched_pattern=pattern,
                )
    return TurnFailureDiagnosis(
        failure_class=failure_class,
        reason_code="unclassified",
        matched_pattern=None,
    )
