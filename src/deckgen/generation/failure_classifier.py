"""Deterministic generator failure classification for retry policy."""

from __future__ import annotations

from dataclasses import dataclass

from deckgen.queue.models import FailureClass

_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "429",
    "overloaded",
    "please retry",
    "try again later",
)
_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "resource_exhausted",
    "insufficient",
    "billing",
    "payment",
    "credit balance",
    "usage limit",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "permission denied",
    "invalid api key",
    "authentication",
    "not logged in",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "invalid model",
    "model is not available",
)
_NETWORK_PATTERNS: tuple[str, ...] = (
    "temporarily unavailable",
    "temporary failure",
    "connection reset",
    "connection refused",
    "network error",
    "could not resolve host",
    "timed out",
)

_RULES: tuple[tuple[str, FailureClass, tuple[str, ...]], ...] = (
    ("rate_limit", FailureClass.BACKEND_TRANSIENT, _RATE_LIMIT_PATTERNS),
    ("billing_or_quota", FailureClass.BILLING_OR_QUOTA, _BILLING_OR_QUOTA_PATTERNS),
    ("access_or_auth", FailureClass.ACCESS_OR_AUTH, _ACCESS_OR_AUTH_PATTERNS),
    ("model_not_available", FailureClass.MODEL_NOT_AVAILABLE, _MODEL_NOT_AVAILABLE_PATTERNS),
    ("network", FailureClass.BACKEND_TRANSIENT, _NETWORK_PATTERNS),
)

RETRYABLE_FAILURE_CLASSES = frozenset({FailureClass.TIMEOUT, FailureClass.BACKEND_TRANSIENT})


@dataclass(slots=True, frozen=True)
class GeneratorFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    matched_rule: str
    matched_pattern: str | None = None

    @property
    def transient(self) -> bool:
        return self.failure_class in RETRYABLE_FAILURE_CLASSES


def classify_generator_failure(
    *,
    exit_code: int,
    stdout: str,
    stderr: str,
    transient_exit_codes: tuple[int, ...],
) -> GeneratorFailureClassification:
    """Classify a non-zero, non-timeout generator exit."""

    haystack = f"{stderr}\n{stdout}".lower()
    for rule, failure_class, patterns in _RULES:
        for pattern in patterns:
            if pattern in haystack:
                return GeneratorFailureClassification(
                    failure_class=failure_class,
                    matched_rule=rule,
                    matched_pattern=pattern,
                )

    if exit_code in transient_exit_codes:
        return GeneratorFailureClassification(
            failure_class=FailureClass.BACKEND_TRANSIENT,
            matched_rule="transient_exit_code",
        )
    return GeneratorFailureClassification(
        failure_class=FailureClass.BACKEND_NON_RETRYABLE,
        matched_rule="fallback_non_retryable",
    )
