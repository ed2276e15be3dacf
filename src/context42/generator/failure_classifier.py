"""Deterministic classification of failed agent runs for the retry policy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

FAILURE_CLASSIFIER_VERSION = 1


class FailureClass(str, Enum):
    """Normalized failure classes used by the generator retry policy."""

    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    BACKEND_TRANSIENT = "backend_transient"
    BACKEND_NON_RETRYABLE = "backend_non_retryable"
    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"

    @property
    def retryable(self) -> bool:
        return self in {
            FailureClass.TIMEOUT,
            FailureClass.RATE_LIMITED,
            FailureClass.BACKEND_TRANSIENT,
        }


_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "resource_exhausted",
    "insufficient",
    "billing",
    "payment",
    "credits",
    "usage limit",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "permission denied",
    "invalid api key",
    "api key not valid",
    "authentication",
    "gemini_api_key",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "invalid model",
    "model is not available",
    "not available in your region",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "429",
    "please retry",
    "try again later",
)
_GENERIC_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "temporarily unavailable",
    "temporary failure",
    "connection reset",
    "network error",
    "could not resolve host",
    "503",
)


@dataclass(slots=True)
class GenerationFailure:
    """Normalized failure classification result."""

    failure_class: FailureClass
    matched_rule: str
    matched_pattern: str | None


def classify_generation_failure(
    *,
    exit_code: int,
    stdout: str,
    stderr: str,
    transient_exit_codes: tuple[int, ...] = (137, 143),
) -> GenerationFailure:
    """Classify a non-zero agent exit into a deterministic retry class."""

    haystack = f"{stderr}\n{stdout}".lower()

    rules: tuple[tuple[FailureClass, str, tuple[str, ...]], ...] = (
        (FailureClass.RATE_LIMITED, "rate_limit", _RATE_LIMIT_PATTERNS),
        (FailureClass.BILLING_OR_QUOTA, "billing_or_quota", _BILLING_OR_QUOTA_PATTERNS),
        (FailureClass.ACCESS_OR_AUTH, "access_or_auth", _ACCESS_OR_AUTH_PATTERNS),
        (FailureClass.MODEL_NOT_AVAILABLE, "model_not_available", _MODEL_NOT_AVAILABLE_PATTERNS),
    )
    for failure_class, rule, patterns in rules:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return GenerationFailure(
                failure_class=failure_class,
                matched_rule=rule,
                matched_pattern=pattern,
            )

    pattern = _first_match(haystack, _GENERIC_TRANSIENT_PATTERNS)
    if pattern is not None or exit_code in transient_exit_codes:
        return GenerationFailure(
            failure_class=FailureClass.BACKEND_TRANSIENT,
            matched_rule=(
                "transient_exit_code"
                if exit_code in transient_exit_codes and pattern is None
                else "generic_transient"
            ),
            matched_pattern=pattern,
        )

    return GenerationFailure(
        failure_class=FailureClass.BACKEND_NON_RETRYABLE,
        matched_rule="fallback_non_retryable",
        matched_pattern=None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
