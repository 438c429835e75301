from __future__ import annotations

import allure

from deckgen.generation.failure_classifier import classify_generator_failure
from deckgen.queue.models import FailureClass

pytestmark = [
    allure.epic("Card Generation"),
    allure.feature("Failure Classification"),
]


def test_classifier_prefers_billing_over_transient_exit_code() -> None:
    classified = classify_generator_failure(
        exit_code=137,
        stdout="",
        stderr="Quota reached for this project",
        transient_exit_codes=(137, 143),
    )
    assert classified.failure_class == FailureClass.BILLING_OR_QUOTA
    assert classified.matched_rule == "billing_or_quota"
    assert classified.matched_pattern == "quota"
    assert classified.transient is False


def test_rate_limit_is_transient_even_when_it_mentions_usage() -> None:
    classified = classify_generator_failure(
        exit_code=1,
        stdout="",
        stderr="429 Too Many Requests: usage limit window, please retry",
        transient_exit_codes=(137, 143),
    )
    assert classified.failure_class == FailureClass.BACKEND_TRANSIENT
    assert classified.matched_rule == "rate_limit"
    assert classified.transient is True


def test_classifier_maps_model_unavailable() -> None:
    classified = classify_generator_failure(
        exit_code=1,
        stdout="",
        stderr="Invalid model requested",
        transient_exit_codes=(137, 143),
    )
    assert classified.failure_class == FailureClass.MODEL_NOT_AVAILABLE


def test_classifier_maps_auth_errors() -> None:
    classified = classify_generator_failure(
        exit_code=1,
        stdout="Error: Invalid API key provided",
        stderr="",
        transient_exit_codes=(137, 143),
    )
    assert classified.failure_class == FailureClass.ACCESS_OR_AUTH
    assert classified.transient is False


def test_classifier_maps_network_errors_to_transient() -> None:
    classified = classify_generator_failure(
        exit_code=2,
        stdout="",
        stderr="curl: (6) Could not resolve host: api.example.com",
        transient_exit_codes=(137, 143),
    )
    assert classified.failure_class == FailureClass.BACKEND_TRANSIENT
    assert classified.matched_rule == "network"


def test_classifier_uses_transient_exit_codes_without_patterns() -> None:
    classified = classify_generator_failure(
        exit_code=143,
        stdout="",
        stderr="terminated",
        transient_exit_codes=(137, 143),
    )
    assert classified.failure_class == FailureClass.BACKEND_TRANSIENT
    assert classified.matched_rule == "transient_exit_code"
    assert classified.matched_pattern is None


def test_classifier_falls_back_to_non_retryable() -> None:
    classified = classify_generator_failure(
        exit_code=1,
        stdout="",
        stderr="segmentation fault",
        transient_exit_codes=(137, 143),
    )
    assert classified.failure_class == FailureClass.BACKEND_NON_RETRYABLE
    assert classified.matched_rule == "fallback_non_retryable"
