from __future__ import annotations

import allure
import pytest

from deckgen.errors import GenerationFailure
from deckgen.generation.pipeline import GenerationPipeline
from deckgen.queue.models import DeckGenerationJob, FailureClass, GeneratedCard, Tone

pytestmark = [
    allure.epic("Card Generation"),
    allure.feature("Generation Pipeline"),
]

_JOB = DeckGenerationJob(
    job_id="job-1",
    deck_id="deck-1",
    user_id="user-1",
    deck_name="History",
    deck_subject="Europe",
    content="Rome was not built in a day.",
    goal="trivia night",
    tone=None,
)


def _cards(count: int) -> list[GeneratedCard]:
    return [GeneratedCard(question=f"Q{index}", answer=f"A{index}") for index in range(count)]


def _transient() -> GenerationFailure:
    return GenerationFailure(
        "rate limited",
        failure_class=FailureClass.BACKEND_TRANSIENT,
        transient=True,
    )


def test_generate_returns_cards_and_builds_request(scripted_generator) -> None:
    generator = scripted_generator(_cards(2))
    pipeline = GenerationPipeline(generator, timeout_seconds=42, max_cards=10)

    cards = pipeline.generate(_JOB)

    assert [card.question for card in cards] == ["Q0", "Q1"]
    request = generator.requests[0]
    assert request.deck_name == "History"
    assert request.deck_subject == "Europe"
    assert request.goal == "trivia night"
    assert request.tone == Tone.STANDARD
    assert request.timeout_seconds == 42
    assert request.max_cards == 10
    assert request.attempt == 1


def test_generate_caps_cards(scripted_generator) -> None:
    pipeline = GenerationPipeline(scripted_generator(_cards(5)), max_cards=3)

    assert len(pipeline.generate(_JOB)) == 3


def test_empty_result_fails_without_retry(scripted_generator) -> None:
    generator = scripted_generator([])
    pipeline = GenerationPipeline(generator, max_attempts=3, sleep=lambda _: None)

    with pytest.raises(GenerationFailure) as error:
        pipeline.generate(_JOB)

    assert error.value.failure_class == FailureClass.EMPTY_RESULT
    assert len(generator.requests) == 1


def test_transient_failures_retry_with_bounded_backoff(scripted_generator) -> None:
    delays: list[float] = []
    generator = scripted_generator(_transient(), _transient(), _cards(1))
    pipeline = GenerationPipeline(
        generator,
        max_attempts=3,
        retry_base_seconds=2.0,
        retry_max_seconds=3.0,
        sleep=delays.append,
    )

    cards = pipeline.generate(_JOB)

    assert len(cards) == 1
    assert [request.attempt for request in generator.requests] == [1, 2, 3]
    assert len(delays) == 2
    assert 0 <= delays[0] <= 2.0
    assert 0 <= delays[1] <= 3.0


def test_transient_failures_stop_after_max_attempts(scripted_generator) -> None:
    generator = scripted_generator(_transient())
    pipeline = GenerationPipeline(generator, max_attempts=2, sleep=lambda _: None)

    with pytest.raises(GenerationFailure) as error:
        pipeline.generate(_JOB)

    assert error.value.failure_class == FailureClass.BACKEND_TRANSIENT
    assert len(generator.requests) == 2


def test_non_retryable_failure_fails_immediately(scripted_generator) -> None:
    generator = scripted_generator(
        GenerationFailure("bad key", failure_class=FailureClass.ACCESS_OR_AUTH),
    )
    pipeline = GenerationPipeline(generator, max_attempts=5, sleep=lambda _: None)

    with pytest.raises(GenerationFailure) as error:
        pipeline.generate(_JOB)

    assert error.value.failure_class == FailureClass.ACCESS_OR_AUTH
    assert len(generator.requests) == 1
