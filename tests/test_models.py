from __future__ import annotations

import allure
import pytest

from deckgen.queue.models import (
    DeckGenerationJob,
    Difficulty,
    JobRequest,
    JobState,
    JobStatus,
    Tone,
    normalize_difficulty,
    normalize_tone,
)

pytestmark = [
    allure.epic("Deck Generation Queue"),
    allure.feature("Job Records"),
]


def test_job_payload_uses_camel_case_wire_keys() -> None:
    job = DeckGenerationJob.from_request(
        JobRequest(
            deck_id="deck-1",
            user_id="user-1",
            deck_name="Biology",
            content="Cells divide.",
            deck_subject="Science",
            goal="exam",
            tone=Tone.DEEP,
        ),
        job_id="job-1",
    )

    assert job.to_payload() == {
        "jobId": "job-1",
        "deckId": "deck-1",
        "deckName": "Biology",
        "deckSubject": "Science",
        "userId": "user-1",
        "content": "Cells divide.",
        "goal": "exam",
        "tone": "deep",
    }
    assert DeckGenerationJob.from_payload(job.to_payload()) == job


def test_job_payload_omits_absent_optional_fields() -> None:
    job = DeckGenerationJob(
        job_id="job-1",
        deck_id="deck-1",
        user_id="user-1",
        deck_name="Biology",
        deck_subject="General",
        content="Cells divide.",
    )

    payload = job.to_payload()
    assert "goal" not in payload
    assert "tone" not in payload


def test_from_payload_defaults_subject_and_normalizes_tone() -> None:
    job = DeckGenerationJob.from_payload(
        {
            "jobId": "job-1",
            "deckId": "deck-1",
            "userId": "user-1",
            "deckName": "Biology",
            "content": "Cells divide.",
            "goal": "",
            "tone": "loud",
        },
    )

    assert job.deck_subject == "General"
    assert job.goal is None
    assert job.tone == Tone.STANDARD


def test_from_payload_rejects_missing_required_fields() -> None:
    with pytest.raises(ValueError, match="deckId, userId"):
        DeckGenerationJob.from_payload({"jobId": "job-1", "deckName": "x", "content": "y"})


def test_from_payload_rejects_non_object() -> None:
    with pytest.raises(TypeError):
        DeckGenerationJob.from_payload(["jobId", "job-1"])


def test_completed_status_requires_cards() -> None:
    with pytest.raises(ValueError, match="at least one card"):
        JobStatus.completed([])


def test_status_to_dict_only_carries_cards_when_completed() -> None:
    assert JobStatus.queued().to_dict() == {
        "state": "queued",
        "message": "Content submitted to the generation queue.",
    }
    assert JobStatus.failed().to_dict() == {
        "state": "failed",
        "message": "Failed to process flashcard generation.",
    }
    assert JobState.FAILED.is_terminal
    assert not JobState.PROCESSING.is_terminal


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("concise", Tone.CONCISE),
        ("deep", Tone.DEEP),
        ("standard", Tone.STANDARD),
        (None, Tone.STANDARD),
        ("shouty", Tone.STANDARD),
    ],
)
def test_normalize_tone(raw, expected) -> None:
    assert normalize_tone(raw) == expected


def test_normalize_difficulty_defaults_to_medium() -> None:
    assert normalize_difficulty(" Hard ") == Difficulty.HARD
    assert normalize_difficulty("impossible") == Difficulty.MEDIUM
    assert normalize_difficulty(None) == Difficulty.MEDIUM
