"""Domain models for deck generation jobs and their status."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

UNKNOWN_JOB_ID = "unknown"
DEFAULT_DECK_SUBJECT = "General"


class Tone(str, Enum):
    """Generation tone accepted by the card generator."""

    CONCISE = "concise"
    STANDARD = "standard"
    DEEP = "deep"


class Difficulty(str, Enum):
    """Card difficulty tiers."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class JobState(str, Enum):
    """Job lifecycle states."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {JobState.COMPLETED, JobState.FAILED}


class FailureClass(str, Enum):
    """Normalized failure classes used by retry policy."""

    TIMEOUT = "timeout"
    BACKEND_TRANSIENT = "backend_transient"
    BACKEND_NON_RETRYABLE = "backend_non_retryable"
    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"
    OUTPUT_INVALID = "output_invalid"
    EMPTY_RESULT = "empty_result"


QUEUED_MESSAGE = "Content submitted to the generation queue."
PROCESSING_MESSAGE = "Processing generation on the queue..."
COMPLETED_MESSAGE = "Cards generated and added to the deck."
FAILED_MESSAGE = "Failed to process flashcard generation."


@dataclass(slots=True, frozen=True)
class CardPreview:
    """Question/answer pair reported back to status pollers."""

    question: str
    answer: str


@dataclass(slots=True, frozen=True)
class JobStatus:
    """Current status of one job; `cards` is only populated when completed."""

    state: JobState
    message: str
    cards: tuple[CardPreview, ...] = ()

    @classmethod
    def queued(cls, message: str = QUEUED_MESSAGE) -> JobStatus:
        return cls(state=JobState.QUEUED, message=message)

    @classmethod
    def processing(cls, message: str = PROCESSING_MESSAGE) -> JobStatus:
        return cls(state=JobState.PROCESSING, message=message)

    @classmethod
    def completed(
        cls,
        cards: list[CardPreview] | tuple[CardPreview, ...],
        message: str = COMPLETED_MESSAGE,
    ) -> JobStatus:
        if not cards:
            raise ValueError("Completed status requires at least one card.")
        return cls(state=JobState.COMPLETED, message=message, cards=tuple(cards))

    @classmethod
    def failed(cls, message: str = FAILED_MESSAGE) -> JobStatus:
        return cls(state=JobState.FAILED, message=message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"state": self.state.value, "message": self.message}
        if self.state == JobState.COMPLETED:
            payload["cards"] = [
                {"question": card.question, "answer": card.answer} for card in self.cards
            ]
        return payload


@dataclass(slots=True, frozen=True)
class GeneratedCard:
    """One card produced by the generation pipeline."""

    question: str
    answer: str
    difficulty: Difficulty = Difficulty.MEDIUM
    tags: tuple[str, ...] = ()

    def preview(self) -> CardPreview:
        return CardPreview(question=self.question, answer=self.answer)


@dataclass(slots=True, frozen=True)
class JobRequest:
    """A generation job as submitted by a caller, before an id is assigned."""

    deck_id: str
    user_id: str
    deck_name: str
    content: str
    deck_subject: str = DEFAULT_DECK_SUBJECT
    goal: str | None = None
    tone: Tone | None = None


@dataclass(slots=True, frozen=True)
class DeckGenerationJob:
    """Immutable job record carried in the broker message body."""

    job_id: str
    deck_id: str
    user_id: str
    deck_name: str
    deck_subject: str
    content: str
    goal: str | None = None
    tone: Tone | None = None

    @classmethod
    def from_request(cls, request: JobRequest, *, job_id: str) -> DeckGenerationJob:
        return cls(
            job_id=job_id,
            deck_id=request.deck_id,
            user_id=request.user_id,
            deck_name=request.deck_name,
            deck_subject=request.deck_subject,
            content=request.content,
            goal=request.goal,
            tone=request.tone,
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON message body."""

        payload: dict[str, Any] = {
            "jobId": self.job_id,
            "deckId": self.deck_id,
            "deckName": self.deck_name,
            "deckSubject": self.deck_subject,
            "userId": self.user_id,
            "content": self.content,
        }
        if self.goal is not None:
            payload["goal"] = self.goal
        if self.tone is not None:
            payload["tone"] = self.tone.value
        return payload

    @classmethod
    def from_payload(cls, payload: object) -> DeckGenerationJob:
        """Deserialize a message body; raises `ValueError` on missing fields."""

        if not isinstance(payload, dict):
            raise TypeError("Job payload must be a JSON object.")
        missing = [
            key
            for key in ("jobId", "deckId", "userId", "deckName", "content")
            if not isinstance(payload.get(key), str) or not payload[key]
        ]
        if missing:
            raise ValueError(f"Job payload is missing required fields: {', '.join(missing)}")
        goal = payload.get("goal")
        subject = payload.get("deckSubject")
        return cls(
            job_id=payload["jobId"],
            deck_id=payload["deckId"],
            user_id=payload["userId"],
            deck_name=payload["deckName"],
            deck_subject=subject if isinstance(subject, str) and subject else DEFAULT_DECK_SUBJECT,
            content=payload["content"],
            goal=goal if isinstance(goal, str) and goal else None,
            tone=_tone_or_none(payload.get("tone")),
        )


@dataclass(slots=True)
class FlashcardRecord:
    """Row persisted by the result sink for one generated card."""

    card_id: str
    job_id: str
    user_id: str
    deck_id: str
    question: str
    answer: str
    difficulty: Difficulty = Difficulty.MEDIUM
    tags: list[str] = field(default_factory=list)
    status: str = "new"
    review_count: int = 0
    last_review_date: datetime | None = None


def normalize_tone(value: object) -> Tone:
    """Map any tone input to a supported tone, defaulting to standard."""

    if isinstance(value, Tone):
        return value
    if value in (Tone.CONCISE.value, Tone.DEEP.value):
        return Tone(value)
    return Tone.STANDARD


def normalize_difficulty(value: object) -> Difficulty:
    """Map any difficulty input to a supported tier, defaulting to medium."""

    if isinstance(value, Difficulty):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        for difficulty in Difficulty:
            if difficulty.value == normalized:
                return difficulty
    return Difficulty.MEDIUM


def _tone_or_none(value: object) -> Tone | None:
    if value is None:
        return None
    return normalize_tone(value)
