"""File-based contracts between the pipeline and card generators."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from deckgen.queue.models import (
    DEFAULT_DECK_SUBJECT,
    GeneratedCard,
    Tone,
    normalize_difficulty,
    normalize_tone,
)


@dataclass(slots=True, frozen=True)
class GenerationRequest:
    """Inputs for one generation attempt."""

    job_id: str
    deck_name: str
    content: str
    deck_subject: str = DEFAULT_DECK_SUBJECT
    goal: str | None = None
    tone: Tone = Tone.STANDARD
    max_cards: int = 30
    timeout_seconds: int = 300
    attempt: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "deck_name": self.deck_name,
            "deck_subject": self.deck_subject,
            "content": self.content,
            "goal": self.goal,
            "tone": self.tone.value,
            "max_cards": self.max_cards,
            "timeout_seconds": self.timeout_seconds,
            "attempt": self.attempt,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> GenerationRequest:
        job_id = raw.get("job_id")
        deck_name = raw.get("deck_name")
        content = raw.get("content")
        if not isinstance(job_id, str) or not job_id.strip():
            raise ValueError("request.job_id must be a non-empty string")
        if not isinstance(deck_name, str):
            raise TypeError("request.deck_name must be a string")
        if not isinstance(content, str):
            raise TypeError("request.content must be a string")
        subject = raw.get("deck_subject")
        goal = raw.get("goal")
        return cls(
            job_id=job_id,
            deck_name=deck_name,
            content=content,
            deck_subject=subject if isinstance(subject, str) and subject else DEFAULT_DECK_SUBJECT,
            goal=goal if isinstance(goal, str) and goal else None,
            tone=normalize_tone(raw.get("tone")),
            max_cards=int(raw.get("max_cards", 30)),
            timeout_seconds=int(raw.get("timeout_seconds", 300)),
            attempt=int(raw.get("attempt", 1)),
        )


@dataclass(slots=True)
class GenerationResponse:
    """Cards produced by a generator plus diagnostics."""

    cards: list[GeneratedCard]
    metadata: dict[str, Any] = field(default_factory=dict)


class CardGenerator(Protocol):
    """Opaque generation capability.

    The pipeline does not time calls itself: implementations must give up
    after `request.timeout_seconds` and raise
    `GenerationFailure(..., failure_class=FailureClass.TIMEOUT, transient=True)`.
    """

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Produce cards or raise `GenerationFailure`."""


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload using deterministic formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def write_request(path: Path, request: GenerationRequest) -> None:
    write_json(path, request.to_dict())


def read_request(path: Path) -> GenerationRequest:
    return GenerationRequest.from_dict(load_json(path))


def write_cards(path: Path, cards: list[GeneratedCard]) -> None:
    """Serialize cards in the output contract shape `{"cards": [...]}`."""

    write_json(
        path,
        {
            "cards": [
                {
                    "question": card.question,
                    "answer": card.answer,
                    "difficulty": card.difficulty.value,
                    "tags": list(card.tags),
                }
                for card in cards
            ],
        },
    )


def parse_cards_payload(payload: dict[str, Any], *, max_cards: int) -> list[GeneratedCard]:
    """Normalize an output payload into cards.

    Raises `ValueError` when the payload has no `cards` array. Items without a
    usable question and answer are dropped, so the result may be empty.
    """

    raw_cards = payload.get("cards")
    if not isinstance(raw_cards, list):
        raise ValueError("output.cards must be an array")

    cards: list[GeneratedCard] = []
    for item in raw_cards:
        if not isinstance(item, dict):
            continue
        card = normalize_card(item)
        if card is None:
            continue
        cards.append(card)
        if len(cards) >= max_cards:
            break
    return cards


def normalize_card(item: dict[str, Any]) -> GeneratedCard | None:
    question = item.get("question")
    answer = item.get("answer")
    if not isinstance(question, str) or not isinstance(answer, str):
        return None
    question = question.strip()
    answer = answer.strip()
    if not question or not answer:
        return None
    return GeneratedCard(
        question=question,
        answer=answer,
        difficulty=normalize_difficulty(item.get("difficulty")),
        tags=parse_tags(item.get("tags")),
    )


def parse_tags(value: object) -> tuple[str, ...]:
    """Accept a list of strings or a comma separated string."""

    if isinstance(value, str):
        parts = value.split(",")
    elif isinstance(value, list):
        parts = [part for part in value if isinstance(part, str)]
    else:
        return ()
    seen: set[str] = set()
    tags: list[str] = []
    for part in parts:
        tag = part.strip()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        tags.append(tag)
    return tuple(tags)
