"""Local deterministic card generator for demos and CLI integration tests."""

from __future__ import annotations

import argparse
import json
import re
import sys
from pathlib import Path

from deckgen.generation.contracts import read_request, write_cards
from deckgen.queue.models import Difficulty, GeneratedCard, Tone

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")

_TONE_DIFFICULTY: dict[Tone, Difficulty] = {
    Tone.CONCISE: Difficulty.EASY,
    Tone.STANDARD: Difficulty.MEDIUM,
    Tone.DEEP: Difficulty.HARD,
}


def main(argv: list[str] | None = None) -> int:
    """Write one card per sentence of the request content."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--request-file", required=True)
    parser.add_argument("--output-file")
    parser.add_argument(
        "--stdout",
        action="store_true",
        help="Print the cards JSON to stdout instead of writing the output file.",
    )
    args = parser.parse_args(argv)

    request = read_request(Path(args.request_file))
    cards = build_cards(
        content=request.content,
        deck_subject=request.deck_subject,
        tone=request.tone,
        max_cards=request.max_cards,
    )

    if args.stdout or not args.output_file:
        payload = {
            "cards": [
                {"question": card.question, "answer": card.answer, "tags": list(card.tags)}
                for card in cards
            ],
        }
        sys.stdout.write(f"Generated {len(cards)} cards.\n```json\n{json.dumps(payload)}\n```\n")
        return 0

    write_cards(Path(args.output_file), cards)
    return 0


def build_cards(
    *,
    content: str,
    deck_subject: str,
    tone: Tone,
    max_cards: int,
) -> list[GeneratedCard]:
    sentences = [part.strip() for part in _SENTENCE_END.split(content.strip()) if part.strip()]
    cards: list[GeneratedCard] = []
    for sentence in sentences[:max_cards]:
        lead = " ".join(sentence.split()[:4]).rstrip(".,;:!?")
        cards.append(
            GeneratedCard(
                question=f'What does the material say about "{lead}"?',
                answer=sentence,
                difficulty=_TONE_DIFFICULTY[tone],
                tags=(deck_subject.lower(),),
            ),
        )
    return cards


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
