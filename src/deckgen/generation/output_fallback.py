"""Best-effort card recovery from generator stdout."""

from __future__ import annotations

import json
import re

from deckgen.generation.contracts import normalize_card, parse_cards_payload
from deckgen.queue.models import GeneratedCard

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)
_QA_LINE = re.compile(r"^\s*(?:[-*]\s*)?(q|question|a|answer)\s*[:.)]\s*(.+)$", re.IGNORECASE)


def recover_cards_from_stdout(*, stdout_text: str, max_cards: int) -> list[GeneratedCard] | None:
    """Try to recover cards from plain generator stdout.

    Tries, in order: the whole text as JSON, a fenced ```json block, the
    outermost `{...}` span, and finally `Q:`/`A:` line pairs. Returns None
    when nothing usable is found.
    """

    text = stdout_text.strip()
    if not text:
        return None

    payload = _parse_json_payload(text)
    if payload is not None:
        try:
            cards = parse_cards_payload(payload, max_cards=max_cards)
        except ValueError:
            cards = []
        if cards:
            return cards

    cards = _parse_question_answer_lines(text, max_cards=max_cards)
    return cards or None


def _parse_json_payload(text: str) -> dict[str, object] | None:
    direct = _try_load_dict(text)
    if direct is not None:
        return direct

    fenced = _FENCED_JSON.search(text)
    if fenced is not None:
        payload = _try_load_dict(fenced.group(1))
        if payload is not None:
            return payload

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return _try_load_dict(text[start : end + 1])


def _try_load_dict(raw: str) -> dict[str, object] | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _parse_question_answer_lines(text: str, *, max_cards: int) -> list[GeneratedCard]:
    cards: list[GeneratedCard] = []
    question: str | None = None
    for line in text.splitlines():
        match = _QA_LINE.match(line)
        if match is None:
            continue
        kind = match.group(1).lower()[0]
        value = match.group(2).strip()
        if kind == "q":
            question = value
            continue
        if question is None:
            continue
        card = normalize_card({"question": question, "answer": value})
        question = None
        if card is None:
            continue
        cards.append(card)
        if len(cards) >= max_cards:
            break
    return cards
