"""Prompt text handed to CLI card generators."""

from __future__ import annotations

from pathlib import Path

from deckgen.generation.contracts import GenerationRequest
from deckgen.queue.models import Tone

_TONE_GUIDANCE: dict[Tone, str] = {
    Tone.CONCISE: "Keep answers to one short sentence. Prefer definitions and facts.",
    Tone.STANDARD: "Answers may use two or three sentences when needed.",
    Tone.DEEP: (
        "Ask about causes, relationships and trade-offs. "
        "Answers should explain the reasoning, not just state facts."
    ),
}

_OUTPUT_SCHEMA_EXAMPLE = """\
{
  "cards": [
    {
      "question": "<question>",
      "answer": "<answer>",
      "difficulty": "easy | medium | hard",
      "tags": ["<tag>"]
    }
  ]
}"""


def build_generation_prompt(
    request: GenerationRequest,
    *,
    request_file: Path,
    output_file: Path,
) -> str:
    """Render the instructions for one generation attempt."""

    goal_line = f"Study goal: {request.goal}\n" if request.goal else ""
    return (
        f"Create study flashcards for the deck \"{request.deck_name}\" "
        f"(subject: {request.deck_subject}).\n"
        f"{goal_line}"
        f"{_TONE_GUIDANCE[request.tone]}\n"
        f"\n"
        f"The source material and options are in: {request_file}\n"
        f"\n"
        f"Rules:\n"
        f"1. Use only facts present in the source material.\n"
        f"2. Produce at most {request.max_cards} cards; every card needs a question and answer.\n"
        f"3. Write the result to {output_file} using this JSON schema exactly:\n"
        f"{_OUTPUT_SCHEMA_EXAMPLE}\n"
        f"4. If you cannot write files, print the same JSON to stdout instead.\n"
        f"\n"
        f"Source material:\n"
        f"{request.content}\n"
    )
