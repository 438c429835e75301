from __future__ import annotations

import json
from pathlib import Path

import allure

from deckgen.generation.contracts import GenerationRequest, load_json, write_request
from deckgen.generation.echo_agent import build_cards, main
from deckgen.queue.models import Difficulty, Tone

pytestmark = [
    allure.epic("Card Generation"),
    allure.feature("Echo Agent"),
]


def test_build_cards_splits_sentences_and_caps_count() -> None:
    cards = build_cards(
        content="Cells divide by mitosis. DNA stores genetic information. Ribosomes build proteins.",
        deck_subject="Biology",
        tone=Tone.CONCISE,
        max_cards=2,
    )

    assert [card.answer for card in cards] == [
        "Cells divide by mitosis.",
        "DNA stores genetic information.",
    ]
    assert cards[0].question == 'What does the material say about "Cells divide by mitosis"?'
    assert cards[0].difficulty == Difficulty.EASY
    assert cards[0].tags == ("biology",)


def test_main_writes_cards_to_output_file(tmp_path: Path) -> None:
    request_file = tmp_path / "request.json"
    output_file = tmp_path / "cards.json"
    write_request(
        request_file,
        GenerationRequest(
            job_id="job-1",
            deck_name="Chemistry",
            content="Water boils at 100 degrees. Ice floats.",
            deck_subject="Chemistry",
            max_cards=10,
        ),
    )

    exit_code = main(["--request-file", str(request_file), "--output-file", str(output_file)])

    assert exit_code == 0
    payload = load_json(output_file)
    assert [card["answer"] for card in payload["cards"]] == [
        "Water boils at 100 degrees.",
        "Ice floats.",
    ]
    assert payload["cards"][0]["difficulty"] == "medium"


def test_main_prints_fenced_json_without_output_file(tmp_path: Path, capsys) -> None:
    request_file = tmp_path / "request.json"
    write_request(
        request_file,
        GenerationRequest(job_id="job-2", deck_name="Deck", content="One fact."),
    )

    assert main(["--request-file", str(request_file)]) == 0

    stdout = capsys.readouterr().out
    assert stdout.startswith("Generated 1 cards.")
    body = stdout.split("```json\n", 1)[1].split("\n```", 1)[0]
    assert json.loads(body)["cards"][0]["answer"] == "One fact."
