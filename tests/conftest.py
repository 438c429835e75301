"""Shared test fixtures."""

from __future__ import annotations

import shlex
import sys
from collections.abc import Iterator
from pathlib import Path
from uuid import uuid4

import pytest

from deckgen.generation.contracts import GenerationRequest, GenerationResponse
from deckgen.queue.broker import BrokerAdapter
from deckgen.queue.models import GeneratedCard
from deckgen.queue.status_store import JobStatusStore
from deckgen.storage.flashcards import SqliteFlashcardSink

SRC_DIR = Path(__file__).resolve().parents[1] / "src"

ECHO_AGENT_COMMAND_TEMPLATE = (
    f"{shlex.quote(sys.executable)} -m deckgen.generation.echo_agent "
    "--request-file {request_file} --output-file {output_file}"
)


class ScriptedGenerator:
    """Card generator returning queued outcomes: card lists or exceptions."""

    def __init__(self, *outcomes: list[GeneratedCard] | Exception) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[GenerationRequest] = []

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        if not self.outcomes:
            raise AssertionError("ScriptedGenerator has no outcomes left")
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return GenerationResponse(cards=list(outcome), metadata={"source": "scripted"})


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "deckgen.db"


@pytest.fixture()
def status_store(db_path: Path) -> Iterator[JobStatusStore]:
    store = JobStatusStore(db_path, retention_seconds=3600, max_entries=100)
    store.init_schema()
    yield store
    store.close()


@pytest.fixture()
def sink(db_path: Path) -> Iterator[SqliteFlashcardSink]:
    flashcard_sink = SqliteFlashcardSink(db_path)
    flashcard_sink.init_schema()
    yield flashcard_sink
    flashcard_sink.close()


@pytest.fixture()
def queue_name() -> str:
    """Unique queue name: the in-memory transport shares queues process-wide."""

    return f"deck-generation-{uuid4().hex}"


@pytest.fixture()
def broker(queue_name: str) -> Iterator[BrokerAdapter]:
    adapter = BrokerAdapter(
        url="memory://",
        queue_name=queue_name,
        dead_letter_queue_name=f"{queue_name}.dead",
    )
    adapter.connect()
    yield adapter
    adapter.close()


@pytest.fixture()
def scripted_generator() -> type[ScriptedGenerator]:
    return ScriptedGenerator


@pytest.fixture()
def echo_agent_env(monkeypatch) -> str:
    """Make the echo agent importable from generator subprocesses."""

    monkeypatch.setenv("PYTHONPATH", str(SRC_DIR))
    return ECHO_AGENT_COMMAND_TEMPLATE
