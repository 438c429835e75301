"""CLI controllers for the deck generation queue."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from deckgen.config import Settings
from deckgen.queue.models import DEFAULT_DECK_SUBJECT, JobRequest, JobStatus, Tone
from deckgen.queue.service import DeckGenerationService
from deckgen.queue.status_store import JobStatusStore
from deckgen.queue.worker import WorkerRunSummary


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for worker execution."""

    db_path: Path | None
    once: bool
    max_jobs: int | None = None
    max_idle_polls: int = 1


@dataclass(slots=True)
class EnqueueCommand:
    """CLI input for submitting one generation job."""

    db_path: Path | None
    deck_id: str
    user_id: str
    deck_name: str
    content: str
    deck_subject: str = DEFAULT_DECK_SUBJECT
    goal: str | None = None
    tone: str | None = None


@dataclass(slots=True)
class StatusCommand:
    """CLI input for polling one job."""

    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class PurgeStatusesCommand:
    """CLI input for status retention cleanup."""

    db_path: Path | None


@dataclass(slots=True)
class StatusReport:
    """Status lookup result; `found` drives the CLI exit code."""

    found: bool
    lines: list[str]


class DeckgenCliController:
    """Coordinates worker, submission and status CLI operations."""

    def run_worker(self, command: WorkerCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _service(settings) as service:
            service.broker.connect()
            summary = (
                service.worker.run_once()
                if command.once
                else service.worker.run_loop(
                    max_jobs=command.max_jobs,
                    max_idle_polls=command.max_idle_polls,
                )
            )
        return [_format_summary(summary)]

    def enqueue(self, command: EnqueueCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _service(settings) as service:
            job_id = service.enqueue(
                JobRequest(
                    deck_id=command.deck_id,
                    user_id=command.user_id,
                    deck_name=command.deck_name,
                    deck_subject=command.deck_subject,
                    content=command.content,
                    goal=command.goal,
                    tone=Tone(command.tone) if command.tone else None,
                ),
            )
            status = service.get_status(job_id)
        lines = [f"Job enqueued: job_id={job_id} queue={settings.broker.queue_name}"]
        if status is not None:
            lines.append(f"Status: {status.state.value} - {status.message}")
        return lines

    def status(self, command: StatusCommand) -> StatusReport:
        settings = _settings(command.db_path)
        with _status_store(settings) as store:
            status = store.get(command.job_id)
        if status is None:
            return StatusReport(found=False, lines=[f"Job not found: job_id={command.job_id}"])
        return StatusReport(found=True, lines=_format_status(command.job_id, status))

    def purge_statuses(self, command: PurgeStatusesCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _status_store(settings) as store:
            removed = store.purge()
        return [
            f"Purged job statuses: removed={removed} "
            f"retention_seconds={settings.status.retention_seconds} "
            f"max_entries={settings.status.max_entries}",
        ]


def _settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


@contextmanager
def _service(settings: Settings) -> Iterator[DeckGenerationService]:
    service = DeckGenerationService.from_settings(settings, auto_start_consumer=False)
    try:
        yield service
    finally:
        service.close()


@contextmanager
def _status_store(settings: Settings) -> Iterator[JobStatusStore]:
    store = JobStatusStore(
        settings.db_path,
        retention_seconds=settings.status.retention_seconds,
        max_entries=settings.status.max_entries,
    )
    store.init_schema()
    try:
        yield store
    finally:
        store.close()


def _format_summary(summary: WorkerRunSummary) -> str:
    return (
        "Worker summary: "
        f"processed={summary.processed} completed={summary.completed} "
        f"failed={summary.failed} malformed={summary.malformed} "
        f"skipped={summary.skipped} idle_polls={summary.idle_polls}"
    )


def _format_status(job_id: str, status: JobStatus) -> list[str]:
    lines = [
        f"Job: {job_id}",
        f"State: {status.state.value}",
        f"Message: {status.message}",
    ]
    for index, card in enumerate(status.cards, start=1):
        lines.append(f"{index}. Q: {card.question}")
        lines.append(f"   A: {card.answer}")
    return lines
