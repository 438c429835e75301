"""Queue worker that turns deck generation messages into stored flashcards."""

from __future__ import annotations

import json
import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

from kombu.message import Message
from sqlalchemy.exc import SQLAlchemyError

from deckgen.errors import (
    BrokerUnavailable,
    GenerationFailure,
    MalformedMessage,
    PersistenceFailure,
)
from deckgen.generation.pipeline import GenerationPipeline
from deckgen.ids import IdGenerator, new_id
from deckgen.queue.broker import BrokerAdapter
from deckgen.queue.models import (
    UNKNOWN_JOB_ID,
    DeckGenerationJob,
    FlashcardRecord,
    GeneratedCard,
    JobStatus,
)
from deckgen.queue.status_store import JobStatusStore
from deckgen.storage.flashcards import FlashcardSink

logger = logging.getLogger(__name__)


class MessageOutcome(str, Enum):
    """How one dequeued message was settled."""

    COMPLETED = "completed"
    FAILED = "failed"
    MALFORMED = "malformed"
    SKIPPED = "skipped"


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    completed: int = 0
    failed: int = 0
    malformed: int = 0
    skipped: int = 0
    idle_polls: int = 0

    def add(self, other: WorkerRunSummary) -> None:
        self.processed += other.processed
        self.completed += other.completed
        self.failed += other.failed
        self.malformed += other.malformed
        self.skipped += other.skipped
        self.idle_polls += other.idle_polls


class DeckGenerationWorker:
    """Consumes one message at a time: generate, persist, record, settle.

    Every message is acknowledged on success (or when it is a redelivery of an
    already finished job) and rejected without requeue otherwise. Only
    `BrokerUnavailable` escapes `run_once`.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        broker: BrokerAdapter,
        status_store: JobStatusStore,
        pipeline: GenerationPipeline,
        sink: FlashcardSink,
        id_generator: IdGenerator = new_id,
        poll_interval_seconds: float = 1.0,
    ) -> None:
        self.broker = broker
        self.status_store = status_store
        self.pipeline = pipeline
        self.sink = sink
        self.id_generator = id_generator
        self.poll_interval_seconds = poll_interval_seconds
        self._stop_event = threading.Event()
        self._current_job_id: str | None = None

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def reset_stop(self) -> None:
        """Allow a stopped worker to run again."""

        self._stop_event.clear()

    def request_stop(self, *, reason: str = "requested") -> None:
        """Stop after the message in flight, if any, is settled."""

        if self._stop_event.is_set():
            return
        self._stop_event.set()
        logger.info(
            "Worker stop requested: reason=%s current_job_id=%s",
            reason,
            self._current_job_id,
        )

    def run_once(self) -> WorkerRunSummary:
        """Process at most one message from the queue."""

        summary = WorkerRunSummary()
        if self.stop_requested:
            summary.idle_polls = 1
            return summary

        message = self.broker.get()
        if message is None:
            summary.idle_polls = 1
            return summary

        summary.processed = 1
        outcome = self.handle_message(message)
        if outcome == MessageOutcome.COMPLETED:
            summary.completed = 1
        elif outcome == MessageOutcome.FAILED:
            summary.failed = 1
        elif outcome == MessageOutcome.MALFORMED:
            summary.malformed = 1
        else:
            summary.skipped = 1
        return summary

    def run_loop(
        self,
        *,
        max_jobs: int | None = None,
        max_idle_polls: int | None = 1,
        handle_signals: bool = True,
    ) -> WorkerRunSummary:
        """Run until stopped, `max_jobs` processed, or the queue stays idle.

        Args:
            max_jobs: Stop after processing this many messages (None = unlimited).
            max_idle_polls: Consecutive empty polls before exiting
                (None = keep polling until stopped).
            handle_signals: Install SIGINT/SIGTERM handlers that request a
                graceful stop. Ignored outside the main thread.
        """

        aggregate = WorkerRunSummary()
        consecutive_idle = 0
        with self._signal_handlers(enabled=handle_signals):
            while not self.stop_requested:
                if max_jobs is not None and aggregate.processed >= max_jobs:
                    break

                summary = self.run_once()
                aggregate.add(summary)
                if summary.processed == 0:
                    consecutive_idle += 1
                    if max_idle_polls is not None and consecutive_idle >= max_idle_polls:
                        break
                    self._sleep_with_stop(self.poll_interval_seconds)
                    continue
                consecutive_idle = 0
        return aggregate

    def handle_message(self, message: Message) -> MessageOutcome:
        """Settle one message; never raises except for broker failures."""

        try:
            job = decode_job(message)
        except MalformedMessage as error:
            job_id = error.job_id or UNKNOWN_JOB_ID
            logger.warning("Rejecting malformed message: job_id=%s reason=%s", job_id, error)
            self._mark_failed(job_id)
            self.broker.reject(message)
            return MessageOutcome.MALFORMED

        self._current_job_id = job.job_id
        try:
            return self._process_job(job, message)
        except BrokerUnavailable:
            raise
        except Exception:
            logger.exception("Unexpected error while processing job: job_id=%s", job.job_id)
            self._mark_failed(job.job_id)
            self.broker.reject(message)
            return MessageOutcome.FAILED
        finally:
            self._current_job_id = None

    def _process_job(self, job: DeckGenerationJob, message: Message) -> MessageOutcome:
        current = self.status_store.get(job.job_id)
        if current is not None and current.state.is_terminal:
            logger.info(
                "Skipping redelivered job already %s: job_id=%s",
                current.state.value,
                job.job_id,
            )
            self.broker.ack(message)
            return MessageOutcome.SKIPPED

        self.status_store.set(job.job_id, JobStatus.processing())
        logger.info("Processing job: job_id=%s deck_id=%s", job.job_id, job.deck_id)

        try:
            cards = self.pipeline.generate(job)
        except GenerationFailure as failure:
            logger.warning(
                "Generation failed: job_id=%s failure_class=%s reason=%s",
                job.job_id,
                failure.failure_class.value,
                failure,
            )
            self._mark_failed(job.job_id)
            self.broker.reject(message)
            return MessageOutcome.FAILED

        self.sink.insert_many(self.build_records(job, cards))
        try:
            self.status_store.set(
                job.job_id,
                JobStatus.completed([card.preview() for card in cards]),
            )
        except Exception:
            self._discard_cards(job.job_id)
            raise
        self.broker.ack(message)
        logger.info("Job completed: job_id=%s cards=%d", job.job_id, len(cards))
        return MessageOutcome.COMPLETED

    def build_records(
        self,
        job: DeckGenerationJob,
        cards: list[GeneratedCard],
    ) -> list[FlashcardRecord]:
        return [
            FlashcardRecord(
                card_id=self.id_generator(),
                job_id=job.job_id,
                user_id=job.user_id,
                deck_id=job.deck_id,
                question=card.question,
                answer=card.answer,
                difficulty=card.difficulty,
                tags=list(card.tags),
            )
            for card in cards
        ]

    def _discard_cards(self, job_id: str) -> None:
        # Cards must not outlive a job that is about to be reported failed.
        try:
            removed = self.sink.delete_for_job(job_id)
        except PersistenceFailure:
            logger.exception("Failed to remove cards of unfinished job: job_id=%s", job_id)
            return
        logger.warning("Removed %d cards of unfinished job: job_id=%s", removed, job_id)

    def _mark_failed(self, job_id: str) -> None:
        try:
            self.status_store.set(job_id, JobStatus.failed())
        except SQLAlchemyError:
            logger.exception("Failed to record failed status: job_id=%s", job_id)

    def _sleep_with_stop(self, seconds: float) -> None:
        if seconds > 0:
            self._stop_event.wait(seconds)

    @contextmanager
    def _signal_handlers(self, *, enabled: bool) -> Iterator[None]:
        if not enabled or threading.current_thread() is not threading.main_thread():
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(reason=name)

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)


def decode_job(message: Message) -> DeckGenerationJob:
    """Turn a message body into a job or raise `MalformedMessage`."""

    payload: object = None
    try:
        payload = json.loads(message.body)
        return DeckGenerationJob.from_payload(payload)
    except (TypeError, ValueError) as error:
        raise MalformedMessage(
            f"Undecodable job message: {error}",
            job_id=_recover_job_id(payload, message),
        ) from error


def _recover_job_id(payload: object, message: Message) -> str | None:
    if isinstance(payload, dict):
        job_id = payload.get("jobId")
        if isinstance(job_id, str) and job_id:
            return job_id
    message_id = (message.properties or {}).get("message_id")
    if isinstance(message_id, str) and message_id:
        return message_id
    return None
