"""Process-wide deck generation service with an explicit lifecycle."""

from __future__ import annotations

import logging
import threading

from deckgen.config import Settings
from deckgen.errors import BrokerUnavailable
from deckgen.generation.cli_backend import CliCardGenerator
from deckgen.generation.contracts import CardGenerator
from deckgen.generation.pipeline import GenerationPipeline
from deckgen.ids import IdGenerator, new_id
from deckgen.queue.broker import BrokerAdapter
from deckgen.queue.models import JobRequest, JobStatus
from deckgen.queue.status_store import JobStatusStore
from deckgen.queue.submitter import JobSubmitter
from deckgen.queue.worker import DeckGenerationWorker, WorkerRunSummary
from deckgen.storage.flashcards import FlashcardSink, SqliteFlashcardSink

logger = logging.getLogger(__name__)


class DeckGenerationService:
    """Owns the broker adapter, status store, submitter and background worker.

    Build one per process (usually with `from_settings`), call `start()` at
    startup, and pass the instance to whatever submits jobs or polls status.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        broker: BrokerAdapter,
        status_store: JobStatusStore,
        pipeline: GenerationPipeline,
        sink: FlashcardSink,
        id_generator: IdGenerator = new_id,
        max_content_chars: int = 10_000,
        poll_interval_seconds: float = 1.0,
        auto_start_consumer: bool = True,
    ) -> None:
        self.broker = broker
        self.status_store = status_store
        self.sink = sink
        self.worker = DeckGenerationWorker(
            broker=broker,
            status_store=status_store,
            pipeline=pipeline,
            sink=sink,
            id_generator=id_generator,
            poll_interval_seconds=poll_interval_seconds,
        )
        self.submitter = JobSubmitter(
            broker=broker,
            status_store=status_store,
            id_generator=id_generator,
            max_content_chars=max_content_chars,
            ensure_consumer=self.ensure_consumer if auto_start_consumer else None,
        )
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self.last_summary: WorkerRunSummary | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        generator: CardGenerator | None = None,
        sink: FlashcardSink | None = None,
        auto_start_consumer: bool = True,
    ) -> DeckGenerationService:
        """Wire the default components; `generator` and `sink` may be swapped.

        With `auto_start_consumer=False` submissions never start the background
        worker, which suits one-shot CLI commands.
        """

        status_store = JobStatusStore(
            settings.db_path,
            retention_seconds=settings.status.retention_seconds,
            max_entries=settings.status.max_entries,
        )
        status_store.init_schema()
        if sink is None:
            sink = SqliteFlashcardSink(settings.db_path)
        if generator is None:
            generator = CliCardGenerator(
                command_template=settings.generation.command_template,
                model=settings.generation.model,
                workdir_root=settings.generation.workdir_root,
                transient_exit_codes=settings.generation.transient_exit_codes,
            )
        pipeline = GenerationPipeline(
            generator,
            timeout_seconds=settings.generation.timeout_seconds,
            max_attempts=settings.generation.max_attempts,
            retry_base_seconds=settings.generation.retry_base_seconds,
            retry_max_seconds=settings.generation.retry_max_seconds,
            max_cards=settings.generation.max_cards,
        )
        broker = BrokerAdapter(
            url=settings.broker.url,
            queue_name=settings.broker.queue_name,
            dead_letter_queue_name=settings.broker.dead_letter_queue_name,
            connect_timeout_seconds=settings.broker.connect_timeout_seconds,
        )
        return cls(
            broker=broker,
            status_store=status_store,
            pipeline=pipeline,
            sink=sink,
            max_content_chars=settings.generation.max_content_chars,
            poll_interval_seconds=settings.worker.poll_interval_seconds,
            auto_start_consumer=auto_start_consumer,
        )

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Connect to the broker and start the background worker."""

        self.broker.connect()
        self.ensure_consumer()

    def ensure_consumer(self) -> None:
        """Start the worker thread unless one is already running.

        A worker stopped by `stop()` is restarted.
        """

        with self._lock:
            if self.is_running:
                return
            self.worker.reset_stop()
            self._thread = threading.Thread(
                target=self._run_worker,
                name="deckgen-worker",
                daemon=True,
            )
            self._thread.start()
            logger.info("Deck generation worker started: queue=%s", self.broker.queue_name)

    def enqueue(self, request: JobRequest) -> str:
        return self.submitter.enqueue(request)

    def get_status(self, job_id: str) -> JobStatus | None:
        return self.status_store.get(job_id)

    def stop(self, timeout: float | None = None) -> bool:
        """Ask the worker to stop after its current job; True once it has exited."""

        self.worker.request_stop(reason="service_stop")
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def close(self) -> None:
        """Stop the worker and release broker and database resources."""

        self.stop()
        self.broker.close()
        self.status_store.close()
        close_sink = getattr(self.sink, "close", None)
        if callable(close_sink):
            close_sink()

    def _run_worker(self) -> None:
        try:
            self.last_summary = self.worker.run_loop(max_idle_polls=None, handle_signals=False)
        except BrokerUnavailable:
            logger.exception("Deck generation worker stopped: broker unavailable")
        logger.info("Deck generation worker exited: summary=%s", self.last_summary)
