"""Job submission: validate, record queued, publish, return the id."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace

from deckgen.errors import BrokerUnavailable, DeckgenError
from deckgen.ids import IdGenerator, new_id
from deckgen.queue.broker import BrokerAdapter
from deckgen.queue.models import (
    DEFAULT_DECK_SUBJECT,
    DeckGenerationJob,
    JobRequest,
    JobStatus,
    normalize_tone,
)
from deckgen.queue.status_store import JobStatusStore

logger = logging.getLogger(__name__)


class JobSubmitter:
    """Accepts generation requests and hands them to the broker.

    The queued status is written before the message is published, so a poller
    that receives the id can always find it. `ensure_consumer`, when given, is
    called after every successful publish and must be idempotent.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        broker: BrokerAdapter,
        status_store: JobStatusStore,
        id_generator: IdGenerator = new_id,
        max_content_chars: int = 10_000,
        ensure_consumer: Callable[[], None] | None = None,
    ) -> None:
        self.broker = broker
        self.status_store = status_store
        self.id_generator = id_generator
        self.max_content_chars = max_content_chars
        self.ensure_consumer = ensure_consumer

    def enqueue(self, request: JobRequest) -> str:
        """Submit one job and return its id without waiting for processing."""

        request = self.validate(request)
        self.broker.connect()

        job_id = self.id_generator()
        job = DeckGenerationJob.from_request(request, job_id=job_id)
        if not self.status_store.set(job_id, JobStatus.queued()):
            raise DeckgenError(f"Job id is already in use: {job_id}")
        try:
            self.broker.publish(job.to_payload(), message_id=job_id)
        except BrokerUnavailable:
            self.status_store.discard_queued(job_id)
            logger.exception("Failed to publish job: job_id=%s", job_id)
            raise

        logger.info(
            "Job enqueued: job_id=%s deck_id=%s user_id=%s content_chars=%d",
            job_id,
            request.deck_id,
            request.user_id,
            len(request.content),
        )
        if self.ensure_consumer is not None:
            self.ensure_consumer()
        return job_id

    def validate(self, request: JobRequest) -> JobRequest:
        """Return a normalized copy of the request or raise `ValueError`."""

        content = request.content.strip()
        if not content:
            raise ValueError("Content must not be empty.")
        if len(content) > self.max_content_chars:
            raise ValueError(
                f"Content is too long: {len(content)} chars, "
                f"at most {self.max_content_chars} allowed.",
            )
        if not request.deck_id.strip():
            raise ValueError("deck_id must not be empty.")
        if not request.user_id.strip():
            raise ValueError("user_id must not be empty.")
        if not request.deck_name.strip():
            raise ValueError("deck_name must not be empty.")
        goal = request.goal.strip() if request.goal else None
        return replace(
            request,
            content=content,
            deck_name=request.deck_name.strip(),
            deck_subject=request.deck_subject.strip() or DEFAULT_DECK_SUBJECT,
            goal=goal or None,
            tone=normalize_tone(request.tone),
        )
