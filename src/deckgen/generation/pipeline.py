"""Generation pipeline: one job in, a non-empty card list out."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import replace

from deckgen.errors import GenerationFailure
from deckgen.generation.contracts import CardGenerator, GenerationRequest
from deckgen.queue.models import DeckGenerationJob, FailureClass, GeneratedCard, normalize_tone

logger = logging.getLogger(__name__)


class GenerationPipeline:
    """Drive a `CardGenerator` with timeout, bounded retry and an empty-result check.

    Transient failures (timeouts, rate limits, network errors) are retried up
    to `max_attempts` total attempts with jittered exponential backoff. Any
    other failure, and an empty card list, fails the job immediately.
    """

    def __init__(  # noqa: PLR0913
        self,
        generator: CardGenerator,
        *,
        timeout_seconds: int = 300,
        max_attempts: int = 3,
        retry_base_seconds: float = 5.0,
        retry_max_seconds: float = 60.0,
        max_cards: int = 30,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.generator = generator
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.retry_base_seconds = retry_base_seconds
        self.retry_max_seconds = retry_max_seconds
        self.max_cards = max_cards
        self._sleep = sleep
        self._random = random.Random()  # noqa: S311

    def build_request(self, job: DeckGenerationJob) -> GenerationRequest:
        return GenerationRequest(
            job_id=job.job_id,
            deck_name=job.deck_name,
            deck_subject=job.deck_subject,
            content=job.content,
            goal=job.goal,
            tone=normalize_tone(job.tone),
            max_cards=self.max_cards,
            timeout_seconds=self.timeout_seconds,
        )

    def generate(self, job: DeckGenerationJob) -> list[GeneratedCard]:
        """Return the generated cards or raise `GenerationFailure`."""

        request = self.build_request(job)
        attempt = 1
        while True:
            try:
                response = self.generator.generate(replace(request, attempt=attempt))
            except GenerationFailure as failure:
                if not failure.transient or attempt >= self.max_attempts:
                    raise
                delay = self._compute_retry_delay(retry_number=attempt)
                logger.warning(
                    "Generation attempt failed, retrying: job_id=%s attempt=%d/%d "
                    "failure_class=%s delay=%.1fs reason=%s",
                    job.job_id,
                    attempt,
                    self.max_attempts,
                    failure.failure_class.value,
                    delay,
                    failure,
                )
                self._sleep(delay)
                attempt += 1
                continue

            cards = response.cards[: self.max_cards]
            if not cards:
                raise GenerationFailure(
                    "Generator returned no cards.",
                    failure_class=FailureClass.EMPTY_RESULT,
                )
            logger.info(
                "Generated %d cards: job_id=%s attempt=%d",
                len(cards),
                job.job_id,
                attempt,
            )
            return cards

    def _compute_retry_delay(self, *, retry_number: int) -> float:
        max_delay = min(
            self.retry_max_seconds,
            self.retry_base_seconds * (2 ** max(retry_number - 1, 0)),
        )
        return self._random.uniform(0, max_delay)
