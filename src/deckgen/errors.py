"""Error taxonomy shared by the queue, generation and storage layers."""

from __future__ import annotations

from deckgen.queue.models import FailureClass


class DeckgenError(RuntimeError):
    """Base class for deckgen failures."""


class BrokerUnavailable(DeckgenError):
    """Broker connection or channel could not be established or used."""


class ChannelNotReady(DeckgenError):
    """Broker operation attempted before a successful connect()."""


class GenerationFailure(DeckgenError):
    """Generation capability failed or produced no cards."""

    def __init__(
        self,
        message: str,
        *,
        failure_class: FailureClass,
        transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.failure_class = failure_class
        self.transient = transient


class PersistenceFailure(DeckgenError):
    """Generated cards could not be stored."""


class MalformedMessage(DeckgenError):
    """Dequeued message body could not be turned into a job."""

    def __init__(self, message: str, *, job_id: str | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id
