"""Durable AMQP broker adapter: one connection, one channel, one work queue."""

from __future__ import annotations

import logging
import threading
from typing import Any

from kombu import Connection, Exchange, Producer, Queue
from kombu.exceptions import OperationalError
from kombu.message import Message

from deckgen.errors import BrokerUnavailable, ChannelNotReady

logger = logging.getLogger(__name__)


class BrokerAdapter:
    """Owns the process' broker connection, channel and queue declarations.

    All channel operations are serialized by an internal lock because AMQP
    channels are not safe for concurrent use. The lock is only held for the
    duration of a single broker call.
    """

    def __init__(
        self,
        *,
        url: str,
        queue_name: str,
        dead_letter_queue_name: str,
        connect_timeout_seconds: float = 5.0,
    ) -> None:
        self.url = url
        self.queue_name = queue_name
        self.dead_letter_queue_name = dead_letter_queue_name
        self.connect_timeout_seconds = connect_timeout_seconds
        self.exchange = Exchange(queue_name, type="direct", durable=True)
        self.dead_letter_exchange = Exchange(
            f"{queue_name}.dlx",
            type="direct",
            durable=True,
        )
        self.queue = Queue(
            queue_name,
            exchange=self.exchange,
            routing_key=queue_name,
            durable=True,
            queue_arguments={
                "x-dead-letter-exchange": self.dead_letter_exchange.name,
                "x-dead-letter-routing-key": dead_letter_queue_name,
            },
        )
        self.dead_letter_queue = Queue(
            dead_letter_queue_name,
            exchange=self.dead_letter_exchange,
            routing_key=dead_letter_queue_name,
            durable=True,
        )
        self._lock = threading.RLock()
        self._connection: Connection | None = None
        self._channel: Any | None = None
        self._producer: Producer | None = None

    @property
    def is_connected(self) -> bool:
        return self._channel is not None

    @property
    def channel(self) -> Any:
        """Open channel; raises ChannelNotReady before connect()."""

        if self._channel is None:
            raise ChannelNotReady("Broker channel is not available; call connect() first.")
        return self._channel

    def connect(self) -> None:
        """Establish connection and channel once, then declare queues."""

        with self._lock:
            if self._channel is not None:
                return
            connection = Connection(self.url, connect_timeout=self.connect_timeout_seconds)
            try:
                connection.connect()
                channel = connection.channel()
                self.dead_letter_queue.bind(channel).declare()
                self.queue.bind(channel).declare()
            except (OperationalError, OSError, *connection.connection_errors) as error:
                connection.release()
                raise BrokerUnavailable(
                    f"Broker is unavailable at {connection.as_uri()}: {error}",
                ) from error
            self._connection = connection
            self._channel = channel
            self._producer = Producer(channel, exchange=self.exchange)
            logger.info(
                "Broker connected: url=%s queue=%s dead_letter_queue=%s",
                connection.as_uri(),
                self.queue_name,
                self.dead_letter_queue_name,
            )

    def publish(self, payload: dict[str, Any], *, message_id: str) -> None:
        """Publish one JSON message with persistent delivery mode."""

        with self._lock:
            if self._producer is None:
                raise ChannelNotReady("Broker channel is not available; call connect() first.")
            try:
                self._producer.publish(
                    payload,
                    routing_key=self.queue_name,
                    serializer="json",
                    delivery_mode="persistent",
                    message_id=message_id,
                    headers={"job_id": message_id},
                )
            except self._operation_errors() as error:
                raise BrokerUnavailable(f"Failed to publish message {message_id}: {error}") from error

    def get(self) -> Message | None:
        """Fetch the next message in manual-ack mode, or None when the queue is empty."""

        with self._lock:
            channel = self.channel
            try:
                return self.queue.bind(channel).get(no_ack=False, accept=["json"])
            except self._operation_errors() as error:
                raise BrokerUnavailable(f"Failed to fetch from {self.queue_name}: {error}") from error

    def ack(self, message: Message) -> None:
        """Acknowledge: the message is removed from the broker permanently."""

        with self._lock:
            self.channel  # noqa: B018
            try:
                message.ack()
            except self._operation_errors() as error:
                raise BrokerUnavailable(f"Failed to ack message: {error}") from error

    def reject(self, message: Message) -> None:
        """Reject without requeue: the broker dead-letters or drops the message."""

        with self._lock:
            self.channel  # noqa: B018
            try:
                message.reject(requeue=False)
            except self._operation_errors() as error:
                raise BrokerUnavailable(f"Failed to reject message: {error}") from error

    def close(self) -> None:
        """Release channel and connection."""

        with self._lock:
            if self._connection is None:
                return
            try:
                self._connection.release()
            finally:
                self._connection = None
                self._channel = None
                self._producer = None
            logger.info("Broker connection closed: queue=%s", self.queue_name)

    def _operation_errors(self) -> tuple[type[BaseException], ...]:
        errors: tuple[type[BaseException], ...] = (OperationalError, OSError)
        if self._connection is not None:
            errors = (
                *errors,
                *self._connection.connection_errors,
                *self._connection.channel_errors,
            )
        return errors
