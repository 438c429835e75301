"""Runtime configuration for the deck generation queue and worker."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_BROKER_URL = "amqp://rabbitmq:5672"
DEFAULT_COMMAND_TEMPLATE = "claude -p --model {model} -- {prompt}"
_SUPPORTED_BROKER_SCHEMES = {"amqp", "amqps", "pyamqp", "memory"}
_INPUT_PLACEHOLDERS = ("{prompt}", "{prompt_file}", "{request_file}")


@dataclass(slots=True)
class BrokerSettings:
    """Durable broker connection and queue names."""

    url: str = DEFAULT_BROKER_URL
    queue_name: str = "deck-generation"
    dead_letter_queue_name: str = "deck-generation.dead"
    connect_timeout_seconds: float = 5.0


@dataclass(slots=True)
class StatusSettings:
    """Job status retention policy."""

    retention_seconds: int = 86_400
    max_entries: int = 10_000


@dataclass(slots=True)
class GenerationSettings:
    """Card generation capability and retry policy."""

    command_template: str = DEFAULT_COMMAND_TEMPLATE
    model: str = "sonnet"
    workdir_root: Path = Path(".deckgen/workdir")
    timeout_seconds: int = 300
    max_attempts: int = 3
    retry_base_seconds: float = 5.0
    retry_max_seconds: float = 60.0
    max_content_chars: int = 10_000
    max_cards: int = 30
    transient_exit_codes: tuple[int, ...] = (137, 143)


@dataclass(slots=True)
class WorkerSettings:
    """Consumer loop settings."""

    poll_interval_seconds: float = 1.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".deckgen.db")
    broker: BrokerSettings = field(default_factory=BrokerSettings)
    status: StatusSettings = field(default_factory=StatusSettings)
    generation: GenerationSettings = field(default_factory=GenerationSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("DECKGEN_DB_PATH", ".deckgen.db")),
            broker=BrokerSettings(
                url=os.getenv("RABBITMQ_URL", DEFAULT_BROKER_URL),
                queue_name=os.getenv("DECKGEN_QUEUE_NAME", "deck-generation"),
                dead_letter_queue_name=os.getenv(
                    "DECKGEN_DEAD_LETTER_QUEUE_NAME",
                    "deck-generation.dead",
                ),
                connect_timeout_seconds=float(
                    os.getenv("DECKGEN_BROKER_CONNECT_TIMEOUT_SECONDS", "5.0"),
                ),
            ),
            status=StatusSettings(
                retention_seconds=int(os.getenv("DECKGEN_STATUS_RETENTION_SECONDS", "86400")),
                max_entries=int(os.getenv("DECKGEN_STATUS_MAX_ENTRIES", "10000")),
            ),
            generation=GenerationSettings(
                command_template=os.getenv(
                    "DECKGEN_GENERATOR_COMMAND_TEMPLATE",
                    DEFAULT_COMMAND_TEMPLATE,
                ),
                model=os.getenv("DECKGEN_GENERATOR_MODEL", "sonnet"),
                workdir_root=Path(os.getenv("DECKGEN_WORKDIR_ROOT", ".deckgen/workdir")),
                timeout_seconds=int(os.getenv("DECKGEN_GENERATION_TIMEOUT_SECONDS", "300")),
                max_attempts=int(os.getenv("DECKGEN_GENERATION_MAX_ATTEMPTS", "3")),
                retry_base_seconds=float(os.getenv("DECKGEN_RETRY_BASE_SECONDS", "5.0")),
                retry_max_seconds=float(os.getenv("DECKGEN_RETRY_MAX_SECONDS", "60.0")),
                max_content_chars=int(os.getenv("DECKGEN_MAX_CONTENT_CHARS", "10000")),
                max_cards=int(os.getenv("DECKGEN_MAX_CARDS", "30")),
                transient_exit_codes=_env_int_tuple(
                    "DECKGEN_TRANSIENT_EXIT_CODES",
                    default=(137, 143),
                ),
            ),
            worker=WorkerSettings(
                poll_interval_seconds=float(
                    os.getenv("DECKGEN_WORKER_POLL_INTERVAL_SECONDS", "1.0"),
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for unusable values."""

        parsed = urlparse(self.broker.url)
        if parsed.scheme not in _SUPPORTED_BROKER_SCHEMES:
            raise ValueError(
                "Invalid RABBITMQ_URL: "
                f"{self.broker.url!r}. Expected an amqp:// or amqps:// URL.",
            )
        if not self.broker.queue_name.strip():
            raise ValueError("DECKGEN_QUEUE_NAME must not be empty.")
        if self.broker.queue_name == self.broker.dead_letter_queue_name:
            raise ValueError(
                "DECKGEN_DEAD_LETTER_QUEUE_NAME must differ from DECKGEN_QUEUE_NAME.",
            )
        if self.status.retention_seconds <= 0:
            raise ValueError("DECKGEN_STATUS_RETENTION_SECONDS must be > 0.")
        if self.status.max_entries <= 0:
            raise ValueError("DECKGEN_STATUS_MAX_ENTRIES must be > 0.")
        if self.generation.timeout_seconds <= 0:
            raise ValueError("DECKGEN_GENERATION_TIMEOUT_SECONDS must be > 0.")
        if self.generation.max_attempts <= 0:
            raise ValueError("DECKGEN_GENERATION_MAX_ATTEMPTS must be > 0.")
        if self.generation.retry_base_seconds < 0 or self.generation.retry_max_seconds < 0:
            raise ValueError("Retry backoff seconds must be >= 0.")
        if self.generation.max_content_chars <= 0:
            raise ValueError("DECKGEN_MAX_CONTENT_CHARS must be > 0.")
        if self.generation.max_cards <= 0:
            raise ValueError("DECKGEN_MAX_CARDS must be > 0.")
        template = self.generation.command_template
        if not any(placeholder in template for placeholder in _INPUT_PLACEHOLDERS):
            raise ValueError(
                "DECKGEN_GENERATOR_COMMAND_TEMPLATE must include "
                "{prompt}, {prompt_file} or {request_file}.",
            )
        if self.worker.poll_interval_seconds < 0:
            raise ValueError("DECKGEN_WORKER_POLL_INTERVAL_SECONDS must be >= 0.")


def _env_int_tuple(name: str, default: tuple[int, ...]) -> tuple[int, ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    values: list[int] = []
    for part in raw.split(","):
        token = part.strip()
        if not token:
            continue
        try:
            values.append(int(token))
        except ValueError as error:
            raise ValueError(f"Invalid integer in {name}: {token!r}") from error
    return tuple(values)
