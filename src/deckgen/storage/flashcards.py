"""Result sink persisting generated flashcards."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Protocol

from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from deckgen.errors import PersistenceFailure
from deckgen.queue.models import FlashcardRecord, normalize_difficulty
from deckgen.storage.alembic_runner import upgrade_head
from deckgen.storage.common import build_sqlite_engine, from_db_datetime, to_db_datetime, utc_now
from deckgen.storage.sqlmodel_models import Flashcard

logger = logging.getLogger(__name__)


class FlashcardSink(Protocol):
    """Persistence contract for generated cards."""

    def insert_many(self, records: Sequence[FlashcardRecord]) -> None:
        """Insert every record once, atomically: all of them or none."""

    def delete_for_job(self, job_id: str) -> int:
        """Remove the cards one job stored; returns the number removed."""


class SqliteFlashcardSink:
    """Flashcard storage backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path)

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def insert_many(self, records: Sequence[FlashcardRecord]) -> None:
        now = utc_now()
        try:
            with Session(self.engine) as session:
                for position, record in enumerate(records):
                    session.add(_to_row(record, position=position, created_at=now))
                session.commit()
        except SQLAlchemyError as error:
            raise PersistenceFailure(
                f"Failed to store {len(records)} flashcards: {error}",
            ) from error
        logger.debug("Stored %d flashcards", len(records))

    def delete_for_job(self, job_id: str) -> int:
        try:
            with Session(self.engine) as session:
                removed = session.exec(
                    sa_delete(Flashcard).where(col(Flashcard.job_id) == job_id),
                ).rowcount
                session.commit()
        except SQLAlchemyError as error:
            raise PersistenceFailure(
                f"Failed to remove flashcards of job {job_id}: {error}",
            ) from error
        logger.debug("Removed %d flashcards: job_id=%s", removed, job_id)
        return removed

    def list_for_deck(self, *, deck_id: str, user_id: str) -> list[FlashcardRecord]:
        """Return stored cards of one deck in insertion order."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(Flashcard)
                .where(Flashcard.deck_id == deck_id, Flashcard.user_id == user_id)
                .order_by(
                    col(Flashcard.created_at).asc(),
                    col(Flashcard.job_id).asc(),
                    col(Flashcard.position).asc(),
                ),
            ).all()
            return [_to_record(row) for row in rows]


def _to_row(record: FlashcardRecord, *, position: int, created_at: datetime) -> Flashcard:
    return Flashcard(
        id=record.card_id,
        job_id=record.job_id,
        user_id=record.user_id,
        deck_id=record.deck_id,
        question=record.question,
        answer=record.answer,
        position=position,
        status=record.status,
        review_count=record.review_count,
        last_review_date=(
            to_db_datetime(record.last_review_date) if record.last_review_date else None
        ),
        difficulty=record.difficulty.value,
        tags_json=json.dumps(list(record.tags), ensure_ascii=False),
        created_at=to_db_datetime(created_at),
    )


def _to_record(row: Flashcard) -> FlashcardRecord:
    return FlashcardRecord(
        card_id=row.id,
        job_id=row.job_id or "",
        user_id=row.user_id,
        deck_id=row.deck_id,
        question=row.question,
        answer=row.answer,
        difficulty=normalize_difficulty(row.difficulty),
        tags=[str(tag) for tag in json.loads(row.tags_json or "[]")],
        status=row.status,
        review_count=row.review_count,
        last_review_date=from_db_datetime(row.last_review_date),
    )
