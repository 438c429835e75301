"""Persistent job status store with bounded retention."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from deckgen.queue.models import UNKNOWN_JOB_ID, CardPreview, JobState, JobStatus
from deckgen.storage.alembic_runner import upgrade_head
from deckgen.storage.common import build_sqlite_engine, to_db_datetime, utc_now
from deckgen.storage.sqlmodel_models import JobStatusRow

logger = logging.getLogger(__name__)

# Target state -> states it may be entered from. None means "no entry yet".
_ALLOWED_PREDECESSORS: dict[JobState, tuple[JobState | None, ...]] = {
    JobState.QUEUED: (None,),
    JobState.PROCESSING: (None, JobState.QUEUED, JobState.PROCESSING),
    JobState.COMPLETED: (None, JobState.QUEUED, JobState.PROCESSING),
    JobState.FAILED: (None, JobState.QUEUED, JobState.PROCESSING),
}


class JobStatusStore:
    """Job id -> status map backed by SQLModel + SQLite.

    Every write refreshes the entry's expiry. Expired entries read as absent
    and are removed by `purge`, which also evicts the least recently updated
    entries beyond `max_entries`. Writes that would move a job backwards, or
    past an already recorded terminal state, are refused.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        retention_seconds: int = 86_400,
        max_entries: int = 10_000,
    ) -> None:
        self.db_path = db_path
        self.retention = timedelta(seconds=retention_seconds)
        self.max_entries = max_entries
        self.engine = build_sqlite_engine(db_path=db_path)

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def get(self, job_id: str, *, now: datetime | None = None) -> JobStatus | None:
        """Return the current status, or None when unknown or expired."""

        current = to_db_datetime(now or utc_now())
        with Session(self.engine) as session:
            row = session.exec(
                select(JobStatusRow).where(
                    JobStatusRow.job_id == job_id,
                    JobStatusRow.expires_at > current,
                ),
            ).one_or_none()
            if row is None:
                return None
            return _to_status(row)

    def set(self, job_id: str, status: JobStatus, *, now: datetime | None = None) -> bool:
        """Record a status transition; returns False when the guard refuses it."""

        current = now or utc_now()
        if job_id == UNKNOWN_JOB_ID:
            self._upsert(job_id, status, now=current)
            return True

        allowed = _ALLOWED_PREDECESSORS[status.state]
        allowed_states = [state.value for state in allowed if state is not None]
        values = _row_values(status, now=current, retention=self.retention)
        with Session(self.engine) as session:
            if allowed_states:
                result = session.exec(
                    sa_update(JobStatusRow)
                    .where(
                        col(JobStatusRow.job_id) == job_id,
                        col(JobStatusRow.state).in_(allowed_states),
                    )
                    .values(**values),
                )
                if result.rowcount == 1:
                    session.commit()
                    return True
            if None not in allowed:
                session.rollback()
                return self._refused(job_id, status)
            session.add(
                JobStatusRow(job_id=job_id, created_at=values["updated_at"], **values),
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return self._refused(job_id, status)

        if status.state == JobState.QUEUED:
            self.purge(now=current)
        return True

    def discard_queued(self, job_id: str) -> bool:
        """Remove an entry that never left the queued state."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_delete(JobStatusRow).where(
                    col(JobStatusRow.job_id) == job_id,
                    col(JobStatusRow.state) == JobState.QUEUED.value,
                ),
            )
            session.commit()
            return result.rowcount == 1

    def purge(self, *, now: datetime | None = None) -> int:
        """Delete expired entries and evict the oldest beyond capacity."""

        current = to_db_datetime(now or utc_now())
        with Session(self.engine) as session:
            expired = session.exec(
                sa_delete(JobStatusRow).where(col(JobStatusRow.expires_at) <= current),
            ).rowcount
            total = session.exec(select(func.count()).select_from(JobStatusRow)).one()
            overflow = total - self.max_entries
            evicted = 0
            if overflow > 0:
                oldest = select(JobStatusRow.job_id).order_by(
                    col(JobStatusRow.updated_at).asc(),
                    col(JobStatusRow.created_at).asc(),
                ).limit(overflow)
                evicted = session.exec(
                    sa_delete(JobStatusRow).where(col(JobStatusRow.job_id).in_(oldest)),
                ).rowcount
            session.commit()
        if expired or evicted:
            logger.info("Purged job statuses: expired=%d evicted=%d", expired, evicted)
        return expired + evicted

    def _upsert(self, job_id: str, status: JobStatus, *, now: datetime) -> None:
        values = _row_values(status, now=now, retention=self.retention)
        with Session(self.engine) as session:
            row = session.get(JobStatusRow, job_id)
            if row is None:
                session.add(JobStatusRow(job_id=job_id, created_at=values["updated_at"], **values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
                session.add(row)
            session.commit()

    def _refused(self, job_id: str, status: JobStatus) -> bool:
        logger.warning(
            "Refused job status transition: job_id=%s target=%s",
            job_id,
            status.state.value,
        )
        return False


def _row_values(status: JobStatus, *, now: datetime, retention: timedelta) -> dict[str, object]:
    cards_json = None
    if status.state == JobState.COMPLETED:
        cards_json = json.dumps(
            [{"question": card.question, "answer": card.answer} for card in status.cards],
            ensure_ascii=False,
        )
    return {
        "state": status.state.value,
        "message": status.message,
        "cards_json": cards_json,
        "updated_at": to_db_datetime(now),
        "expires_at": to_db_datetime(now + retention),
    }


def _to_status(row: JobStatusRow) -> JobStatus:
    state = JobState(row.state)
    cards: tuple[CardPreview, ...] = ()
    if row.cards_json:
        cards = tuple(
            CardPreview(question=item["question"], answer=item["answer"])
            for item in json.loads(row.cards_json)
        )
    return JobStatus(state=state, message=row.message, cards=cards)
