"""SQLModel ORM tables for job status and flashcard storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel


class JobStatusRow(SQLModel, table=True):
    __tablename__ = "job_statuses"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_job_statuses_expires_at", "expires_at"),
        Index("idx_job_statuses_updated_at", "updated_at"),
    )

    job_id: str = Field(primary_key=True)
    state: str = Field(index=True)
    message: str = Field(sa_column=Column(Text, nullable=False))
    cards_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Flashcard(SQLModel, table=True):
    __tablename__ = "flashcards"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_flashcards_user_deck", "user_id", "deck_id"),)

    id: str = Field(primary_key=True)
    job_id: str | None = Field(default=None, index=True)
    user_id: str
    deck_id: str
    question: str = Field(sa_column=Column(Text, nullable=False))
    answer: str = Field(sa_column=Column(Text, nullable=False))
    position: int = Field(default=0)
    status: str = Field(default="new")
    review_count: int = Field(default=0)
    last_review_date: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    difficulty: str = Field(default="medium")
    tags_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
