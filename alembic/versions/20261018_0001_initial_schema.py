"""Create job status and flashcard tables."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "job_statuses",
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("state", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("cards_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("job_id"),
    )
    op.create_index("ix_job_statuses_state", "job_statuses", ["state"])
    op.create_index("idx_job_statuses_expires_at", "job_statuses", ["expires_at"])
    op.create_index("idx_job_statuses_updated_at", "job_statuses", ["updated_at"])

    op.create_table(
        "flashcards",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("job_id", sa.String(), nullable=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("deck_id", sa.String(), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("answer", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(), nullable=False, server_default="new"),
        sa.Column("review_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_review_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("difficulty", sa.String(), nullable=False, server_default="medium"),
        sa.Column("tags_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_flashcards_job_id", "flashcards", ["job_id"])
    op.create_index("idx_flashcards_user_deck", "flashcards", ["user_id", "deck_id"])


def downgrade() -> None:
    op.drop_index("idx_flashcards_user_deck", table_name="flashcards")
    op.drop_index("ix_flashcards_job_id", table_name="flashcards")
    op.drop_table("flashcards")
    op.drop_index("idx_job_statuses_updated_at", table_name="job_statuses")
    op.drop_index("idx_job_statuses_expires_at", table_name="job_statuses")
    op.drop_index("ix_job_statuses_state", table_name="job_statuses")
    op.drop_table("job_statuses")
