from pathlib import Path

import allure
from sqlalchemy import inspect, text

from deckgen.queue.status_store import JobStatusStore

pytestmark = [
    allure.epic("Deck Generation Queue"),
    allure.feature("Persistence"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    store = JobStatusStore(tmp_path / "migrations.db")
    store.init_schema()
    try:
        with store.engine.connect() as connection:
            version = connection.execute(
                text("SELECT version_num FROM alembic_version LIMIT 1"),
            ).scalar_one()
        assert version == "20261018_0001"

        inspector = inspect(store.engine)
        assert {"job_statuses", "flashcards"} <= set(inspector.get_table_names())
        flashcard_columns = {column["name"] for column in inspector.get_columns("flashcards")}
        assert {
            "id",
            "job_id",
            "user_id",
            "deck_id",
            "question",
            "answer",
            "status",
            "review_count",
            "last_review_date",
            "difficulty",
            "tags_json",
        } <= flashcard_columns
    finally:
        store.close()


def test_init_schema_is_repeatable(tmp_path: Path) -> None:
    db_path = tmp_path / "repeat.db"
    for _ in range(2):
        store = JobStatusStore(db_path)
        store.init_schema()
        store.close()

    assert db_path.exists()
