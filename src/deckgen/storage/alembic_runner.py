"""Programmatic Alembic upgrades for the deckgen SQLite database."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_upgrade_lock = threading.Lock()
_upgraded: set[Path] = set()


def upgrade_head(db_path: Path) -> None:
    """Apply migrations up to head once per database path and process."""

    resolved = db_path.resolve()
    with _upgrade_lock:
        if resolved in _upgraded and resolved.exists():
            return
        resolved.parent.mkdir(parents=True, exist_ok=True)
        config = Config(str(_PROJECT_ROOT / "alembic.ini"))
        config.set_main_option("script_location", str(_PROJECT_ROOT / "alembic"))
        config.set_main_option("sqlalchemy.url", f"sqlite:///{resolved}")
        command.upgrade(config, "head")
        _upgraded.add(resolved)
        logger.debug("Database schema at head: %s", resolved)
