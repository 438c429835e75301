"""Identity generation for jobs and generated cards."""

from __future__ import annotations

from collections.abc import Callable
from uuid import uuid4

IdGenerator = Callable[[], str]


def new_id() -> str:
    """Return a globally unique identifier."""

    return str(uuid4())
