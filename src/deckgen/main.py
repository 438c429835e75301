"""CLI entrypoint for deckgen."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from deckgen import __version__
from deckgen.controllers import (
    DeckgenCliController,
    EnqueueCommand,
    PurgeStatusesCommand,
    StatusCommand,
    WorkerCommand,
)
from deckgen.errors import DeckgenError
from deckgen.queue.models import DEFAULT_DECK_SUBJECT, Tone

CommandT = TypeVar("CommandT")
ResultT = TypeVar("ResultT")

click.rich_click.USE_MARKDOWN = True
CONTROLLER = DeckgenCliController()


@click.group()
@click.version_option(version=__version__, prog_name="deckgen")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Root logger level.",
)
def deckgen(log_level: str) -> None:
    """Asynchronous flashcard deck generation queue."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@deckgen.command("worker")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--once/--loop",
    default=False,
    show_default=True,
    help="Process at most one message, or loop until idle.",
)
@click.option(
    "--max-jobs",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap for processed messages in loop mode.",
)
@click.option(
    "--max-idle-polls",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Consecutive empty polls before the loop exits.",
)
def worker(
    db_path: Path | None,
    once: bool,
    max_jobs: int | None,
    max_idle_polls: int,
) -> None:
    """Consume deck generation jobs from the broker queue."""

    _emit_lines(
        _run(
            CONTROLLER.run_worker,
            WorkerCommand(
                db_path=db_path,
                once=once,
                max_jobs=max_jobs,
                max_idle_polls=max_idle_polls,
            ),
        ),
    )


@deckgen.command("enqueue")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--deck-id", required=True, help="Target deck id.")
@click.option("--user-id", required=True, help="Owner of the deck.")
@click.option("--deck-name", required=True, help="Deck name shown to the generator.")
@click.option(
    "--deck-subject",
    default=DEFAULT_DECK_SUBJECT,
    show_default=True,
    help="Deck subject shown to the generator.",
)
@click.option("--content", default=None, help="Source text to generate cards from.")
@click.option(
    "--content-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read source text from a file instead of --content.",
)
@click.option("--goal", default=None, help="Optional study goal.")
@click.option(
    "--tone",
    type=click.Choice([tone.value for tone in Tone], case_sensitive=False),
    default=None,
    help="Generation tone (defaults to standard).",
)
def enqueue(  # noqa: PLR0913
    db_path: Path | None,
    deck_id: str,
    user_id: str,
    deck_name: str,
    deck_subject: str,
    content: str | None,
    content_file: Path | None,
    goal: str | None,
    tone: str | None,
) -> None:
    """Submit one generation job and print its id."""

    if (content is None) == (content_file is None):
        raise click.UsageError("Provide exactly one of --content or --content-file.")
    text = content_file.read_text("utf-8") if content_file is not None else content

    _emit_lines(
        _run(
            CONTROLLER.enqueue,
            EnqueueCommand(
                db_path=db_path,
                deck_id=deck_id,
                user_id=user_id,
                deck_name=deck_name,
                deck_subject=deck_subject,
                content=text or "",
                goal=goal,
                tone=tone.lower() if tone else None,
            ),
        ),
    )


@deckgen.command("status")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("job_id")
def status(db_path: Path | None, job_id: str) -> None:
    """Show the current status of one job."""

    report = _run(CONTROLLER.status, StatusCommand(db_path=db_path, job_id=job_id))
    if not report.found:
        raise click.ClickException(report.lines[0])
    _emit_lines(report.lines)


@deckgen.command("purge-statuses")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def purge_statuses(db_path: Path | None) -> None:
    """Delete expired job statuses and enforce the capacity bound."""

    _emit_lines(_run(CONTROLLER.purge_statuses, PurgeStatusesCommand(db_path=db_path)))


def _run(operation: Callable[[CommandT], ResultT], command: CommandT) -> ResultT:
    try:
        return operation(command)
    except (DeckgenError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    deckgen()
