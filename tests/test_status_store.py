from __future__ import annotations

import threading
from datetime import timedelta
from pathlib import Path

import allure

from deckgen.queue.models import UNKNOWN_JOB_ID, CardPreview, JobState, JobStatus
from deckgen.queue.status_store import JobStatusStore
from deckgen.storage.common import utc_now

pytestmark = [
    allure.epic("Deck Generation Queue"),
    allure.feature("Job Status Store"),
]


def test_unknown_job_reads_as_not_found(status_store: JobStatusStore) -> None:
    assert status_store.get("missing-job") is None


def test_lifecycle_queued_processing_completed(status_store: JobStatusStore) -> None:
    assert status_store.set("job-1", JobStatus.queued()) is True
    assert status_store.get("job-1") == JobStatus.queued()

    assert status_store.set("job-1", JobStatus.processing()) is True
    assert status_store.get("job-1").state == JobState.PROCESSING

    preview = [CardPreview(question="Q1", answer="A1"), CardPreview(question="Q2", answer="A2")]
    assert status_store.set("job-1", JobStatus.completed(preview)) is True

    status = status_store.get("job-1")
    assert status is not None
    assert status.state == JobState.COMPLETED
    assert status.message == "Cards generated and added to the deck."
    assert list(status.cards) == preview
    assert status.to_dict()["cards"] == [
        {"question": "Q1", "answer": "A1"},
        {"question": "Q2", "answer": "A2"},
    ]


def test_terminal_status_is_final(status_store: JobStatusStore) -> None:
    status_store.set("job-1", JobStatus.queued())
    status_store.set("job-1", JobStatus.processing())
    status_store.set("job-1", JobStatus.failed())

    assert status_store.set("job-1", JobStatus.processing()) is False
    assert status_store.set("job-1", JobStatus.completed([CardPreview("Q", "A")])) is False
    assert status_store.set("job-1", JobStatus.queued()) is False
    assert status_store.get("job-1") == JobStatus.failed()


def test_queued_cannot_be_recorded_twice_or_after_processing(
    status_store: JobStatusStore,
) -> None:
    status_store.set("job-1", JobStatus.queued())
    assert status_store.set("job-1", JobStatus.queued()) is False

    status_store.set("job-1", JobStatus.processing())
    assert status_store.set("job-1", JobStatus.queued()) is False
    assert status_store.get("job-1").state == JobState.PROCESSING


def test_failed_may_be_recorded_without_prior_entry(status_store: JobStatusStore) -> None:
    assert status_store.set("never-queued", JobStatus.failed()) is True
    assert status_store.get("never-queued") == JobStatus.failed()


def test_unknown_sentinel_keeps_latest_failure(status_store: JobStatusStore) -> None:
    assert status_store.set(UNKNOWN_JOB_ID, JobStatus.failed()) is True
    assert status_store.set(UNKNOWN_JOB_ID, JobStatus.failed("second failure")) is True
    assert status_store.get(UNKNOWN_JOB_ID) == JobStatus.failed("second failure")


def test_entries_expire_after_retention(db_path: Path) -> None:
    store = JobStatusStore(db_path, retention_seconds=60, max_entries=100)
    store.init_schema()
    try:
        started = utc_now()
        store.set("job-1", JobStatus.queued(), now=started)

        assert store.get("job-1", now=started + timedelta(seconds=59)) is not None
        assert store.get("job-1", now=started + timedelta(seconds=61)) is None
        assert store.purge(now=started + timedelta(seconds=61)) == 1
        assert store.get("job-1", now=started) is None
    finally:
        store.close()


def test_every_write_refreshes_expiry(db_path: Path) -> None:
    store = JobStatusStore(db_path, retention_seconds=60, max_entries=100)
    store.init_schema()
    try:
        started = utc_now()
        store.set("job-1", JobStatus.queued(), now=started)
        store.set("job-1", JobStatus.processing(), now=started + timedelta(seconds=50))

        status = store.get("job-1", now=started + timedelta(seconds=100))
        assert status is not None
        assert status.state == JobState.PROCESSING
    finally:
        store.close()


def test_capacity_evicts_least_recently_updated(db_path: Path) -> None:
    store = JobStatusStore(db_path, retention_seconds=3600, max_entries=2)
    store.init_schema()
    try:
        started = utc_now()
        store.set("job-1", JobStatus.queued(), now=started)
        store.set("job-2", JobStatus.queued(), now=started + timedelta(seconds=1))
        store.set("job-1", JobStatus.processing(), now=started + timedelta(seconds=2))
        store.set("job-3", JobStatus.queued(), now=started + timedelta(seconds=3))

        assert store.get("job-2") is None
        assert store.get("job-1") is not None
        assert store.get("job-3") is not None
    finally:
        store.close()


def test_discard_queued_only_removes_queued_entries(status_store: JobStatusStore) -> None:
    status_store.set("job-1", JobStatus.queued())
    status_store.set("job-2", JobStatus.queued())
    status_store.set("job-2", JobStatus.processing())

    assert status_store.discard_queued("job-1") is True
    assert status_store.discard_queued("job-2") is False
    assert status_store.get("job-1") is None
    assert status_store.get("job-2").state == JobState.PROCESSING


def test_status_survives_store_reopen(db_path: Path, status_store: JobStatusStore) -> None:
    status_store.set("job-1", JobStatus.queued())

    reopened = JobStatusStore(db_path)
    try:
        assert reopened.get("job-1") == JobStatus.queued()
    finally:
        reopened.close()


def test_concurrent_writers_record_exactly_one_terminal_state(
    status_store: JobStatusStore,
) -> None:
    status_store.set("job-1", JobStatus.queued())
    results: list[bool] = []
    lock = threading.Lock()

    def _write(status: JobStatus) -> None:
        accepted = status_store.set("job-1", status)
        with lock:
            results.append(accepted)

    threads = [
        threading.Thread(target=_write, args=(JobStatus.failed(),)),
        threading.Thread(target=_write, args=(JobStatus.completed([CardPreview("Q", "A")]),)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(results) == [False, True]
    assert status_store.get("job-1").state.is_terminal
