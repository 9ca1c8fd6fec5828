# =============================================================================
# Unit Tests — Status & Wait
# =============================================================================
#
# Runs a full JobSystem (SQLite job table, embedded Celery worker on the
# in-memory broker, FakeVectorStore)
# and checks get_status / wait_for_job outcomes:
#   completed → result, failed → JobFailed, unknown → JobNotFound,
#   deadline first → JobTimeout (the job keeps running)
# =============================================================================

import threading
import time

import pytest

from ragqueue.db.models import JobType
from ragqueue.jobs.errors import InvalidJobType, JobFailed, JobNotFound, JobTimeout
from ragqueue.jobs.events import JobEvents
from ragqueue.jobs.handlers import HandlerDeps
from ragqueue.jobs.queue import JobQueue
from ragqueue.jobs.status import StatusService
from ragqueue.models.requests import Tenant
from ragqueue.services.chunker import split_text
from tests.conftest import ALICE_CHAT_1, BOB_CHAT_1

THOUSAND_CHARS = ("Node.js is a JavaScript runtime built on V8. " * 30)[:1000]


def _slow_splitter(delay: float):
    def splitter(*args, **kwargs):
        time.sleep(delay)
        return split_text(*args, **kwargs)
    return splitter


class TestGetStatus:
    def test_unknown_job_is_none(self, make_system):
        assert make_system().get_status("missing") is None

    def test_waiting_job_snapshot(self, make_system):
        system = make_system()
        job_id = system.queue_text(ALICE_CHAT_1, THOUSAND_CHARS, chunk_size=200, chunk_overlap=20)

        status = system.get_status(job_id)

        assert status.id == job_id
        assert status.type == "chunk-text"
        assert status.state == "waiting"
        assert status.progress == 0
        assert status.result is None and status.error is None

    def test_rejected_job_shows_error(self, make_system):
        system = make_system()
        job_id = system.queue_text(Tenant(user_id="alice"), "hello")

        status = system.get_status(job_id)

        assert status.state == "failed"
        assert status.error == "ValidationError: Both user_id and chat_id are required"
        assert status.result is None


class TestWaitForJob:
    def test_returns_result_of_completed_job(self, make_system, run_worker):
        system = make_system()
        run_worker(system)
        job_id = system.queue_text(ALICE_CHAT_1, THOUSAND_CHARS, chunk_size=200, chunk_overlap=20)

        result = system.wait_for_job(job_id, timeout=10)

        assert result["chunk_count"] == 6
        status = system.get_status(job_id)
        assert status.state == "completed"
        assert status.progress == 100

    def test_already_finished_job_returns_at_once(self, make_system, run_worker):
        system = make_system()
        run_worker(system)
        job_id = system.queue_text(ALICE_CHAT_1, THOUSAND_CHARS)
        system.wait_for_job(job_id, timeout=10)

        started = time.monotonic()
        result = system.wait_for_job(job_id, timeout=10)

        assert result["chunk_count"] > 0
        assert time.monotonic() - started < 1.0

    def test_unknown_job_raises_not_found(self, make_system):
        with pytest.raises(JobNotFound):
            make_system().wait_for_job("missing", timeout=0.1)

    def test_rejected_job_raises_failed(self, make_system):
        system = make_system()
        job_id = system.queue_search(Tenant(chat_id="c1"), "node js")

        with pytest.raises(JobFailed) as exc_info:
            system.wait_for_job(job_id, timeout=1)

        assert exc_info.value.error == "ValidationError: Both user_id and chat_id are required"

    def test_handler_failure_raises_failed(self, make_system, run_worker, tmp_path):
        system = make_system()
        run_worker(system)
        job_id = system.queue_document(ALICE_CHAT_1, str(tmp_path / "missing.txt"))

        with pytest.raises(JobFailed) as exc_info:
            system.wait_for_job(job_id, timeout=10)

        assert exc_info.value.error.startswith("FileNotFoundError")

    def test_timeout_leaves_job_running(self, make_system, run_worker, tenant_store):
        system = make_system(
            pool_size=1,
            deps=HandlerDeps(tenant_store=tenant_store, splitter=_slow_splitter(0.5)),
        )
        run_worker(system)
        job_id = system.queue_text(ALICE_CHAT_1, THOUSAND_CHARS, chunk_size=200, chunk_overlap=20)

        with pytest.raises(JobTimeout):
            system.wait_for_job(job_id, timeout=0.05)

        assert system.get_status(job_id).state in ("waiting", "active")
        assert system.wait_for_job(job_id, timeout=10)["chunk_count"] == 6

    def test_waiting_job_without_workers_times_out(self, make_system):
        system = make_system()
        job_id = system.queue_search(ALICE_CHAT_1, "node js")

        with pytest.raises(JobTimeout):
            system.wait_for_job(job_id, timeout=0.05)

        assert system.get_status(job_id).state == "waiting"
        assert system.status._events.waiter_count(job_id) == 0

    def test_many_waiters_all_woken(self, make_system, run_worker, tenant_store):
        system = make_system(
            pool_size=1,
            deps=HandlerDeps(tenant_store=tenant_store, splitter=_slow_splitter(0.2)),
        )
        job_id = system.queue_text(ALICE_CHAT_1, THOUSAND_CHARS, chunk_size=200, chunk_overlap=20)
        results: list[dict] = []
        lock = threading.Lock()

        def wait():
            result = system.wait_for_job(job_id, timeout=10)
            with lock:
                results.append(result)

        waiters = [threading.Thread(target=wait) for _ in range(5)]
        for t in waiters:
            t.start()
        run_worker(system)
        for t in waiters:
            t.join(timeout=15)

        assert len(results) == 5
        assert all(r["chunk_count"] == 6 for r in results)


class TestTenantScenarios:
    def test_search_after_ingest_stays_within_tenant(self, make_system, run_worker):
        system = make_system()
        run_worker(system)
        system.wait_for_job(system.queue_text(ALICE_CHAT_1, "node js " * 100, 100, 10), timeout=10)

        own = system.wait_for_job(system.queue_search(ALICE_CHAT_1, "node js"), timeout=10)
        other = system.wait_for_job(system.queue_search(BOB_CHAT_1, "node js"), timeout=10)

        assert own["results_count"] > 0
        assert other == {"results_count": 0, "results": []}

    def test_enqueue_rejects_unknown_type(self, make_system):
        with pytest.raises(InvalidJobType):
            make_system().enqueue("summarize", ALICE_CHAT_1, {})


class TestExplicitZeroes:
    @pytest.mark.parametrize(
        "submit",
        [
            lambda s: s.queue_text(ALICE_CHAT_1, THOUSAND_CHARS, chunk_size=0, chunk_overlap=0),
            lambda s: s.queue_document(ALICE_CHAT_1, "notes.txt", chunk_size=0, chunk_overlap=0),
            lambda s: s.queue_search(ALICE_CHAT_1, "node js", top_k=0),
        ],
        ids=["text-chunk-size", "document-chunk-size", "search-top-k"],
    )
    def test_zero_is_rejected_not_replaced_by_default(self, make_system, submit):
        system = make_system()

        status = system.get_status(submit(system))

        assert status.state == "failed"
        assert status.error.startswith("ValidationError")


class TestStatusServiceWithoutWorkers:
    """Transitions driven by hand, to pin the wake-up ordering."""

    def test_completion_between_read_and_wait_is_not_missed(self, session_factory):
        events = JobEvents()
        queue = JobQueue(session_factory, events)
        queue.create_schema()
        status = StatusService(queue)
        job_id = queue.enqueue(JobType.SEARCH, ALICE_CHAT_1, {"query": "q"})

        def finish_soon():
            time.sleep(0.05)
            queue.claim(job_id, "w1")
            queue.complete(job_id, {"results_count": 0, "results": []})

        threading.Thread(target=finish_soon).start()

        assert status.wait_for_job(job_id, timeout=5) == {"results_count": 0, "results": []}

    def test_completion_in_another_process_is_noticed(self, session_factory):
        # A separate queue + event hub stands in for a worker process: its
        # terminal event never reaches this process's waiters
        queue = JobQueue(session_factory, JobEvents())
        queue.create_schema()
        worker_side = JobQueue(session_factory, JobEvents())
        status = StatusService(queue, poll_interval=0.02)
        job_id = queue.enqueue(JobType.SEARCH, ALICE_CHAT_1, {"query": "q"})

        def finish_elsewhere():
            time.sleep(0.1)
            worker_side.claim(job_id, "celery@other-host")
            worker_side.fail(job_id, "HandlerError: boom")

        threading.Thread(target=finish_elsewhere).start()

        started = time.monotonic()
        with pytest.raises(JobFailed) as exc_info:
            status.wait_for_job(job_id, timeout=5)

        assert exc_info.value.error == "HandlerError: boom"
        assert time.monotonic() - started < 2.0
