import threading

import pytest

from conftest import LIST_PAGE, FakeCollector
from web_extractor.core.errors import FetchError, FetchErrorKind, JobNotFound, ValidationError
from web_extractor.core.fetcher import FetchAdapter
from web_extractor.core.models import JobStatus, Target
from web_extractor.core.orchestrator import JobOrchestrator
from web_extractor.core.runner import TargetRunner

SEL = [{"id": "h1", "name": "h1", "path": "h1", "kind": "text"}]


def targets(*urls):
    return [Target.from_dict({"url": u, "selectors": SEL}) for u in urls]


def orchestrator_for(collector, concurrency=2):
    return JobOrchestrator(TargetRunner(FetchAdapter(collector, sleep=lambda s: None)), concurrency=concurrency)


class BlockingCollector(FakeCollector):
    """Blocks every fetch of `url` until `release` is set."""

    def __init__(self, pages, url):
        super().__init__(pages)
        self.url = url
        self.started = threading.Event()
        self.release = threading.Event()

    def collect(self, url, options):
        if url == self.url:
            self.started.set()
            self.release.wait(5)
        return super().collect(url, options)


def test_completed_job_has_one_result_per_target():
    urls = [f"https://site{i}.example.com/" for i in range(6)]
    orch = orchestrator_for(FakeCollector({u: LIST_PAGE for u in urls}), concurrency=3)
    job = orch.wait(orch.submit(targets(*urls)), timeout=5)
    assert job.status is JobStatus.COMPLETED
    assert len(job.results) == len(job.targets) == 6
    assert sorted(r.index for r in job.results) == list(range(6))
    assert [t.url for t in job.targets] == urls
    assert job.started_at and job.finished_at


def test_timeout_on_one_target_does_not_fail_job():
    orch = orchestrator_for(FakeCollector({
        "https://slow.example.com/": FetchError(FetchErrorKind.TIMEOUT, "timeout after 30000 ms"),
        "https://fast.example.com/": LIST_PAGE,
    }))
    job = orch.wait(orch.submit(targets("https://slow.example.com/", "https://fast.example.com/")), timeout=5)
    assert job.status is JobStatus.COMPLETED
    by_url = {r.url: r for r in job.results}
    assert by_url["https://slow.example.com/"].success is False
    assert by_url["https://slow.example.com/"].metadata["errorKind"] == "timeout"
    assert by_url["https://fast.example.com/"].success is True


def test_runner_crash_is_isolated():
    class Crashing(FakeCollector):
        def collect(self, url, options):
            if "crash" in url:
                raise RuntimeError("kaboom")
            return super().collect(url, options)

    orch = orchestrator_for(Crashing({"https://ok.example.com/": LIST_PAGE}))
    job = orch.wait(orch.submit(targets("https://crash.example.com/", "https://ok.example.com/")), timeout=5)
    assert job.status is JobStatus.COMPLETED
    crashed = next(r for r in job.results if "crash" in r.url)
    assert crashed.success is False and "kaboom" in crashed.error


def test_empty_submission_is_rejected():
    with pytest.raises(ValidationError):
        orchestrator_for(FakeCollector()).submit([])


def test_cancel_running_job_keeps_completed_results_only():
    urls = ["https://done.example.com/", "https://stuck.example.com/", "https://never.example.com/"]
    collector = BlockingCollector({u: LIST_PAGE for u in urls}, url="https://stuck.example.com/")
    orch = orchestrator_for(collector, concurrency=1)
    job_id = orch.submit(targets(*urls))

    assert collector.started.wait(5)
    assert orch.status(job_id).status is JobStatus.RUNNING
    assert orch.cancel(job_id) is True
    collector.release.set()

    job = orch.wait(job_id, timeout=5)
    assert job.status is JobStatus.CANCELLED
    assert [r.url for r in job.results] == ["https://done.example.com/"]
    # the pending target was never dispatched
    assert "https://never.example.com/" not in collector.calls

    assert orch.cancel(job_id) is False


def test_cancel_terminal_job_returns_false():
    orch = orchestrator_for(FakeCollector({"https://example.com/": LIST_PAGE}))
    job_id = orch.submit(targets("https://example.com/"))
    orch.wait(job_id, timeout=5)
    assert orch.cancel(job_id) is False
    assert orch.status(job_id).status is JobStatus.COMPLETED


def test_status_is_a_snapshot():
    orch = orchestrator_for(FakeCollector({"https://example.com/": LIST_PAGE}))
    job_id = orch.submit(targets("https://example.com/"))
    orch.wait(job_id, timeout=5)
    snap = orch.status(job_id)
    snap.results.clear()
    assert len(orch.status(job_id).results) == 1


def test_dispatch_fault_marks_job_failed(monkeypatch):
    orch = orchestrator_for(FakeCollector({"https://example.com/": LIST_PAGE}))

    def broken(*args, **kwargs):
        raise RuntimeError("cannot schedule new futures after shutdown")

    monkeypatch.setattr("web_extractor.core.orchestrator.ThreadPoolExecutor.submit", broken)
    job = orch.wait(orch.submit(targets("https://example.com/")), timeout=5)
    assert job.status is JobStatus.FAILED
    assert "cannot schedule" in job.error


def test_unknown_job_and_delete():
    orch = orchestrator_for(FakeCollector({"https://example.com/": LIST_PAGE}))
    with pytest.raises(JobNotFound):
        orch.status("nope")
    job_id = orch.submit(targets("https://example.com/"))
    orch.wait(job_id, timeout=5)
    assert [j.id for j in orch.list_jobs()] == [job_id]
    orch.delete(job_id)
    with pytest.raises(JobNotFound):
        orch.status(job_id)
