"""
Job orchestration: bounded fan-out of targets over a thread pool.

Jobs live in a JobStore (one lock guards every job record). Workers never touch
a Job directly; they hand their Result back through `_record`, which drops it
when the job is no longer Running (cancelled while the fetch was in flight).
"""
import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Sequence

from .errors import JobNotFound, OrchestratorFault, ValidationError
from .models import Job, JobStatus, Result, Target, utc_now
from .runner import TargetRunner

logger = logging.getLogger(__name__)


class JobStore:
    def __init__(self):
        self._lock = threading.RLock()
        self._jobs: Dict[str, Job] = {}
        self._cancel: Dict[str, threading.Event] = {}
        self._done: Dict[str, threading.Event] = {}

    @property
    def lock(self):
        return self._lock

    def add(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job
            self._cancel[job.id] = threading.Event()
            self._done[job.id] = threading.Event()

    def _get(self, job_id: str) -> Job:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise JobNotFound(job_id) from None

    def get(self, job_id: str) -> Job:
        with self._lock:
            return self._get(job_id).snapshot()

    def list(self) -> List[Job]:
        with self._lock:
            jobs = [j.snapshot() for j in self._jobs.values()]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def delete(self, job_id: str) -> None:
        with self._lock:
            self._get(job_id)
            self._cancel[job_id].set()
            self._done[job_id].set()
            del self._jobs[job_id], self._cancel[job_id], self._done[job_id]

    def cancel_event(self, job_id: str) -> threading.Event:
        with self._lock:
            self._get(job_id)
            return self._cancel[job_id]

    def done_event(self, job_id: str) -> threading.Event:
        with self._lock:
            self._get(job_id)
            return self._done[job_id]

    def transition(self, job_id: str, status: JobStatus, error: Optional[str] = None) -> bool:
        """Move a job to `status`. Terminal states are final: returns False when the job already left Pending/Running."""
        with self._lock:
            job = self._get(job_id)
            if job.status.is_terminal:
                return False
            job.status = status
            if status is JobStatus.RUNNING:
                job.started_at = utc_now()
            if status.is_terminal:
                job.finished_at = utc_now()
                job.error = error
                self._done[job_id].set()
            logger.info("Job %s -> %s", job_id, status.value)
            return True

    def append_result(self, job_id: str, result: Result) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status is not JobStatus.RUNNING:
                return False
            job.results.append(result)
            return True


class JobOrchestrator:
    def __init__(self, runner: TargetRunner, store: Optional[JobStore] = None, concurrency: int = 4):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.runner = runner
        self.store = store or JobStore()
        self.concurrency = concurrency

    # ---------------------- public API ----------------------
    def submit(self, targets: Sequence[Target]) -> str:
        if not targets:
            raise ValidationError("at least one target is required")
        job = Job(id=str(uuid.uuid4()), targets=list(targets))
        self.store.add(job)
        logger.info("Job %s created with %d target(s)", job.id, len(job.targets))
        threading.Thread(target=self._dispatch, args=(job.id,), name=f"job-{job.id[:8]}", daemon=True).start()
        return job.id

    def status(self, job_id: str) -> Job:
        return self.store.get(job_id)

    def cancel(self, job_id: str) -> bool:
        event = self.store.cancel_event(job_id)
        if not self.store.transition(job_id, JobStatus.CANCELLED):
            return False
        event.set()
        return True

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        self.store.done_event(job_id).wait(timeout)
        return self.store.get(job_id)

    def list_jobs(self) -> List[Job]:
        return self.store.list()

    def delete(self, job_id: str) -> None:
        self.store.delete(job_id)

    # ---------------------- dispatch ----------------------
    def _run_one(self, job_id: str, index: int, target: Target, cancel: threading.Event) -> None:
        if cancel.is_set():
            return
        try:
            result = self.runner.run(target, index=index, cancelled=cancel.is_set)
        except Exception as e:
            logger.exception("Target %s of job %s crashed", target.url, job_id)
            result = Result(url=target.url, index=index, timestamp=utc_now(), success=False,
                            data={}, error=f"internal error: {e}", metadata={"errorKind": "internal"})
        if not self.store.append_result(job_id, result):
            logger.info("Discarded result for %s: job %s no longer running", target.url, job_id)

    def _dispatch(self, job_id: str) -> None:
        try:
            job = self.store.get(job_id)
            cancel = self.store.cancel_event(job_id)
            if not self.store.transition(job_id, JobStatus.RUNNING):
                return      # cancelled while pending

            with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix=f"job-{job_id[:8]}") as pool:
                futures = [pool.submit(self._run_one, job_id, i, t, cancel) for i, t in enumerate(job.targets)]
                wait(futures)
                for f in futures:
                    # _run_one isolates runner errors; anything left is an orchestrator bug
                    f.result()

            if cancel.is_set():
                return
            final = self.store.get(job_id)
            if len(final.results) != len(final.targets):
                raise OrchestratorFault(
                    f"job {job_id}: {len(final.results)} results for {len(final.targets)} targets")
            self.store.transition(job_id, JobStatus.COMPLETED)
        except JobNotFound:
            logger.info("Job %s deleted during dispatch", job_id)
        except Exception as e:
            logger.exception("Job %s failed", job_id)
            try:
                self.store.transition(job_id, JobStatus.FAILED, error=str(e))
            except JobNotFound:
                pass
