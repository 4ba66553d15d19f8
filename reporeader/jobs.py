# reporeader/jobs.py

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class Job:
    repo_id: str
    future: Future
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def state(self) -> str:
        if self.future.running():
            return "running"
        if not self.future.done():
            return "queued"
        if self.future.cancelled() or self.future.exception() is not None:
            return "failed"
        return "completed"


class JobRegistry:
    """Background ingestion jobs, one per repository id, run on a shared thread pool."""

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ingest-job")
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def submit(self, repo_id: str, fn: Callable, *args, **kwargs) -> Future:
        with self._lock:
            existing = self._jobs.get(repo_id)
            if existing is not None and not existing.future.done():
                return existing.future

            future = self._executor.submit(fn, *args, **kwargs)
            self._jobs[repo_id] = Job(repo_id=repo_id, future=future)

        future.add_done_callback(lambda f: self._on_done(repo_id, f))
        logger.info("[JOBS] Submitted ingestion job for repo %s", repo_id)
        return future

    def _on_done(self, repo_id: str, future: Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.error("[JOBS] Ingestion job for repo %s failed: %s", repo_id, future.exception())
        else:
            logger.info("[JOBS] Ingestion job for repo %s finished", repo_id)

    def get(self, repo_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(repo_id)

    def state(self, repo_id: str) -> Optional[str]:
        job = self.get(repo_id)
        return job.state if job else None

    def is_active(self, repo_id: str) -> bool:
        job = self.get(repo_id)
        return job is not None and not job.future.done()

    def wait(self, repo_id: str, timeout: Optional[float] = None) -> None:
        """Block until the repo's job is done. Does not raise the job's exception."""
        job = self.get(repo_id)
        if job is not None:
            try:
                job.future.result(timeout=timeout)
            except Exception:
                if not job.future.done():
                    raise

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)
