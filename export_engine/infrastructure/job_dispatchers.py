"""
Job Dispatchers

Execution backends for export jobs:

- CeleryJobDispatcher enqueues the run task on the export queue; one worker
  task per job.
- ThreadPoolJobDispatcher runs jobs on a local thread pool, for single-process
  deployments without a broker.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Dict

from export_engine.application.job_dispatcher import IJobDispatcher
from export_engine.config.celery_config import RUN_EXPORT_JOB_TASK
from export_engine.domain.export_jobs.step_runner import StepRunner

logger = logging.getLogger(__name__)


class CeleryJobDispatcher(IJobDispatcher):
    def __init__(self, celery_app):
        self.celery_app = celery_app

    def dispatch(self, job_id: str) -> None:
        # task_id == job_id keeps worker logs and revocations addressable by job.
        self.celery_app.send_task(RUN_EXPORT_JOB_TASK, args=(job_id,), task_id=job_id)
        logger.info(f"Enqueued Celery task for export job {job_id}")


class ThreadPoolJobDispatcher(IJobDispatcher):
    """
    Runs each job on a worker thread of a shared pool.

    Attributes:
        step_runner: Runner executing the jobs
        max_workers: Pool size; jobs beyond it wait in the pool queue as pending
    """

    def __init__(self, step_runner: StepRunner, max_workers: int = 4):
        self.step_runner = step_runner
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="export-job"
        )
        self._futures: Dict[str, Future] = {}
        self._lock = Lock()

    def dispatch(self, job_id: str) -> None:
        future = self._executor.submit(self._run, job_id)
        with self._lock:
            self._futures[job_id] = future
        future.add_done_callback(lambda _: self._forget(job_id))
        logger.info(f"Submitted export job {job_id} to local thread pool")

    def wait(self, job_id: str, timeout: float = None) -> None:
        """Block until a dispatched job finished; a no-op for unknown jobs."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run(self, job_id: str) -> None:
        try:
            self.step_runner.run(job_id)
        except Exception as e:
            logger.error(f"Export job {job_id} crashed in thread runner: {e}", exc_info=True)

    def _forget(self, job_id: str) -> None:
        with self._lock:
            self._futures.pop(job_id, None)
