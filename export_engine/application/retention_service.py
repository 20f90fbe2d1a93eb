"""
Package Retention Manager

Periodic sweep that reclaims storage for packages past their retention
window. Bytes are deleted first; metadata is cleared only after a
successful delete, so a failed delete is simply retried on the next sweep.
"""

import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from export_engine.domain.events import PackageExpiredEvent
from export_engine.domain.export_jobs.entities import ExportJob
from export_engine.domain.export_jobs.repositories import ExportJobRepository
from export_engine.domain.export_jobs.value_objects import JobStatus, utc_now
from export_engine.domain.package_storage import IPackageStorage

from .event_publisher import EventPublisher

logger = logging.getLogger(__name__)


@dataclass
class RetentionSweepResult:
    examined: int = 0
    reclaimed: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "examined": self.examined,
            "reclaimed": self.reclaimed,
            "failed": self.failed,
            "errors": list(self.errors),
        }


class PackageRetentionManager:
    """
    Deletes expired packages and clears their location on the job.

    The job status is never changed: a reclaimed job stays completed with
    no package path.
    """

    MAX_WRITE_ATTEMPTS = 3

    def __init__(
        self,
        job_repository: ExportJobRepository,
        package_storage: IPackageStorage,
        event_publisher: EventPublisher,
        batch_size: int = 500,
    ):
        self.job_repository = job_repository
        self.package_storage = package_storage
        self.event_publisher = event_publisher
        self.batch_size = batch_size

    def sweep(self, now: Optional[datetime] = None) -> RetentionSweepResult:
        """
        Reclaim every expired package found in one pass.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            Counters for the pass; individual failures never abort it
        """
        now = now or utc_now()
        result = RetentionSweepResult()

        for job in self.job_repository.find_expired_packages(now, limit=self.batch_size):
            result.examined += 1
            try:
                if self._reclaim(job, now):
                    result.reclaimed += 1
            except Exception as e:
                result.failed += 1
                result.errors.append(f"{job.job_id}: {e}")
                logger.warning(
                    f"Could not reclaim package {job.package_path} of job {job.job_id}, "
                    f"will retry next sweep: {e}"
                )

        if result.examined:
            logger.info(
                f"Retention sweep: examined={result.examined}, "
                f"reclaimed={result.reclaimed}, failed={result.failed}"
            )
        return result

    def remove_orphaned_workspaces(
        self, workspace_root: str, max_age_seconds: int, now: Optional[datetime] = None
    ) -> int:
        """
        Remove job workspace directories left behind by crashed runs.

        A directory is removed when it is older than max_age_seconds and its
        job is not pending or in progress.

        Returns:
            Number of directories removed
        """
        root = Path(workspace_root)
        if not root.is_dir():
            return 0

        cutoff = (now or utc_now()).timestamp() - max_age_seconds
        removed = 0
        for item in root.iterdir():
            if not item.is_dir() or item.stat().st_mtime > cutoff:
                continue
            job = self.job_repository.get(item.name)
            if job is not None and job.is_active():
                continue
            shutil.rmtree(item, ignore_errors=True)
            removed += 1
            logger.debug(f"Removed orphaned export workspace {item}")
        return removed

    def _reclaim(self, job: ExportJob, now: datetime) -> bool:
        path = job.package_path
        if not self.package_storage.delete(path):
            raise IOError(f"Storage backend did not delete {path}")

        for _ in range(self.MAX_WRITE_ATTEMPTS):
            current = self.job_repository.get(job.job_id)
            if (
                current is None
                or current.status != JobStatus.COMPLETED
                or current.package_path != path
                or not current.is_expired(now)
            ):
                return False

            current.clear_package()
            if self.job_repository.save(current):
                self.event_publisher.publish(
                    PackageExpiredEvent(
                        aggregate_id=current.job_id, occurred_at=now, package_path=path
                    )
                )
                return True

        raise IOError(f"Could not clear package metadata of job {job.job_id}")
