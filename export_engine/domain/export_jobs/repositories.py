"""
Export Job Repository Interface

Abstract persistence contract for export jobs. Implementations must make
create_if_absent and save atomic: the store is the only shared mutable state
between API processes, workers and the retention sweep.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entities import ExportJob


class ExportJobRepository(ABC):
    """Abstract repository interface for export job persistence."""

    @abstractmethod
    def create_if_absent(self, job: ExportJob) -> Optional[str]:
        """
        Atomically store a new job and claim its target's active slot.

        Args:
            job: Pending job to store

        Returns:
            None if the job was created, otherwise the id of the job that
            currently holds the target
        """
        pass

    @abstractmethod
    def get(self, job_id: str) -> Optional[ExportJob]:
        """
        Retrieve a job by ID, soft-deleted rows included.

        Args:
            job_id: Unique job identifier

        Returns:
            ExportJob if found, None otherwise
        """
        pass

    @abstractmethod
    def save(self, job: ExportJob) -> bool:
        """
        Compare-and-set write of an existing job.

        The write succeeds only if the stored version equals job.version. On
        success both the stored and the in-memory version are incremented.
        A job leaving the active statuses releases its target's slot in the
        same atomic write.

        Args:
            job: Job carrying the version it was read at

        Returns:
            True if written, False on a version conflict or a missing job
        """
        pass

    @abstractmethod
    def record_download(self, job_id: str, downloaded_at: datetime) -> bool:
        """
        Atomically increment download_count and set last_downloaded_at.

        Returns:
            True if the counters were updated
        """
        pass

    @abstractmethod
    def find_expired_packages(self, now: datetime, limit: int = 500) -> List[ExportJob]:
        """
        Find completed jobs whose package expired and whose path is still set.

        Args:
            now: Reference time
            limit: Maximum number of jobs to return

        Returns:
            Jobs ordered by package_expires_at, oldest first
        """
        pass

    @abstractmethod
    def list_jobs(self, owner_id: Optional[str] = None) -> List[ExportJob]:
        """
        Return candidate jobs for listing.

        Args:
            owner_id: Restrict to one owner; None returns every job

        Returns:
            Jobs in no guaranteed order, soft-deleted rows included
        """
        pass

    @abstractmethod
    def get_active_job_id(self, target_id: str) -> Optional[str]:
        """Return the id of the job holding the target's active slot, if any."""
        pass
