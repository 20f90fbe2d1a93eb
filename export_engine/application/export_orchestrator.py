"""
Export Job Orchestrator

Single authoritative gate for job creation, cancellation, soft deletion and
status reads. Creation relies on the store's atomic create-if-absent, so two
concurrent starts for one target can never both succeed.
"""

import logging
from typing import List, Optional

from export_engine.domain.errors import (
    ForbiddenError,
    InvalidExportRequestError,
    JobConflictError,
    JobDispatchError,
    JobNotFoundError,
    JobStateError,
    PackageNotFoundError,
    TargetNotFoundError,
)
from export_engine.domain.export_jobs.entities import ExportJob
from export_engine.domain.export_jobs.repositories import ExportJobRepository
from export_engine.domain.export_jobs.step_runner import StepRegistry
from export_engine.domain.export_jobs.value_objects import CallerScope, JobStatus
from export_engine.domain.targets import ITargetRegistry

from .event_publisher import EventPublisher
from .job_dispatcher import IJobDispatcher

logger = logging.getLogger(__name__)

MAX_RETENTION_DAYS = 365


class JobOrchestrator:
    """
    Owns the export job lifecycle as seen by callers.

    Execution itself happens elsewhere: start() only creates the pending row
    and hands the job id to the dispatcher.
    """

    MAX_WRITE_ATTEMPTS = 5

    def __init__(
        self,
        job_repository: ExportJobRepository,
        target_registry: ITargetRegistry,
        step_registry: StepRegistry,
        dispatcher: IJobDispatcher,
        event_publisher: EventPublisher,
        default_steps: Optional[List[str]] = None,
        default_retention_days: int = 30,
    ):
        self.job_repository = job_repository
        self.target_registry = target_registry
        self.step_registry = step_registry
        self.dispatcher = dispatcher
        self.event_publisher = event_publisher
        self.default_steps = list(default_steps or [])
        self.default_retention_days = default_retention_days

    def start(
        self,
        target_id: str,
        scope: CallerScope,
        step_names: Optional[List[str]] = None,
        retention_days: Optional[int] = None,
    ) -> ExportJob:
        """
        Create a pending export job and schedule its execution.

        Args:
            target_id: Resource to export
            scope: Requesting caller; becomes the job owner
            step_names: Ordered step names, defaults to the configured pipeline
            retention_days: Package retention window, defaults to configuration

        Returns:
            The pending job as stored

        Raises:
            TargetNotFoundError: If the target is unknown or not accessible
            InvalidExportRequestError: If steps or retention are invalid
            JobConflictError: If another job is active for the target
            JobDispatchError: If the job could not be scheduled
        """
        target = self.target_registry.get(target_id)
        if target is None or not target.is_accessible(scope):
            raise TargetNotFoundError(f"Export target {target_id} not found")

        names = self.default_steps if step_names is None else list(step_names)
        if not names:
            raise InvalidExportRequestError("At least one export step is required")
        self.step_registry.validate(names)

        retention = self.default_retention_days if retention_days is None else retention_days
        if not 1 <= retention <= MAX_RETENTION_DAYS:
            raise InvalidExportRequestError(
                f"retention_days must be between 1 and {MAX_RETENTION_DAYS}, got {retention}"
            )

        job = ExportJob.create(
            target_id=target_id,
            owner_id=scope.user_id,
            step_names=names,
            target_type=target.target_type,
            retention_days=retention,
        )
        holder = self.job_repository.create_if_absent(job)
        if holder is not None:
            raise JobConflictError(target_id, holder)

        self.event_publisher.publish(job.created_event())

        try:
            self.dispatcher.dispatch(job.job_id)
        except Exception as e:
            logger.error(f"Failed to dispatch export job {job.job_id}: {e}", exc_info=True)
            self._mark_dispatch_failed(job.job_id, str(e))
            raise JobDispatchError(
                f"Export job {job.job_id} could not be scheduled", original_error=e
            ) from e

        return job

    def get_status(self, job_id: str, scope: CallerScope) -> ExportJob:
        """
        Read a job visible to the caller.

        Raises:
            JobNotFoundError: If absent, soft-deleted or not visible
        """
        return self._get_visible(job_id, scope)

    def cancel(self, job_id: str, scope: CallerScope) -> ExportJob:
        """
        Cancel a pending or running job.

        The step runner notices at its next checkpoint and stops; steps that
        already completed stay recorded.

        Raises:
            JobNotFoundError: If the job is not visible to the caller
            JobStateError: If the job already reached a terminal status
        """
        self._get_visible(job_id, scope)
        return self._update(job_id, lambda job: job.cancel(scope.user_id))

    def delete(self, job_id: str, scope: CallerScope) -> None:
        """
        Soft delete a job. Package bytes are left for the retention sweep.

        Raises:
            ForbiddenError: If the caller is not an administrator
            JobNotFoundError: If the job does not exist or is already deleted
            JobStateError: If the job is still pending or running
        """
        if not scope.is_admin:
            raise ForbiddenError("Only administrators can delete export jobs")
        self._get_visible(job_id, scope)
        self._update(job_id, lambda job: job.mark_deleted(scope.user_id))

    def get_checksum(self, job_id: str, scope: CallerScope) -> dict:
        """
        Integrity information of a completed job's package.

        Raises:
            JobNotFoundError: If the job is not visible to the caller
            PackageNotFoundError: If the job has no package checksum
        """
        job = self._get_visible(job_id, scope)
        if job.status != JobStatus.COMPLETED or not job.package_checksum:
            raise PackageNotFoundError(f"Export job {job_id} has no package checksum")
        return {
            "job_id": job.job_id,
            "checksum": job.package_checksum,
            "algorithm": job.package_algorithm,
            "package_size_bytes": job.package_size_bytes,
            "checksum_verified_at": (
                job.checksum_verified_at.isoformat() if job.checksum_verified_at else None
            ),
        }

    def _get_visible(self, job_id: str, scope: CallerScope) -> ExportJob:
        job = self.job_repository.get(job_id)
        if job is None or job.is_deleted or not scope.can_view(job.owner_id):
            raise JobNotFoundError(f"Export job {job_id} not found")
        return job

    def _update(self, job_id: str, mutate) -> ExportJob:
        """Compare-and-set loop; mutate raises JobStateError on illegal transitions."""
        for _ in range(self.MAX_WRITE_ATTEMPTS):
            job = self.job_repository.get(job_id)
            if job is None or job.is_deleted:
                raise JobNotFoundError(f"Export job {job_id} not found")

            event = mutate(job)
            if self.job_repository.save(job):
                self.event_publisher.publish(event)
                return job
            logger.debug(f"Version conflict updating export job {job_id}, retrying")

        raise JobStateError(f"Export job {job_id} is changing too quickly, try again")

    def _mark_dispatch_failed(self, job_id: str, reason: str) -> None:
        try:
            self._update(job_id, lambda job: job.fail(f"Could not schedule export: {reason}"))
        except (JobStateError, JobNotFoundError) as e:
            logger.warning(f"Could not mark export job {job_id} as failed: {e}")
