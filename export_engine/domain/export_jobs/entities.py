"""
Export Job Entities

Domain entities for export job management. The ExportJob owns the lifecycle
state machine; every illegal transition raises JobStateError.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from ..errors import JobStateError
from ..events import (
    JobCancelledEvent,
    JobCompletedEvent,
    JobCreatedEvent,
    JobDeletedEvent,
    JobFailedEvent,
    JobStartedEvent,
    StepCompletedEvent,
    StepStartedEvent,
)
from .value_objects import (
    JobStatus,
    StepStatus,
    StoredPackage,
    format_datetime,
    parse_datetime,
    utc_now,
)

PACKAGE_ALGORITHM = "sha256"
DEFAULT_RETENTION_DAYS = 30


@dataclass
class JobStep:
    """One named unit of work within a job's ordered pipeline."""

    name: str
    status: StepStatus = StepStatus.PENDING
    message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "started_at": format_datetime(self.started_at),
            "completed_at": format_datetime(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "JobStep":
        return cls(
            name=data["name"],
            status=StepStatus(data.get("status", StepStatus.PENDING.value)),
            message=data.get("message"),
            started_at=parse_datetime(data.get("started_at")),
            completed_at=parse_datetime(data.get("completed_at")),
        )


@dataclass
class ExportJob:
    """
    Entity representing one export execution.

    Status moves forward only: pending -> in_progress -> completed | failed,
    and pending | in_progress -> cancelled. Terminal statuses never change.
    """

    job_id: str
    target_id: str
    owner_id: str
    status: JobStatus
    steps: List[JobStep]
    created_at: datetime
    updated_at: datetime
    target_type: Optional[str] = None
    steps_completed: int = 0
    progress_percentage: int = 0
    current_step: Optional[str] = None
    error_message: Optional[str] = None
    package_path: Optional[str] = None
    package_size_bytes: Optional[int] = None
    package_checksum: Optional[str] = None
    package_algorithm: str = PACKAGE_ALGORITHM
    checksum_verified_at: Optional[datetime] = None
    package_expires_at: Optional[datetime] = None
    package_retention_days: int = DEFAULT_RETENTION_DAYS
    download_count: int = 0
    last_downloaded_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    version: int = 0

    @classmethod
    def create(
        cls,
        target_id: str,
        owner_id: str,
        step_names: List[str],
        target_type: Optional[str] = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ) -> "ExportJob":
        """
        Factory method to create a new pending export job.

        Args:
            target_id: Resource being exported
            owner_id: Requesting principal
            step_names: Ordered step names, at least one
            target_type: Type of the target as reported by the registry
            retention_days: Days the package stays downloadable after completion

        Returns:
            New ExportJob instance

        Raises:
            ValueError: If no steps are given or retention_days is not positive
        """
        if not step_names:
            raise ValueError("An export job needs at least one step")
        if retention_days < 1:
            raise ValueError(f"retention_days must be positive, got {retention_days}")

        now = utc_now()
        return cls(
            job_id=str(uuid.uuid4()),
            target_id=target_id,
            owner_id=owner_id,
            target_type=target_type,
            status=JobStatus.PENDING,
            steps=[JobStep(name=name) for name in step_names],
            created_at=now,
            updated_at=now,
            package_retention_days=retention_days,
        )

    @property
    def steps_total(self) -> int:
        return len(self.steps)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def is_active(self) -> bool:
        return self.status.is_active()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the package retention window has passed."""
        if self.package_expires_at is None:
            return False
        return self.package_expires_at < (now or utc_now())

    def created_event(self) -> JobCreatedEvent:
        return JobCreatedEvent(
            aggregate_id=self.job_id,
            occurred_at=self.created_at,
            target_id=self.target_id,
            owner_id=self.owner_id,
            steps_total=self.steps_total,
        )

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    def start(self) -> JobStartedEvent:
        """
        Transition job from pending to in_progress.

        Raises:
            JobStateError: If job is not pending
        """
        self._require_status(JobStatus.PENDING, "start")
        now = utc_now()
        self.status = JobStatus.IN_PROGRESS
        self.started_at = now
        self.updated_at = now
        return JobStartedEvent(
            aggregate_id=self.job_id, occurred_at=now, target_id=self.target_id
        )

    def begin_step(self, index: int) -> StepStartedEvent:
        """
        Mark the step at index as in progress.

        Steps run strictly in order, so index must equal steps_completed.

        Raises:
            JobStateError: If the job is not in progress or the step is out of order
        """
        self._require_status(JobStatus.IN_PROGRESS, "begin a step of")
        step = self._step_at(index)
        if index != self.steps_completed or step.status != StepStatus.PENDING:
            raise JobStateError(
                f"Step {step.name} of job {self.job_id} cannot start: "
                f"status {step.status.value}, {self.steps_completed} steps completed"
            )

        now = utc_now()
        step.status = StepStatus.IN_PROGRESS
        step.started_at = now
        self.current_step = step.name
        self.updated_at = now
        return StepStartedEvent(
            aggregate_id=self.job_id, occurred_at=now, step_name=step.name, step_index=index
        )

    def report_step_progress(self, fraction: float) -> None:
        """
        Record a sub-step checkpoint of the running step.

        Progress never decreases; a fraction that would lower it is ignored.

        Args:
            fraction: Completed share of the current step, between 0 and 1
        """
        self._require_status(JobStatus.IN_PROGRESS, "report progress for")
        if self.current_step is None:
            raise JobStateError(f"Job {self.job_id} has no running step")
        fraction = min(max(fraction, 0.0), 1.0)
        before = self.progress_percentage
        self._advance_progress(fraction)
        if self.progress_percentage != before:
            self.updated_at = utc_now()

    def complete_step(self, index: int) -> StepCompletedEvent:
        """
        Mark the running step as completed and recompute progress.

        Raises:
            JobStateError: If the job is not in progress or the step is not running
        """
        self._require_status(JobStatus.IN_PROGRESS, "complete a step of")
        step = self._step_at(index)
        if step.status != StepStatus.IN_PROGRESS:
            raise JobStateError(
                f"Step {step.name} of job {self.job_id} is {step.status.value}, not in_progress"
            )

        now = utc_now()
        step.status = StepStatus.COMPLETED
        step.completed_at = now
        self.steps_completed += 1
        self.current_step = None
        self._advance_progress(0.0)
        self.updated_at = now
        return StepCompletedEvent(
            aggregate_id=self.job_id,
            occurred_at=now,
            step_name=step.name,
            steps_completed=self.steps_completed,
            steps_total=self.steps_total,
            progress_percentage=self.progress_percentage,
        )

    def fail_step(self, index: int, message: str) -> JobFailedEvent:
        """
        Mark the running step as failed and fail the job with its message.

        Remaining steps keep their pending status.

        Raises:
            JobStateError: If the job is not in progress or the step is not running
        """
        self._require_status(JobStatus.IN_PROGRESS, "fail a step of")
        step = self._step_at(index)
        if step.status != StepStatus.IN_PROGRESS:
            raise JobStateError(
                f"Step {step.name} of job {self.job_id} is {step.status.value}, not in_progress"
            )

        step.status = StepStatus.FAILED
        step.message = message
        step.completed_at = utc_now()
        return self.fail(message, failed_step=step.name)

    def fail(self, message: str, failed_step: Optional[str] = None) -> JobFailedEvent:
        """
        Transition an active job to failed.

        Args:
            message: Non-empty error description; recorded only once
            failed_step: Name of the failing step, if any

        Raises:
            JobStateError: If the job is already terminal
        """
        if not self.is_active():
            raise JobStateError(f"Cannot fail job {self.job_id} in {self.status.value} state")

        now = utc_now()
        self.status = JobStatus.FAILED
        if self.error_message is None:
            self.error_message = message or "Export failed"
        self.current_step = None
        self.completed_at = now
        self.updated_at = now
        return JobFailedEvent(
            aggregate_id=self.job_id,
            occurred_at=now,
            error_message=self.error_message,
            failed_step=failed_step,
        )

    def complete(self, package: StoredPackage) -> JobCompletedEvent:
        """
        Record the package and transition to completed.

        Package fields are written together with the status change and the
        retention window starts at completed_at.

        Raises:
            JobStateError: If the job is not in progress or steps remain
        """
        self._require_status(JobStatus.IN_PROGRESS, "complete")
        if self.steps_completed != self.steps_total:
            raise JobStateError(
                f"Cannot complete job {self.job_id}: "
                f"{self.steps_completed}/{self.steps_total} steps completed"
            )

        now = utc_now()
        self.status = JobStatus.COMPLETED
        self.package_path = package.path
        self.package_size_bytes = package.size_bytes
        self.package_checksum = package.checksum
        self.package_algorithm = PACKAGE_ALGORITHM
        self.progress_percentage = 100
        self.current_step = None
        self.completed_at = now
        self.package_expires_at = now + timedelta(days=self.package_retention_days)
        self.updated_at = now
        return JobCompletedEvent(
            aggregate_id=self.job_id,
            occurred_at=now,
            package_path=package.path,
            package_size_bytes=package.size_bytes,
            package_expires_at=self.package_expires_at,
        )

    def cancel(self, cancelled_by: str) -> JobCancelledEvent:
        """
        Transition an active job to cancelled.

        Completed steps stay recorded; the running step keeps its status.

        Raises:
            JobStateError: If the job is already terminal
        """
        if not self.is_active():
            raise JobStateError(
                f"Cannot cancel job {self.job_id} in {self.status.value} state"
            )

        now = utc_now()
        self.status = JobStatus.CANCELLED
        self.current_step = None
        self.completed_at = now
        self.updated_at = now
        return JobCancelledEvent(
            aggregate_id=self.job_id, occurred_at=now, cancelled_by=cancelled_by
        )

    # ------------------------------------------------------------------
    # Package lifecycle and audit metadata
    # ------------------------------------------------------------------

    def clear_package(self) -> None:
        """Drop the package location after its bytes were reclaimed. Status stays completed."""
        if self.status != JobStatus.COMPLETED or self.package_path is None:
            raise JobStateError(f"Job {self.job_id} has no package to clear")
        self.package_path = None
        self.package_size_bytes = None
        self.updated_at = utc_now()

    def mark_deleted(self, deleted_by: str) -> JobDeletedEvent:
        """
        Soft delete the job, keeping the row for audit.

        Raises:
            JobStateError: If the job is still active or already deleted
        """
        if self.is_deleted:
            raise JobStateError(f"Job {self.job_id} is already deleted")
        if self.is_active():
            raise JobStateError(
                f"Cannot delete job {self.job_id} while {self.status.value}; cancel it first"
            )
        now = utc_now()
        self.deleted_at = now
        self.updated_at = now
        return JobDeletedEvent(aggregate_id=self.job_id, occurred_at=now, deleted_by=deleted_by)

    def mark_checksum_verified(self, verified_at: Optional[datetime] = None) -> None:
        self.checksum_verified_at = verified_at or utc_now()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_status(self, expected: JobStatus, action: str) -> None:
        if self.status != expected:
            raise JobStateError(
                f"Cannot {action} job {self.job_id} in {self.status.value} state"
            )

    def _step_at(self, index: int) -> JobStep:
        if not 0 <= index < len(self.steps):
            raise JobStateError(f"Job {self.job_id} has no step at index {index}")
        return self.steps[index]

    def _advance_progress(self, fraction: float) -> None:
        # Capped at 99 so that 100 is reached only by complete().
        computed = math.floor(100 * (self.steps_completed + fraction) / self.steps_total)
        self.progress_percentage = max(self.progress_percentage, min(computed, 99))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Convert job to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "target_id": self.target_id,
            "target_type": self.target_type,
            "owner_id": self.owner_id,
            "status": self.status.value,
            "steps": [step.to_dict() for step in self.steps],
            "steps_completed": self.steps_completed,
            "steps_total": self.steps_total,
            "progress_percentage": self.progress_percentage,
            "current_step": self.current_step,
            "error_message": self.error_message,
            "package_path": self.package_path,
            "package_size_bytes": self.package_size_bytes,
            "package_checksum": self.package_checksum,
            "package_algorithm": self.package_algorithm,
            "checksum_verified_at": format_datetime(self.checksum_verified_at),
            "package_expires_at": format_datetime(self.package_expires_at),
            "package_retention_days": self.package_retention_days,
            "download_count": self.download_count,
            "last_downloaded_at": format_datetime(self.last_downloaded_at),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "started_at": format_datetime(self.started_at),
            "completed_at": format_datetime(self.completed_at),
            "deleted_at": format_datetime(self.deleted_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExportJob":
        """Create ExportJob from dictionary."""
        return cls(
            job_id=data["job_id"],
            target_id=data["target_id"],
            target_type=data.get("target_type"),
            owner_id=data["owner_id"],
            status=JobStatus(data["status"]),
            steps=[JobStep.from_dict(step) for step in data.get("steps") or []],
            steps_completed=int(data.get("steps_completed", 0)),
            progress_percentage=int(data.get("progress_percentage", 0)),
            current_step=data.get("current_step"),
            error_message=data.get("error_message"),
            package_path=data.get("package_path"),
            package_size_bytes=data.get("package_size_bytes"),
            package_checksum=data.get("package_checksum"),
            package_algorithm=data.get("package_algorithm") or PACKAGE_ALGORITHM,
            checksum_verified_at=parse_datetime(data.get("checksum_verified_at")),
            package_expires_at=parse_datetime(data.get("package_expires_at")),
            package_retention_days=int(
                data.get("package_retention_days", DEFAULT_RETENTION_DAYS)
            ),
            download_count=int(data.get("download_count", 0)),
            last_downloaded_at=parse_datetime(data.get("last_downloaded_at")),
            created_at=parse_datetime(data["created_at"]),
            updated_at=parse_datetime(data["updated_at"]),
            started_at=parse_datetime(data.get("started_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            deleted_at=parse_datetime(data.get("deleted_at")),
            version=int(data.get("version", 0)),
        )
