"""
Domain Events

Immutable records of significant state changes in the export domain.
Events decouple side effects (logging, notifications) from core business logic.
"""

from abc import ABC
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class DomainEvent(ABC):
    """
    Base class for all domain events.

    Attributes:
        aggregate_id: ID of the aggregate that generated the event (the job_id)
        occurred_at: Timestamp when the event occurred
    """

    aggregate_id: str
    occurred_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert event to dictionary for serialization.

        Returns:
            Dictionary representation of the event
        """
        return {
            "event_type": self.__class__.__name__,
            "aggregate_id": self.aggregate_id,
            "occurred_at": self.occurred_at.isoformat(),
        }


@dataclass(frozen=True)
class JobCreatedEvent(DomainEvent):
    """Emitted when an export job is created in pending state."""

    target_id: str
    owner_id: str
    steps_total: int

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update(
            {
                "target_id": self.target_id,
                "owner_id": self.owner_id,
                "steps_total": self.steps_total,
            }
        )
        return base_dict


@dataclass(frozen=True)
class JobStartedEvent(DomainEvent):
    """Emitted when the step runner claims a pending job."""

    target_id: str

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict["target_id"] = self.target_id
        return base_dict


@dataclass(frozen=True)
class StepStartedEvent(DomainEvent):
    step_name: str
    step_index: int

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({"step_name": self.step_name, "step_index": self.step_index})
        return base_dict


@dataclass(frozen=True)
class StepCompletedEvent(DomainEvent):
    step_name: str
    steps_completed: int
    steps_total: int
    progress_percentage: int

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update(
            {
                "step_name": self.step_name,
                "steps_completed": self.steps_completed,
                "steps_total": self.steps_total,
                "progress_percentage": self.progress_percentage,
            }
        )
        return base_dict


@dataclass(frozen=True)
class JobCompletedEvent(DomainEvent):
    """
    Emitted when every step succeeded and the package was recorded.

    Attributes:
        package_path: Storage path of the package
        package_size_bytes: Package size
        package_expires_at: End of the retention window
    """

    package_path: str
    package_size_bytes: int
    package_expires_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update(
            {
                "package_path": self.package_path,
                "package_size_bytes": self.package_size_bytes,
                "package_expires_at": self.package_expires_at.isoformat(),
            }
        )
        return base_dict


@dataclass(frozen=True)
class JobFailedEvent(DomainEvent):
    error_message: str
    failed_step: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update(
            {"error_message": self.error_message, "failed_step": self.failed_step}
        )
        return base_dict


@dataclass(frozen=True)
class JobCancelledEvent(DomainEvent):
    cancelled_by: str

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict["cancelled_by"] = self.cancelled_by
        return base_dict


@dataclass(frozen=True)
class JobDeletedEvent(DomainEvent):
    deleted_by: str

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict["deleted_by"] = self.deleted_by
        return base_dict


@dataclass(frozen=True)
class PackageExpiredEvent(DomainEvent):
    """Emitted by the retention sweep after the package bytes were deleted."""

    package_path: str

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict["package_path"] = self.package_path
        return base_dict


@dataclass(frozen=True)
class PackageDownloadedEvent(DomainEvent):
    downloaded_by: str
    byte_start: int
    byte_end: int
    partial: bool

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update(
            {
                "downloaded_by": self.downloaded_by,
                "byte_start": self.byte_start,
                "byte_end": self.byte_end,
                "partial": self.partial,
            }
        )
        return base_dict
