"""
Export Job Value Objects

Immutable value objects for job status, caller scope, packages and listing queries.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string, assuming UTC when no offset is present."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class JobStatus(Enum):
    """Export job status enumeration."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def is_terminal(self) -> bool:
        """Check if status is terminal (completed, failed or cancelled)."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    def is_active(self) -> bool:
        """Check if the job still holds its target (pending or in progress)."""
        return self in (JobStatus.PENDING, JobStatus.IN_PROGRESS)


class StepStatus(Enum):
    """Status of a single step within a job."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class CallerRole(Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class CallerScope:
    """
    Identity and role of the principal making a request.

    Supplied by the authentication layer; the engine only authorizes against it.
    """

    user_id: str
    role: CallerRole = CallerRole.USER

    def __post_init__(self):
        if not self.user_id or not str(self.user_id).strip():
            raise ValueError("user_id is required")

    @property
    def is_admin(self) -> bool:
        return self.role == CallerRole.ADMIN

    def can_view(self, owner_id: str) -> bool:
        """Admins see every job, users only their own."""
        return self.is_admin or owner_id == self.user_id

    @classmethod
    def admin(cls, user_id: str) -> "CallerScope":
        return cls(user_id=user_id, role=CallerRole.ADMIN)

    @classmethod
    def user(cls, user_id: str) -> "CallerScope":
        return cls(user_id=user_id, role=CallerRole.USER)


@dataclass(frozen=True)
class StoredPackage:
    """
    Value object describing a package written to the storage backend.

    Attributes:
        path: Backend-specific path of the stored object
        size_bytes: Size of the stored object
        checksum: SHA-256 hex digest, None when it could not be computed
    """

    path: str
    size_bytes: int
    checksum: Optional[str] = None

    def __post_init__(self):
        if not self.path:
            raise ValueError("Package path is required")
        if self.size_bytes < 0:
            raise ValueError(f"Package size must be non-negative, got {self.size_bytes}")


class SortField(Enum):
    CREATED_AT = "created_at"
    COMPLETED_AT = "completed_at"
    DOWNLOAD_COUNT = "download_count"
    PACKAGE_SIZE_BYTES = "package_size_bytes"


class SortDirection(Enum):
    ASC = "asc"
    DESC = "desc"


DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class JobListQuery:
    """
    Listing parameters for the job query service.

    Validation happens in __post_init__ so an invalid query never reaches the store.
    """

    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0
    sort_by: SortField = SortField.CREATED_AT
    sort_direction: SortDirection = SortDirection.DESC
    statuses: FrozenSet[JobStatus] = field(default_factory=frozenset)
    target_type: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    include_deleted: bool = False

    def __post_init__(self):
        if self.limit < 1:
            raise ValueError(f"limit must be at least 1, got {self.limit}")
        if self.offset < 0:
            raise ValueError(f"offset must be non-negative, got {self.offset}")
        if (
            self.created_from is not None
            and self.created_to is not None
            and self.created_from > self.created_to
        ):
            raise ValueError("created_from must not be after created_to")


@dataclass(frozen=True)
class JobPage:
    """One page of listing results with pagination metadata."""

    items: tuple
    total: int
    limit: int
    offset: int

    @property
    def page(self) -> int:
        return self.offset // self.limit + 1

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    def to_dict(self) -> dict:
        return {
            "items": [job.to_dict() for job in self.items],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
            "page": self.page,
            "total_pages": self.total_pages,
        }
