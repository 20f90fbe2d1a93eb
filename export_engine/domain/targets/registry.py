"""
Export Target Registry

The registry of exportable resources (tools) is owned by another service.
The engine consumes it through this interface to validate targets before
creating a job.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..export_jobs.value_objects import CallerScope


@dataclass(frozen=True)
class ExportTarget:
    """
    Read-only view of an exportable resource.

    Attributes:
        target_id: Registry identifier
        name: Display name, used for package file names
        target_type: Kind of resource (e.g. 'tool')
        owner_id: Principal that owns the resource
        shared: Whether any caller may export it
    """

    target_id: str
    name: str
    target_type: str = "tool"
    owner_id: Optional[str] = None
    shared: bool = False

    def is_accessible(self, scope: CallerScope) -> bool:
        return scope.is_admin or self.shared or self.owner_id == scope.user_id

    def to_dict(self) -> dict:
        return {
            "target_id": self.target_id,
            "name": self.name,
            "target_type": self.target_type,
            "owner_id": self.owner_id,
            "shared": self.shared,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExportTarget":
        return cls(
            target_id=data["target_id"],
            name=data.get("name") or data["target_id"],
            target_type=data.get("target_type") or "tool",
            owner_id=data.get("owner_id"),
            shared=bool(data.get("shared", False)),
        )


class ITargetRegistry(ABC):
    """Read interface of the target registry."""

    @abstractmethod
    def get(self, target_id: str) -> Optional[ExportTarget]:
        """
        Look up a target.

        Args:
            target_id: Registry identifier

        Returns:
            ExportTarget if registered, None otherwise
        """
        pass

    def exists(self, target_id: str) -> bool:
        return self.get(target_id) is not None

    def is_accessible(self, target_id: str, scope: CallerScope) -> bool:
        target = self.get(target_id)
        return target is not None and target.is_accessible(scope)
