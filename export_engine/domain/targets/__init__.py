"""Export target registry contract."""

from .registry import ExportTarget, ITargetRegistry

__all__ = ["ExportTarget", "ITargetRegistry"]
