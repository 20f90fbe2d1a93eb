"""
Export Job Domain

Export job lifecycle, step execution and persistence contracts.
"""

from .entities import ExportJob, JobStep
from .repositories import ExportJobRepository
from .step_runner import StepContext, StepRegistry, StepRunner
from .value_objects import (
    CallerRole,
    CallerScope,
    JobListQuery,
    JobPage,
    JobStatus,
    SortDirection,
    SortField,
    StepStatus,
    StoredPackage,
)

__all__ = [
    "ExportJob",
    "JobStep",
    "ExportJobRepository",
    "StepContext",
    "StepRegistry",
    "StepRunner",
    "CallerRole",
    "CallerScope",
    "JobListQuery",
    "JobPage",
    "JobStatus",
    "SortDirection",
    "SortField",
    "StepStatus",
    "StoredPackage",
]
