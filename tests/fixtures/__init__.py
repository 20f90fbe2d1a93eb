"""Shared test fixtures: in-memory repositories and job builders."""

from .domain_fixtures import expire, make_completed_job, make_job, make_running_job
from .mock_repositories import (
    InlineDispatcher,
    InMemoryExportJobRepository,
    InMemoryTargetRegistry,
    RecordingDispatcher,
)

__all__ = [
    "InlineDispatcher",
    "InMemoryExportJobRepository",
    "InMemoryTargetRegistry",
    "RecordingDispatcher",
    "expire",
    "make_completed_job",
    "make_job",
    "make_running_job",
]
