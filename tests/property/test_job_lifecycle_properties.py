"""
Property-based tests for the ExportJob lifecycle.

Random action sequences, legal or not, are applied to fresh jobs. Illegal
actions must raise JobStateError and leave the job untouched; legal ones must
keep progress monotonic and terminal states final.
"""

import math
from datetime import timedelta

import pytest
from hypothesis import given

from export_engine.domain.errors import JobStateError
from export_engine.domain.export_jobs.entities import ExportJob
from export_engine.domain.export_jobs.value_objects import JobStatus, StoredPackage
from tests.property.strategies import export_jobs, lifecycle_actions


def apply(job: ExportJob, action: tuple) -> None:
    name = action[0]
    if name == "start":
        job.start()
    elif name == "begin_next":
        job.begin_step(job.steps_completed)
    elif name == "progress":
        job.report_step_progress(action[1])
    elif name == "complete_current":
        job.complete_step(job.steps_completed)
    elif name == "fail_current":
        job.fail_step(job.steps_completed, "step exploded")
    elif name == "complete":
        job.complete(StoredPackage(path=f"{job.job_id}/pkg.tar.gz", size_bytes=1, checksum="a" * 64))
    elif name == "cancel":
        job.cancel("alice")


@pytest.mark.property
@given(job=export_jobs(), actions=lifecycle_actions)
def test_lifecycle_invariants(job, actions):
    previous_progress = job.progress_percentage
    terminal_status = None

    for action in actions:
        before = job.to_dict()
        try:
            apply(job, action)
        except JobStateError:
            assert job.to_dict() == before
            continue

        assert terminal_status is None, f"{action} changed a {terminal_status.value} job"

        assert 0 <= job.progress_percentage <= 100
        assert job.progress_percentage >= previous_progress
        assert (job.progress_percentage == 100) == (job.status == JobStatus.COMPLETED)
        assert 0 <= job.steps_completed <= job.steps_total
        assert (job.completed_at is not None) == job.is_terminal()

        previous_progress = job.progress_percentage
        if job.is_terminal():
            terminal_status = job.status


@pytest.mark.property
@given(job=export_jobs(), actions=lifecycle_actions)
def test_progress_tracks_completed_steps(job, actions):
    for action in actions:
        try:
            apply(job, action)
        except JobStateError:
            continue

        if job.status == JobStatus.IN_PROGRESS:
            floor = math.floor(100 * job.steps_completed / job.steps_total)
            assert job.progress_percentage >= min(floor, 99)
            assert job.progress_percentage <= 99


@pytest.mark.property
@given(job=export_jobs())
def test_completion_starts_retention_window(job):
    job.start()
    for index in range(job.steps_total):
        job.begin_step(index)
        job.complete_step(index)

    job.complete(StoredPackage(path="p", size_bytes=10, checksum="b" * 64))

    assert job.progress_percentage == 100
    assert job.package_expires_at == job.completed_at + timedelta(
        days=job.package_retention_days
    )
    assert job.current_step is None
