"""
Unit tests for JobOrchestrator.

Covers job creation and the one-active-job-per-target rule, visibility,
cancellation, soft deletion and dispatch failures.
"""

import threading

import pytest

from export_engine.application.export_orchestrator import JobOrchestrator
from export_engine.domain.errors import (
    ForbiddenError,
    InvalidExportRequestError,
    JobConflictError,
    JobDispatchError,
    JobNotFoundError,
    JobStateError,
    PackageNotFoundError,
    TargetNotFoundError,
    UnknownStepError,
)
from export_engine.domain.events import JobCancelledEvent, JobCreatedEvent, JobDeletedEvent
from export_engine.domain.export_jobs.value_objects import JobStatus
from export_engine.steps import DEFAULT_STEPS
from tests.fixtures import InlineDispatcher, RecordingDispatcher, make_completed_job


class TestStart:
    def test_creates_pending_job_and_dispatches(
        self, orchestrator, dispatcher, job_repository, alice, published_events
    ):
        job = orchestrator.start("tool-1", alice)

        stored = job_repository.get(job.job_id)
        assert stored.status == JobStatus.PENDING
        assert stored.owner_id == "alice"
        assert stored.target_type == "tool"
        assert [step.name for step in stored.steps] == list(DEFAULT_STEPS)
        assert stored.package_retention_days == 30
        assert dispatcher.dispatched == [job.job_id]
        assert isinstance(published_events[0], JobCreatedEvent)

    def test_custom_steps_and_retention(self, orchestrator, job_repository, alice):
        job = orchestrator.start(
            "tool-1", alice, step_names=["prepare_workspace", "package_archive"], retention_days=7
        )

        stored = job_repository.get(job.job_id)
        assert stored.steps_total == 2
        assert stored.package_retention_days == 7

    def test_second_start_for_same_target_conflicts(self, orchestrator, alice):
        first = orchestrator.start("tool-1", alice)

        with pytest.raises(JobConflictError) as exc_info:
            orchestrator.start("tool-1", alice)

        assert exc_info.value.active_job_id == first.job_id

    def test_conflict_applies_across_callers(self, orchestrator, alice, bob):
        orchestrator.start("tool-shared", bob)
        with pytest.raises(JobConflictError):
            orchestrator.start("tool-shared", alice)

    def test_different_targets_do_not_conflict(self, orchestrator, alice, admin):
        orchestrator.start("tool-1", alice)
        orchestrator.start("tool-2", admin)

    def test_target_is_free_again_after_cancel(self, orchestrator, alice):
        first = orchestrator.start("tool-1", alice)
        orchestrator.cancel(first.job_id, alice)

        second = orchestrator.start("tool-1", alice)
        assert second.job_id != first.job_id

    def test_unknown_target(self, orchestrator, alice):
        with pytest.raises(TargetNotFoundError):
            orchestrator.start("missing-tool", alice)

    def test_inaccessible_target_looks_missing(self, orchestrator, bob):
        with pytest.raises(TargetNotFoundError):
            orchestrator.start("tool-1", bob)

    def test_shared_target_is_accessible(self, orchestrator, alice):
        job = orchestrator.start("tool-shared", alice)
        assert job.owner_id == "alice"

    def test_unknown_step_creates_nothing(self, orchestrator, job_repository, alice):
        with pytest.raises(UnknownStepError):
            orchestrator.start("tool-1", alice, step_names=["prepare_workspace", "bogus"])
        assert job_repository.all_jobs() == []

    def test_empty_step_list(self, orchestrator, alice):
        with pytest.raises(InvalidExportRequestError):
            orchestrator.start("tool-1", alice, step_names=[])

    @pytest.mark.parametrize("retention_days", [0, -1, 366])
    def test_retention_out_of_range(self, orchestrator, alice, retention_days):
        with pytest.raises(InvalidExportRequestError):
            orchestrator.start("tool-1", alice, retention_days=retention_days)

    def test_dispatch_failure_fails_job_and_frees_target(
        self, job_repository, target_registry, step_registry, event_publisher, alice
    ):
        orchestrator = JobOrchestrator(
            job_repository,
            target_registry,
            step_registry,
            RecordingDispatcher(error=ConnectionError("broker down")),
            event_publisher,
            default_steps=list(DEFAULT_STEPS),
        )

        with pytest.raises(JobDispatchError):
            orchestrator.start("tool-1", alice)

        [job] = job_repository.all_jobs()
        assert job.status == JobStatus.FAILED
        assert "broker down" in job.error_message
        assert job_repository.get_active_job_id("tool-1") is None

    def test_concurrent_starts_create_exactly_one_job(self, orchestrator, job_repository, alice):
        workers = 12
        barrier = threading.Barrier(workers)
        results = []
        lock = threading.Lock()

        def attempt():
            barrier.wait()
            try:
                orchestrator.start("tool-1", alice)
                outcome = "created"
            except JobConflictError:
                outcome = "conflict"
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count("created") == 1
        assert results.count("conflict") == workers - 1
        assert len(job_repository.all_jobs()) == 1

    def test_inline_execution_runs_to_completion(
        self, job_repository, target_registry, step_registry, step_runner, event_publisher, alice
    ):
        orchestrator = JobOrchestrator(
            job_repository,
            target_registry,
            step_registry,
            InlineDispatcher(step_runner),
            event_publisher,
            default_steps=list(DEFAULT_STEPS),
        )

        job = orchestrator.start("tool-1", alice)

        final = orchestrator.get_status(job.job_id, alice)
        assert final.status == JobStatus.COMPLETED
        assert final.progress_percentage == 100
        assert final.package_path is not None


class TestVisibility:
    def test_owner_reads_own_job(self, orchestrator, alice):
        job = orchestrator.start("tool-1", alice)
        assert orchestrator.get_status(job.job_id, alice).job_id == job.job_id

    def test_other_user_gets_not_found(self, orchestrator, alice, bob):
        job = orchestrator.start("tool-1", alice)
        with pytest.raises(JobNotFoundError):
            orchestrator.get_status(job.job_id, bob)

    def test_admin_reads_any_job(self, orchestrator, alice, admin):
        job = orchestrator.start("tool-1", alice)
        assert orchestrator.get_status(job.job_id, admin).owner_id == "alice"

    def test_unknown_job(self, orchestrator, alice):
        with pytest.raises(JobNotFoundError):
            orchestrator.get_status("missing", alice)


class TestCancel:
    def test_cancel_pending_job(self, orchestrator, job_repository, alice, published_events):
        job = orchestrator.start("tool-1", alice)

        cancelled = orchestrator.cancel(job.job_id, alice)

        assert cancelled.status == JobStatus.CANCELLED
        assert job_repository.get(job.job_id).status == JobStatus.CANCELLED
        assert isinstance(published_events[-1], JobCancelledEvent)

    def test_cancel_terminal_job_is_rejected(self, orchestrator, job_repository, alice):
        job = job_repository.put(make_completed_job())
        with pytest.raises(JobStateError):
            orchestrator.cancel(job.job_id, alice)
        assert job_repository.get(job.job_id).status == JobStatus.COMPLETED

    def test_cancel_twice_is_rejected(self, orchestrator, alice):
        job = orchestrator.start("tool-1", alice)
        orchestrator.cancel(job.job_id, alice)
        with pytest.raises(JobStateError):
            orchestrator.cancel(job.job_id, alice)

    def test_cancel_requires_visibility(self, orchestrator, alice, bob):
        job = orchestrator.start("tool-1", alice)
        with pytest.raises(JobNotFoundError):
            orchestrator.cancel(job.job_id, bob)


class TestDelete:
    def test_admin_soft_deletes_finished_job(
        self, orchestrator, job_repository, admin, alice, published_events
    ):
        job = job_repository.put(make_completed_job())

        orchestrator.delete(job.job_id, admin)

        stored = job_repository.get(job.job_id)
        assert stored.deleted_at is not None
        assert stored.status == JobStatus.COMPLETED
        assert isinstance(published_events[-1], JobDeletedEvent)
        with pytest.raises(JobNotFoundError):
            orchestrator.get_status(job.job_id, alice)

    def test_owner_cannot_delete(self, orchestrator, job_repository, alice):
        job = job_repository.put(make_completed_job())
        with pytest.raises(ForbiddenError):
            orchestrator.delete(job.job_id, alice)

    def test_active_job_cannot_be_deleted(self, orchestrator, admin, alice):
        job = orchestrator.start("tool-1", alice)
        with pytest.raises(JobStateError):
            orchestrator.delete(job.job_id, admin)

    def test_deleted_job_is_not_found_on_second_delete(self, orchestrator, job_repository, admin):
        job = job_repository.put(make_completed_job())
        orchestrator.delete(job.job_id, admin)
        with pytest.raises(JobNotFoundError):
            orchestrator.delete(job.job_id, admin)


class TestChecksum:
    def test_completed_job_checksum(self, orchestrator, job_repository, alice):
        job = job_repository.put(make_completed_job(content=b"abc"))

        info = orchestrator.get_checksum(job.job_id, alice)

        assert info["algorithm"] == "sha256"
        assert info["checksum"] == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )
        assert info["package_size_bytes"] == 3
        assert info["checksum_verified_at"] is None

    def test_pending_job_has_no_checksum(self, orchestrator, alice):
        job = orchestrator.start("tool-1", alice)
        with pytest.raises(PackageNotFoundError):
            orchestrator.get_checksum(job.job_id, alice)
