"""
Step Runner

Domain service that executes a job's ordered steps. Every state change goes
through a compare-and-set write on the job store; a job that became terminal
in the meantime (for example cancelled by a caller) stops the run and the
pending write is dropped.
"""

import logging
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..errors import JobStateError, StepFailure, UnknownStepError
from ..package_storage import IPackageStorage, sha256_file
from .entities import ExportJob
from .repositories import ExportJobRepository
from .value_objects import JobStatus, StoredPackage

logger = logging.getLogger(__name__)

StepFunction = Callable[["StepContext"], None]

MISSING_PACKAGE_MESSAGE = "No package was produced by the export steps"


class StepRegistry:
    """
    Maps step names to step functions.

    Jobs store step names only, so any worker process with the same
    registrations can execute them.
    """

    def __init__(self):
        self._steps: Dict[str, StepFunction] = {}

    def register(self, name: str, func: Optional[StepFunction] = None):
        """
        Register a step function, directly or as a decorator.

        Example:
            @registry.register("write_manifest")
            def write_manifest(context):
                ...
        """

        def decorator(step_func: StepFunction) -> StepFunction:
            if name in self._steps:
                raise ValueError(f"Step {name} is already registered")
            self._steps[name] = step_func
            return step_func

        if func is not None:
            return decorator(func)
        return decorator

    def get(self, name: str) -> StepFunction:
        try:
            return self._steps[name]
        except KeyError:
            raise UnknownStepError(f"Unknown export step: {name}") from None

    def validate(self, names: Iterable[str]) -> List[str]:
        """
        Check that every name is registered.

        Returns:
            The names as a list, in order

        Raises:
            UnknownStepError: On the first unregistered name
        """
        names = list(names)
        for name in names:
            self.get(name)
        return names

    def names(self) -> List[str]:
        return list(self._steps)

    def __contains__(self, name: str) -> bool:
        return name in self._steps


class StepContext:
    """
    Job-scoped context handed to every step function.

    Steps share the workspace directory and the state dict. Long-running
    steps should poll is_cancelled() and may report sub-step progress.
    """

    def __init__(
        self,
        runner: "StepRunner",
        job: ExportJob,
        workspace: Path,
    ):
        self._runner = runner
        self.job_id = job.job_id
        self.target_id = job.target_id
        self.target_type = job.target_type
        self.owner_id = job.owner_id
        self.workspace = workspace
        self.state: Dict[str, Any] = {}
        self.package: Optional[StoredPackage] = None

    def is_cancelled(self) -> bool:
        return self._runner.is_stopped(self.job_id)

    def report_progress(self, fraction: float) -> None:
        """Record that `fraction` of the current step is done."""
        self._runner.report_progress(self.job_id, fraction)

    def store_package(self, local_path: str, file_name: Optional[str] = None) -> StoredPackage:
        """
        Write the final archive through the storage backend.

        Args:
            local_path: Archive on the local filesystem
            file_name: Name to store it under, defaults to the local file name

        Returns:
            StoredPackage recorded as this run's package

        Raises:
            StepFailure: If the storage backend did not accept the package
        """
        self.package = self._runner.store_package(self.job_id, Path(local_path), file_name)
        return self.package


class StepRunner:
    """
    Executes the steps of one job in order.

    A step succeeds by returning and fails by raising. StepFailure carries a
    user-facing message; any other exception is recorded with its type name.
    Steps are never retried.
    """

    MAX_WRITE_ATTEMPTS = 5

    def __init__(
        self,
        job_repository: ExportJobRepository,
        step_registry: StepRegistry,
        package_storage: IPackageStorage,
        event_publisher=None,
        workspace_root: str = "/tmp/exports",
    ):
        self.job_repository = job_repository
        self.step_registry = step_registry
        self.package_storage = package_storage
        self.event_publisher = event_publisher
        self.workspace_root = Path(workspace_root)

    def run(self, job_id: str) -> Optional[ExportJob]:
        """
        Execute a pending job to a terminal status.

        Args:
            job_id: Job to run

        Returns:
            The job as last stored, None if it does not exist
        """
        job = self.job_repository.get(job_id)
        if job is None:
            logger.warning(f"Export job {job_id} not found, nothing to run")
            return None
        if job.status != JobStatus.PENDING:
            logger.info(f"Export job {job_id} is {job.status.value}, skipping run")
            return job

        try:
            step_functions = [self.step_registry.get(step.name) for step in job.steps]
        except UnknownStepError as e:
            self._transition(job_id, lambda j: j.fail(str(e)))
            return self.job_repository.get(job_id)

        try:
            job = self._transition(job_id, lambda j: j.start())
        except JobStateError:
            logger.info(f"Export job {job_id} was claimed by another runner")
            return self.job_repository.get(job_id)
        if job is None:
            return self.job_repository.get(job_id)

        workspace = self.workspace_root / job_id
        context = StepContext(self, job, workspace)

        try:
            workspace.mkdir(parents=True, exist_ok=True)
            for index, step_function in enumerate(step_functions):
                if self._transition(job_id, lambda j: j.begin_step(index)) is None:
                    logger.info(f"Export job {job_id} stopped before step {index + 1}")
                    break

                message = self._execute(job_id, job.steps[index].name, step_function, context)
                if message is not None:
                    self._transition(job_id, lambda j: j.fail_step(index, message))
                    break

                if self._transition(job_id, lambda j: j.complete_step(index)) is None:
                    break
            else:
                self._finish(job_id, context.package)
        except Exception as e:
            logger.error(f"Export job {job_id} crashed outside its steps: {e}", exc_info=True)
            self._abort(job_id, e)
        finally:
            shutil.rmtree(workspace, ignore_errors=True)

        final = self.job_repository.get(job_id)
        if context.package is not None and (
            final is None or final.package_path != context.package.path
        ):
            self._discard_package(context.package)
        return final

    def is_stopped(self, job_id: str) -> bool:
        """True once the job is terminal or gone; steps should stop early."""
        job = self.job_repository.get(job_id)
        return job is None or job.is_terminal()

    def report_progress(self, job_id: str, fraction: float) -> None:
        self._transition(job_id, lambda j: j.report_step_progress(fraction))

    def store_package(
        self, job_id: str, local_path: Path, file_name: Optional[str] = None
    ) -> StoredPackage:
        storage_path = f"{job_id}/{file_name or local_path.name}"
        size_bytes = local_path.stat().st_size

        try:
            checksum = sha256_file(str(local_path))
        except OSError as e:
            logger.warning(f"Could not compute checksum for {local_path}: {e}")
            checksum = None

        with open(local_path, "rb") as content:
            if not self.package_storage.save(storage_path, content):
                raise StepFailure(f"Storage backend rejected package {storage_path}")

        logger.info(f"Stored package for job {job_id} at {storage_path} ({size_bytes} bytes)")
        return StoredPackage(path=storage_path, size_bytes=size_bytes, checksum=checksum)

    def _execute(
        self, job_id: str, step_name: str, step_function: StepFunction, context: StepContext
    ) -> Optional[str]:
        """Run one step; return the failure message, or None on success."""
        try:
            step_function(context)
        except StepFailure as e:
            logger.warning(f"Step {step_name} of export job {job_id} failed: {e}")
            return str(e) or f"Step {step_name} failed"
        except Exception as e:
            logger.error(
                f"Unexpected error in step {step_name} of export job {job_id}: {e}",
                exc_info=True,
            )
            return f"{type(e).__name__}: {e}"
        return None

    def _finish(self, job_id: str, package: Optional[StoredPackage]) -> None:
        if package is None:
            self._transition(job_id, lambda j: j.fail(MISSING_PACKAGE_MESSAGE))
        else:
            self._transition(job_id, lambda j: j.complete(package))

    def _transition(self, job_id: str, mutate) -> Optional[ExportJob]:
        """
        Apply mutate to the current stored job and write it back.

        Returns:
            The saved job, or None when the job is gone or already terminal

        Raises:
            JobStateError: If the mutation is illegal or the write keeps conflicting
        """
        for _ in range(self.MAX_WRITE_ATTEMPTS):
            job = self.job_repository.get(job_id)
            if job is None or job.is_terminal():
                return None

            event = mutate(job)
            if self.job_repository.save(job):
                self._publish(event)
                return job
            logger.debug(f"Version conflict writing export job {job_id}, retrying")

        raise JobStateError(
            f"Could not persist export job {job_id} after {self.MAX_WRITE_ATTEMPTS} attempts"
        )

    def _abort(self, job_id: str, error: Exception) -> None:
        """
        Fail a job whose run broke down, releasing its target.

        Raises:
            The original error when the failure cannot be recorded either
        """
        try:
            self._transition(job_id, lambda j: j.fail(f"{type(error).__name__}: {error}"))
        except Exception as write_error:
            logger.error(f"Could not mark export job {job_id} as failed: {write_error}")
            raise error from write_error

    def _discard_package(self, package: StoredPackage) -> None:
        try:
            self.package_storage.delete(package.path)
            logger.info(f"Discarded package {package.path} of an unfinished export")
        except OSError as e:
            logger.warning(f"Could not discard package {package.path}: {e}")

    def _publish(self, event) -> None:
        if self.event_publisher is not None and event is not None:
            self.event_publisher.publish(event)
