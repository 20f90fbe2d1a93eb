"""
Fixtures shared by every suite: callers and targets, in-memory job and
target stores, a LocalPackageStorage under tmp_path, and the orchestrator,
gateway and query service wired on top of them.
"""

import os

import pytest
from hypothesis import HealthCheck, settings

from export_engine.application.download_gateway import DownloadGateway
from export_engine.application.event_publisher import EventPublisher
from export_engine.application.export_orchestrator import JobOrchestrator
from export_engine.application.job_query_service import JobQueryService
from export_engine.application.retention_service import PackageRetentionManager
from export_engine.domain.events import DomainEvent
from export_engine.domain.export_jobs import CallerScope, StepRegistry, StepRunner
from export_engine.domain.targets import ExportTarget
from export_engine.infrastructure.local_package_storage import LocalPackageStorage
from export_engine.steps import DEFAULT_STEPS, register_builtin_steps
from tests.fixtures import InMemoryExportJobRepository, InMemoryTargetRegistry, RecordingDispatcher

# HYPOTHESIS_PROFILE=ci for the nightly run, =dev while iterating on a strategy
_SLOW_OK = [HealthCheck.too_slow, HealthCheck.function_scoped_fixture]
for _name, _examples in (("default", 100), ("ci", 200), ("dev", 10)):
    settings.register_profile(
        _name, max_examples=_examples, deadline=None, suppress_health_check=_SLOW_OK
    )
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


# =============================================================================
# Callers and Targets
# =============================================================================

@pytest.fixture
def alice() -> CallerScope:
    return CallerScope.user("alice")


@pytest.fixture
def bob() -> CallerScope:
    return CallerScope.user("bob")


@pytest.fixture
def admin() -> CallerScope:
    return CallerScope.admin("root")


@pytest.fixture
def target_registry() -> InMemoryTargetRegistry:
    """Registry with a tool owned by alice, one owned by bob and a shared one."""
    return InMemoryTargetRegistry(
        [
            ExportTarget(target_id="tool-1", name="Sorting Tool", owner_id="alice"),
            ExportTarget(target_id="tool-2", name="Bob Tool", owner_id="bob"),
            ExportTarget(target_id="tool-shared", name="Shared Tool", owner_id="bob", shared=True),
        ]
    )


# =============================================================================
# Repositories and Storage
# =============================================================================

@pytest.fixture
def job_repository() -> InMemoryExportJobRepository:
    return InMemoryExportJobRepository()


@pytest.fixture
def package_storage(tmp_path) -> LocalPackageStorage:
    return LocalPackageStorage(str(tmp_path / "packages"))


@pytest.fixture
def published_events():
    """List receiving every event published through event_publisher."""
    return []


@pytest.fixture
def event_publisher(published_events) -> EventPublisher:
    publisher = EventPublisher()
    publisher.subscribe(DomainEvent, published_events.append)
    return publisher


# =============================================================================
# Services
# =============================================================================

@pytest.fixture
def step_registry(target_registry) -> StepRegistry:
    return register_builtin_steps(StepRegistry(), target_registry)


@pytest.fixture
def workspace_root(tmp_path):
    return tmp_path / "workspaces"


@pytest.fixture
def step_runner(job_repository, step_registry, package_storage, event_publisher, workspace_root):
    return StepRunner(
        job_repository,
        step_registry,
        package_storage,
        event_publisher=event_publisher,
        workspace_root=str(workspace_root),
    )


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def orchestrator(job_repository, target_registry, step_registry, dispatcher, event_publisher):
    return JobOrchestrator(
        job_repository,
        target_registry,
        step_registry,
        dispatcher,
        event_publisher,
        default_steps=list(DEFAULT_STEPS),
        default_retention_days=30,
    )


@pytest.fixture
def download_gateway(job_repository, package_storage, event_publisher):
    return DownloadGateway(job_repository, package_storage, event_publisher)


@pytest.fixture
def query_service(job_repository):
    return JobQueryService(job_repository)


@pytest.fixture
def retention_manager(job_repository, package_storage, event_publisher):
    return PackageRetentionManager(job_repository, package_storage, event_publisher)


# =============================================================================
# Pytest Configuration Hooks
# =============================================================================

_SUITE_MARKERS = {
    "unit": "in-memory tests of one component",
    "integration": "tests against a live Redis or the local filesystem",
    "property": "Hypothesis property tests",
}


def pytest_configure(config):
    for marker, meaning in _SUITE_MARKERS.items():
        config.addinivalue_line("markers", f"{marker}: {meaning}")


def pytest_collection_modifyitems(config, items):
    """Mark each test after its suite directory, so ``-m "not integration"`` skips Redis."""
    for item in items:
        suite = next((part for part in item.path.parts if part in _SUITE_MARKERS), None)
        if suite:
            item.add_marker(getattr(pytest.mark, suite))
