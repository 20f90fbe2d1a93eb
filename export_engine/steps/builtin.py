"""
Built-in Export Steps

Minimal default pipeline: prepare the workspace, write a manifest describing
the target, and package the workspace content as a gzip tarball. Deployments
that assemble real export content register their own steps alongside these.
"""

import json
import logging
import re
import tarfile

from export_engine.domain.errors import StepFailure
from export_engine.domain.export_jobs.step_runner import StepContext, StepRegistry
from export_engine.domain.export_jobs.value_objects import utc_now
from export_engine.domain.targets import ITargetRegistry

logger = logging.getLogger(__name__)

PREPARE_WORKSPACE = "prepare_workspace"
WRITE_MANIFEST = "write_manifest"
PACKAGE_ARCHIVE = "package_archive"

DEFAULT_STEPS = [PREPARE_WORKSPACE, WRITE_MANIFEST, PACKAGE_ARCHIVE]

CONTENT_DIR = "content"
ARCHIVE_DIR = "archive"


def _safe_name(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "-", name).strip("-.")
    return cleaned or "export"


def prepare_workspace(context: StepContext) -> None:
    (context.workspace / CONTENT_DIR).mkdir(parents=True, exist_ok=True)
    (context.workspace / ARCHIVE_DIR).mkdir(parents=True, exist_ok=True)
    context.state["prepared_at"] = utc_now().isoformat()


def make_write_manifest(target_registry: ITargetRegistry):
    """Build the manifest step bound to a target registry."""

    def write_manifest(context: StepContext) -> None:
        target = target_registry.get(context.target_id)
        if target is None:
            raise StepFailure(f"Target {context.target_id} no longer exists")

        manifest = {
            "job_id": context.job_id,
            "owner_id": context.owner_id,
            "generated_at": utc_now().isoformat(),
            "target": target.to_dict(),
        }
        content_dir = context.workspace / CONTENT_DIR
        content_dir.mkdir(parents=True, exist_ok=True)
        with open(content_dir / "manifest.json", "w", encoding="utf-8") as handle:
            json.dump(manifest, handle, indent=2, sort_keys=True)
        context.state["target_name"] = target.name

    return write_manifest


def package_archive(context: StepContext) -> None:
    """Tar and gzip the content directory, then hand it to the storage backend."""
    content_dir = context.workspace / CONTENT_DIR
    if not content_dir.is_dir():
        raise StepFailure("Nothing to package: workspace content is missing")

    files = sorted(path for path in content_dir.rglob("*") if path.is_file())
    if not files:
        raise StepFailure("Nothing to package: workspace content is empty")

    archive_dir = context.workspace / ARCHIVE_DIR
    archive_dir.mkdir(parents=True, exist_ok=True)
    base_name = _safe_name(context.state.get("target_name") or context.target_id)
    archive_path = archive_dir / f"{base_name}.tar.gz"

    with tarfile.open(archive_path, "w:gz") as archive:
        for index, path in enumerate(files, start=1):
            if context.is_cancelled():
                raise StepFailure("Export was cancelled while packaging")
            archive.add(path, arcname=str(path.relative_to(content_dir)))
            context.report_progress(index / (len(files) + 1))

    context.store_package(str(archive_path))
    logger.debug(f"Packaged {len(files)} file(s) for export job {context.job_id}")


def register_builtin_steps(registry: StepRegistry, target_registry: ITargetRegistry) -> StepRegistry:
    registry.register(PREPARE_WORKSPACE, prepare_workspace)
    registry.register(WRITE_MANIFEST, make_write_manifest(target_registry))
    registry.register(PACKAGE_ARCHIVE, package_archive)
    return registry
