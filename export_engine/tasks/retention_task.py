"""
Retention Task

Celery beat task reclaiming expired export packages and orphaned workspaces.
Thin wrapper that delegates to the PackageRetentionManager.
"""

import logging

from celery_app import celery_app
from export_engine.application.retention_service import PackageRetentionManager
from export_engine.config.celery_config import SWEEP_EXPIRED_PACKAGES_TASK
from export_engine.config.export_config import ExportConfig

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name=SWEEP_EXPIRED_PACKAGES_TASK)
def sweep_expired_packages(self):
    """
    Periodic retention sweep.

    1. Deletes packages past their retention window and clears their path
    2. Removes workspace directories left behind by crashed runs

    Failures of one part never prevent the other; they are logged and
    retried on the next scheduled run.

    Returns:
        dict: Sweep statistics with counts and errors
    """
    logger.info("Starting retention sweep")

    stats = {
        "examined": 0,
        "reclaimed": 0,
        "failed": 0,
        "orphaned_workspaces_removed": 0,
        "errors": [],
    }

    try:
        from celery_app import flask_app

        container = flask_app.container
        retention_manager = container.resolve(PackageRetentionManager)
        config = container.resolve(ExportConfig)
    except Exception as e:
        error_msg = f"Retention sweep could not start: {e}"
        logger.error(error_msg, exc_info=True)
        stats["errors"].append(error_msg)
        return stats

    try:
        result = retention_manager.sweep()
        stats.update(result.to_dict())
    except Exception as e:
        error_msg = f"Error reclaiming expired packages: {e}"
        stats["errors"].append(error_msg)
        logger.error(error_msg, exc_info=True)

    try:
        stats["orphaned_workspaces_removed"] = retention_manager.remove_orphaned_workspaces(
            config.workspace_dir, config.workspace_max_age
        )
    except Exception as e:
        error_msg = f"Error removing orphaned workspaces: {e}"
        stats["errors"].append(error_msg)
        logger.error(error_msg, exc_info=True)

    logger.info(
        f"Retention sweep completed - Reclaimed: {stats['reclaimed']}, "
        f"Failed: {stats['failed']}, "
        f"Orphaned workspaces: {stats['orphaned_workspaces_removed']}, "
        f"Errors: {len(stats['errors'])}"
    )
    return stats
