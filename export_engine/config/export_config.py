"""
Export Configuration

Environment-driven settings for job execution, retention, storage and listing.
"""

import os
from typing import List

from export_engine.steps.builtin import DEFAULT_STEPS


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class ExportConfig:
    """Export engine configuration settings."""

    def __init__(self):
        # Retention
        self.retention_days = int(os.getenv("EXPORT_RETENTION_DAYS", 30))
        self.retention_sweep_interval = float(
            os.getenv("EXPORT_RETENTION_SWEEP_INTERVAL", 3600)
        )
        self.retention_batch_size = int(os.getenv("EXPORT_RETENTION_BATCH_SIZE", 500))

        # Execution
        self.executor = os.getenv("EXPORT_EXECUTOR", "celery").lower()
        self.thread_workers = int(os.getenv("EXPORT_THREAD_WORKERS", 4))
        self.workspace_dir = os.getenv("EXPORT_WORKSPACE_DIR", "/tmp/exports")
        self.workspace_max_age = int(os.getenv("EXPORT_WORKSPACE_MAX_AGE", 86400))
        self.default_steps: List[str] = [
            name.strip()
            for name in os.getenv("EXPORT_DEFAULT_STEPS", ",".join(DEFAULT_STEPS)).split(",")
            if name.strip()
        ]

        # Storage
        self.storage_backend = os.getenv("EXPORT_STORAGE_BACKEND", "local").lower()
        self.storage_dir = os.getenv("EXPORT_STORAGE_DIR", "/tmp/export-packages")
        self.gcs_bucket_name = os.getenv("GCS_BUCKET_NAME", "")
        self.gcs_prefix = os.getenv("GCS_PACKAGE_PREFIX", "exports")

        # Downloads and listing
        self.verify_checksum = _env_bool("EXPORT_VERIFY_CHECKSUM", "true")
        self.max_page_size = int(os.getenv("EXPORT_MAX_PAGE_SIZE", 100))
