"""
Storage Factory

Creates the package storage backend selected by configuration. The
application layer only sees the IPackageStorage interface.
"""

import logging

from export_engine.config.export_config import ExportConfig
from export_engine.domain.package_storage import IPackageStorage

from .local_package_storage import LocalPackageStorage

logger = logging.getLogger(__name__)


class StorageFactory:
    """Factory for package storage backends."""

    @staticmethod
    def create_storage(config: ExportConfig) -> IPackageStorage:
        """
        Create the configured storage backend.

        Args:
            config: Export configuration (EXPORT_STORAGE_BACKEND, EXPORT_STORAGE_DIR,
                GCS_BUCKET_NAME)

        Returns:
            IPackageStorage implementation

        Raises:
            RuntimeError: If the backend is unknown or cannot be initialized
        """
        backend = config.storage_backend
        try:
            if backend == "gcs":
                from .gcs_package_storage import GCSPackageStorage

                storage = GCSPackageStorage(config.gcs_bucket_name, prefix=config.gcs_prefix)
                logger.info(f"Storage factory: using GCS bucket {config.gcs_bucket_name}")
                return storage
            if backend == "local":
                storage = LocalPackageStorage(config.storage_dir)
                logger.info(f"Storage factory: using local storage at {config.storage_dir}")
                return storage
        except Exception as e:
            raise RuntimeError(f"Failed to initialize {backend} storage: {e}") from e

        raise RuntimeError(f"Unknown storage backend: {backend}")
