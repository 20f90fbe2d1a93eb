"""Infrastructure layer for Redis, package storage and job execution backends."""

from .job_dispatchers import CeleryJobDispatcher, ThreadPoolJobDispatcher
from .local_package_storage import LocalPackageStorage
from .redis_export_job_repository import RedisExportJobRepository
from .redis_repository import RedisConnectionManager, RedisRepository
from .redis_target_registry import RedisTargetRegistry
from .storage_factory import StorageFactory

__all__ = [
    "CeleryJobDispatcher",
    "ThreadPoolJobDispatcher",
    "LocalPackageStorage",
    "RedisExportJobRepository",
    "RedisConnectionManager",
    "RedisRepository",
    "RedisTargetRegistry",
    "StorageFactory",
]
