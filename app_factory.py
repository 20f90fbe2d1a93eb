"""
Application Factory

Builds the Flask app that fronts the export engine: Redis and Celery handles,
the service graph on ``app.container``, the v1 API and a health probe.
Tests pass their own container to skip Redis-backed wiring.
"""

import logging
import os
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS

from export_engine.application.dependency_container import DependencyContainer
from export_engine.application.download_gateway import DownloadGateway
from export_engine.application.event_publisher import EventPublisher
from export_engine.application.export_orchestrator import JobOrchestrator
from export_engine.application.job_dispatcher import IJobDispatcher
from export_engine.application.job_query_service import JobQueryService
from export_engine.application.retention_service import PackageRetentionManager
from export_engine.config.celery_config import make_celery
from export_engine.config.export_config import ExportConfig
from export_engine.config.redis_config import (
    get_redis_repository,
    init_redis,
    redis_health_check,
)
from export_engine.domain.events import DomainEvent
from export_engine.domain.export_jobs import ExportJobRepository, StepRegistry, StepRunner
from export_engine.domain.package_storage import IPackageStorage
from export_engine.domain.targets import ITargetRegistry
from export_engine.infrastructure import (
    CeleryJobDispatcher,
    RedisExportJobRepository,
    RedisTargetRegistry,
    StorageFactory,
    ThreadPoolJobDispatcher,
)
from export_engine.infrastructure.event_handlers import LoggingEventHandler
from export_engine.steps import register_builtin_steps

logger = logging.getLogger(__name__)


class AppConfig:
    """HTTP-facing settings; engine settings live in ExportConfig."""

    def __init__(self):
        self.api_version = os.getenv("API_VERSION", "v1")
        self.flask_env = os.getenv("FLASK_ENV", "development")
        self.is_production = self.flask_env == "production"
        self.cors_origins = os.getenv("CORS_ORIGINS", "*")


def create_app(
    config: Optional[AppConfig] = None,
    container: Optional[DependencyContainer] = None,
) -> Flask:
    """
    Build an export engine app.

    Args:
        config: Application configuration, uses default if None
        container: Pre-built dependency container; services are wired from
            Redis and the environment when None

    Returns:
        Configured Flask application
    """
    if config is None:
        config = AppConfig()

    app = Flask(__name__)

    CORS(
        app,
        resources={
            r"/*": {
                "origins": config.cors_origins,
                "methods": ["GET", "POST", "DELETE", "OPTIONS"],
                "allow_headers": ["Content-Type", "Authorization", "Range", "X-User-Id", "X-User-Role"],
                "expose_headers": ["Content-Type", "Content-Range", "Content-Disposition", "X-Checksum-SHA256"],
                "supports_credentials": True,
                "max_age": 3600,
            }
        },
    )

    _initialize_infrastructure(app)

    if container is not None:
        app.container = container
    else:
        _initialize_services(app)

    _register_blueprints(app, config)
    _register_health_endpoint(app)

    return app


def _initialize_infrastructure(app: Flask) -> None:
    """Open the Redis pool and build Celery. Failures degrade the health probe."""
    try:
        init_redis()
        logger.info("Redis initialized successfully")

        app.celery = make_celery(app)
        logger.info("Celery initialized successfully")

    except Exception as e:
        logger.warning(f"Could not initialize infrastructure: {e}")
        app.celery = None


def _initialize_services(app: Flask) -> None:
    """
    Initialize application services and attach them to the app through a DependencyContainer.

    Services are registered here as singletons and resolved via
    container.resolve() in the API layer and Celery tasks.

    Args:
        app: Flask application
    """
    try:
        container = DependencyContainer()
        export_config = ExportConfig()
        container.register_singleton(ExportConfig, export_config)

        # Repositories
        job_repository = RedisExportJobRepository(get_redis_repository("export"))
        target_registry = RedisTargetRegistry(get_redis_repository("registry"))
        package_storage = StorageFactory.create_storage(export_config)

        container.register_singleton(ExportJobRepository, job_repository)
        container.register_singleton(ITargetRegistry, target_registry)
        container.register_singleton(IPackageStorage, package_storage)

        # Events
        event_publisher = EventPublisher()
        event_handler = LoggingEventHandler(logging.getLogger("export_engine.events"))
        event_publisher.subscribe(DomainEvent, event_handler.handle)
        container.register_singleton(EventPublisher, event_publisher)

        # Step execution
        step_registry = register_builtin_steps(StepRegistry(), target_registry)
        step_runner = StepRunner(
            job_repository,
            step_registry,
            package_storage,
            event_publisher=event_publisher,
            workspace_root=export_config.workspace_dir,
        )
        container.register_singleton(StepRegistry, step_registry)
        container.register_singleton(StepRunner, step_runner)

        dispatcher = _create_dispatcher(app, export_config, step_runner)
        container.register_singleton(IJobDispatcher, dispatcher)

        # Application services
        orchestrator = JobOrchestrator(
            job_repository,
            target_registry,
            step_registry,
            dispatcher,
            event_publisher,
            default_steps=export_config.default_steps,
            default_retention_days=export_config.retention_days,
        )
        retention_manager = PackageRetentionManager(
            job_repository,
            package_storage,
            event_publisher,
            batch_size=export_config.retention_batch_size,
        )
        download_gateway = DownloadGateway(
            job_repository,
            package_storage,
            event_publisher,
            verify_checksum=export_config.verify_checksum,
        )
        query_service = JobQueryService(job_repository, max_limit=export_config.max_page_size)

        container.register_singleton(JobOrchestrator, orchestrator)
        container.register_singleton(PackageRetentionManager, retention_manager)
        container.register_singleton(DownloadGateway, download_gateway)
        container.register_singleton(JobQueryService, query_service)

        app.container = container
        logger.info(
            f"Application services initialized with {len(container)} singletons "
            f"(executor={export_config.executor}, storage={export_config.storage_backend})"
        )

    except Exception as e:
        logger.error(f"Could not initialize services: {e}", exc_info=True)
        app.container = None


def _create_dispatcher(app: Flask, export_config: ExportConfig, step_runner: StepRunner) -> IJobDispatcher:
    if export_config.executor == "thread":
        return ThreadPoolJobDispatcher(step_runner, max_workers=export_config.thread_workers)
    if export_config.executor == "celery":
        if app.celery is None:
            raise RuntimeError("EXPORT_EXECUTOR=celery but Celery is not initialized")
        return CeleryJobDispatcher(app.celery)
    raise RuntimeError(f"Unknown export executor: {export_config.executor}")


def _register_blueprints(app: Flask, config: AppConfig) -> None:
    """Mount the v1 export API and its Swagger UI."""
    from export_engine.api.v1 import api_v1_bp

    app.register_blueprint(api_v1_bp)

    logger.info(
        f"API {config.api_version} registered at /api/{config.api_version} "
        f"with Swagger UI at /api/{config.api_version}/docs"
    )


def _get_health_status(app: Flask) -> tuple[dict, int]:
    """Probe Redis, Celery and the service graph; any gap means 503."""
    health_status = {
        "status": "ok",
        "message": "export engine ready",
        "redis": "unknown",
        "celery": "unknown",
        "services": "unknown",
    }

    try:
        if redis_health_check():
            health_status["redis"] = "connected"
        else:
            health_status["redis"] = "disconnected"
            health_status["status"] = "degraded"
    except Exception as e:
        health_status["redis"] = f"error: {str(e)}"
        health_status["status"] = "degraded"

    if getattr(app, "celery", None) is not None:
        health_status["celery"] = "available"
    else:
        health_status["celery"] = "unavailable"
        health_status["status"] = "degraded"

    if getattr(app, "container", None) is not None:
        health_status["services"] = "initialized"
    else:
        health_status["services"] = "unavailable"
        health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code


def _register_health_endpoint(app: Flask) -> None:
    @app.route("/health", methods=["GET"])
    def health():
        """Overall health of the application and its dependencies."""
        health_status, status_code = _get_health_status(app)
        return jsonify(health_status), status_code
