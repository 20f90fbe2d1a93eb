"""
Celery Configuration

Export runs and the retention sweep go to separate queues. That way a long
pipeline never delays package cleanup, and the two can be scaled apart.
"""

import os

from celery import Celery
from kombu import Queue

RUN_EXPORT_JOB_TASK = "export_engine.run_export_job"
SWEEP_EXPIRED_PACKAGES_TASK = "export_engine.sweep_expired_packages"

EXPORT_QUEUE = os.getenv("EXPORT_CELERY_QUEUE", "export_queue")
RETENTION_QUEUE = os.getenv("EXPORT_RETENTION_QUEUE", "retention_queue")


class CeleryConfig:
    broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")

    # Job ids are the only payload; everything else is read back from Redis
    task_serializer = result_serializer = "json"
    accept_content = ["json"]
    timezone = "UTC"
    enable_utc = True

    # One export at a time per worker process. Late acks hand an interrupted
    # export back to the broker; the runner's CAS writes keep redelivery safe.
    worker_prefetch_multiplier = 1
    task_acks_late = True
    worker_concurrency = int(os.getenv("CELERY_WORKER_CONCURRENCY", 2))
    worker_max_tasks_per_child = int(os.getenv("CELERY_MAX_TASKS_PER_CHILD", 50))

    task_default_queue = "default"
    task_queues = (
        Queue("default", routing_key="default"),
        Queue(EXPORT_QUEUE, routing_key="export"),
        Queue(RETENTION_QUEUE, routing_key="retention"),
    )
    task_routes = {
        RUN_EXPORT_JOB_TASK: {"queue": EXPORT_QUEUE},
        SWEEP_EXPIRED_PACKAGES_TASK: {"queue": RETENTION_QUEUE},
    }

    beat_schedule = {
        "sweep-expired-packages": {
            "task": SWEEP_EXPIRED_PACKAGES_TASK,
            "schedule": float(os.getenv("EXPORT_RETENTION_SWEEP_INTERVAL", 3600)),
        },
    }

    # Export runs have no time limit. Job state lives in Redis, so Celery
    # results are only kept briefly.
    task_soft_time_limit = None
    task_time_limit = None
    result_expires = 3600


def make_celery(app):
    """
    Build the Celery app used by the export worker and beat.

    Every task body runs inside ``app.app_context()`` so tasks can resolve
    the orchestrator's collaborators from ``current_app.container``.
    """
    celery = Celery(
        app.import_name,
        broker=CeleryConfig.broker_url,
        backend=CeleryConfig.result_backend,
    )
    celery.config_from_object(CeleryConfig)

    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = ContextTask
    return celery
