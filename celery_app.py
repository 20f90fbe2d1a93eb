"""
Worker entry point for the export engine.

    celery -A celery_app.celery_app worker -Q export_queue,retention_queue -B

The Flask app is built here so that tasks find the wired orchestrator, step
runner and retention manager on ``flask_app.container``.
"""

from app_factory import create_app

flask_app = create_app()
celery_app = flask_app.celery

# Listed by name: both modules import celery_app for their task decorators.
celery_app.conf.imports = (
    "export_engine.tasks.export_task",
    "export_engine.tasks.retention_task",
)
