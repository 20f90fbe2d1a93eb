"""
Export Task

Celery task executing one export job. Thin wrapper around the StepRunner
resolved from the DependencyContainer.
"""

import logging
from typing import Any, Dict

from celery_app import celery_app
from export_engine.config.celery_config import RUN_EXPORT_JOB_TASK
from export_engine.domain.export_jobs.step_runner import StepRunner

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name=RUN_EXPORT_JOB_TASK)
def run_export_job(self, job_id: str) -> Dict[str, Any]:
    """
    Run the steps of an export job to a terminal status.

    Step failures are recorded on the job, not raised: the task only
    reports an error when the runner itself could not proceed.

    Args:
        job_id: Export job to run

    Returns:
        dict: Final job status summary
    """
    logger.info(f"Export task started for job {job_id}")

    try:
        from celery_app import flask_app

        runner = flask_app.container.resolve(StepRunner)
        job = runner.run(job_id)
    except Exception as e:
        logger.error(f"Export task for job {job_id} failed: {e}", exc_info=True)
        return {"job_id": job_id, "status": "error", "error": str(e)}

    if job is None:
        return {"job_id": job_id, "status": "missing"}

    logger.info(
        f"Export task finished for job {job_id}: {job.status.value} "
        f"({job.steps_completed}/{job.steps_total} steps)"
    )
    return {
        "job_id": job_id,
        "status": job.status.value,
        "steps_completed": job.steps_completed,
        "steps_total": job.steps_total,
        "error_message": job.error_message,
    }
