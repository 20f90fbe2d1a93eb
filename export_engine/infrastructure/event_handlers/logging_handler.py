"""
Logging Event Handler

Infrastructure event handler for logging domain events.
The domain layer remains unaware of logging infrastructure.
"""

import logging

from export_engine.domain.events import (
    DomainEvent,
    JobCancelledEvent,
    JobCompletedEvent,
    JobCreatedEvent,
    JobDeletedEvent,
    JobFailedEvent,
    JobStartedEvent,
    PackageDownloadedEvent,
    PackageExpiredEvent,
    StepCompletedEvent,
    StepStartedEvent,
)


class LoggingEventHandler:
    """
    Subscribes to domain events and logs them at a level matching their weight.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def handle(self, event: DomainEvent) -> None:
        """
        Handle domain event by logging it.

        Args:
            event: Domain event to log
        """
        try:
            if isinstance(event, JobCreatedEvent):
                self.logger.info(
                    f"Export job created: job_id={event.aggregate_id}, "
                    f"target_id={event.target_id}, owner_id={event.owner_id}, "
                    f"steps={event.steps_total}"
                )
            elif isinstance(event, JobStartedEvent):
                self.logger.info(
                    f"Export job started: job_id={event.aggregate_id}, target_id={event.target_id}"
                )
            elif isinstance(event, StepStartedEvent):
                self.logger.debug(
                    f"Export step started: job_id={event.aggregate_id}, "
                    f"step={event.step_name} (#{event.step_index + 1})"
                )
            elif isinstance(event, StepCompletedEvent):
                self.logger.debug(
                    f"Export step completed: job_id={event.aggregate_id}, "
                    f"step={event.step_name}, "
                    f"{event.steps_completed}/{event.steps_total} ({event.progress_percentage}%)"
                )
            elif isinstance(event, JobCompletedEvent):
                self.logger.info(
                    f"Export job completed: job_id={event.aggregate_id}, "
                    f"package={event.package_path} ({event.package_size_bytes} bytes), "
                    f"expires_at={event.package_expires_at.isoformat()}"
                )
            elif isinstance(event, JobFailedEvent):
                self.logger.error(
                    f"Export job failed: job_id={event.aggregate_id}, "
                    f"step={event.failed_step}, error={event.error_message}"
                )
            elif isinstance(event, JobCancelledEvent):
                self.logger.info(
                    f"Export job cancelled: job_id={event.aggregate_id}, by={event.cancelled_by}"
                )
            elif isinstance(event, JobDeletedEvent):
                self.logger.info(
                    f"Export job soft-deleted: job_id={event.aggregate_id}, by={event.deleted_by}"
                )
            elif isinstance(event, PackageExpiredEvent):
                self.logger.info(
                    f"Export package reclaimed: job_id={event.aggregate_id}, "
                    f"path={event.package_path}"
                )
            elif isinstance(event, PackageDownloadedEvent):
                self.logger.info(
                    f"Export package downloaded: job_id={event.aggregate_id}, "
                    f"by={event.downloaded_by}, bytes={event.byte_start}-{event.byte_end}, "
                    f"partial={event.partial}"
                )
            else:
                self.logger.debug(
                    f"Unhandled event: {event.__class__.__name__} "
                    f"(aggregate_id={event.aggregate_id})"
                )
        except Exception as e:
            self.logger.error(
                f"Error in logging event handler for {event.__class__.__name__}: {e}",
                exc_info=True,
            )
