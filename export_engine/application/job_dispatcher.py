"""
Job Dispatcher Interface

Hands a freshly created job to an asynchronous execution unit. The
orchestrator returns to its caller as soon as dispatch() returns.
"""

from abc import ABC, abstractmethod


class IJobDispatcher(ABC):
    @abstractmethod
    def dispatch(self, job_id: str) -> None:
        """
        Schedule the step runner for a job.

        Raises:
            Exception: Any backend error; the orchestrator marks the job failed
        """
        pass
