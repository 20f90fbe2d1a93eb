"""
Error Handling Module

Domain errors are raised by the job lifecycle, the orchestrator and the
download gateway. ApplicationError wraps a category with the title, message
and next step shown to API callers.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Stable machine-readable codes returned in the ``error`` field."""

    EXPORT_CONFLICT = "export_conflict"
    JOB_NOT_FOUND = "job_not_found"
    TARGET_NOT_FOUND = "target_not_found"
    PACKAGE_NOT_FOUND = "package_not_found"
    PACKAGE_EXPIRED = "package_expired"
    PACKAGE_TAMPERED = "package_tampered"
    INVALID_STATE = "invalid_state"
    INVALID_RANGE = "invalid_range"
    INVALID_REQUEST = "invalid_request"
    FORBIDDEN = "forbidden"
    UNAUTHORIZED = "unauthorized"
    SERVICE_UNAVAILABLE = "service_unavailable"
    SYSTEM_ERROR = "system_error"


# Caller-facing copy per category
ERROR_MESSAGES: Dict[ErrorCategory, Dict[str, str]] = {
    ErrorCategory.EXPORT_CONFLICT: {
        "title": "Export Already Running",
        "message": "An export for this target is already pending or in progress.",
        "action": "Wait for the running export to finish or cancel it first.",
    },
    ErrorCategory.JOB_NOT_FOUND: {
        "title": "Export Not Found",
        "message": "The requested export job could not be found.",
        "action": "Check the export job id and try again.",
    },
    ErrorCategory.TARGET_NOT_FOUND: {
        "title": "Target Not Found",
        "message": "The resource you are trying to export does not exist or is not accessible.",
        "action": "Check the target id and your access to it.",
    },
    ErrorCategory.PACKAGE_NOT_FOUND: {
        "title": "Package Not Available",
        "message": "This export has no downloadable package.",
        "action": "Wait for the export to complete, then try again.",
    },
    ErrorCategory.PACKAGE_EXPIRED: {
        "title": "Package Expired",
        "message": "The export package has passed its retention window and is no longer available.",
        "action": "Run the export again to produce a new package.",
    },
    ErrorCategory.PACKAGE_TAMPERED: {
        "title": "Package Integrity Check Failed",
        "message": "The stored package does not match the checksum recorded at export time.",
        "action": "Run the export again. If the problem persists, contact support.",
    },
    ErrorCategory.INVALID_STATE: {
        "title": "Operation Not Allowed",
        "message": "This operation is not allowed for the export job in its current state.",
        "action": "Refresh the export status and try again.",
    },
    ErrorCategory.INVALID_RANGE: {
        "title": "Invalid Range",
        "message": "The requested byte range cannot be satisfied for this package.",
        "action": "Restart the download from the beginning.",
    },
    ErrorCategory.INVALID_REQUEST: {
        "title": "Invalid Request",
        "message": "The request is missing required information or contains invalid data.",
        "action": "Fix the highlighted fields and resend the request.",
    },
    ErrorCategory.FORBIDDEN: {
        "title": "Forbidden",
        "message": "You do not have permission to perform this operation.",
        "action": "Ask an administrator to perform this operation.",
    },
    ErrorCategory.UNAUTHORIZED: {
        "title": "Unauthorized",
        "message": "The request does not identify a caller.",
        "action": "Sign in and try again.",
    },
    ErrorCategory.SERVICE_UNAVAILABLE: {
        "title": "Service Unavailable",
        "message": "The export service is temporarily unable to accept work.",
        "action": "Retry the request in a few minutes.",
    },
    ErrorCategory.SYSTEM_ERROR: {
        "title": "System Error",
        "message": "The export service hit an unexpected failure.",
        "action": "Retry later and report the job id if it keeps failing.",
    },
}


# ============================================================================
# Domain Exceptions
# ============================================================================


class DomainError(Exception):
    """Root of the export engine errors; ``original_error`` keeps the low-level cause."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class JobConflictError(DomainError):
    """Raised when an active export already holds the target."""

    def __init__(self, target_id: str, active_job_id: Optional[str] = None):
        message = f"Target {target_id} already has an active export job"
        if active_job_id:
            message += f" ({active_job_id})"
        super().__init__(message)
        self.target_id = target_id
        self.active_job_id = active_job_id


class JobNotFoundError(DomainError):
    """Raised when a job is absent, soft-deleted or outside the caller's visibility."""


class TargetNotFoundError(DomainError):
    """Raised when the export target does not exist or is not accessible."""


class PackageNotFoundError(DomainError):
    """Raised when a job has no package to serve."""


class PackageGoneError(DomainError):
    """Raised when a package has passed its retention window."""


class PackageIntegrityError(DomainError):
    """Raised when stored package bytes do not match the recorded checksum."""


class RangeNotSatisfiableError(DomainError):
    """Raised when a byte range lies outside the package."""

    def __init__(self, message: str, total_size: int):
        super().__init__(message)
        self.total_size = total_size


class JobStateError(DomainError):
    """Raised when an operation is illegal for the job's current status."""


class ForbiddenError(DomainError):
    """Raised when the caller lacks the role required for an operation."""


class InvalidExportRequestError(DomainError):
    """Raised when export or listing parameters fail validation."""


class JobDispatchError(DomainError):
    """Raised when a job cannot be handed to the execution backend."""


class UnknownStepError(InvalidExportRequestError):
    """Raised when a step name has no registered implementation."""


class StepFailure(DomainError):
    """
    Typed failure raised by a step function.

    Internal to the step runner: the message becomes the job's error_message
    and is only visible to callers through the failed job record.
    """


# ============================================================================
# Application Layer Exceptions
# ============================================================================


class ApplicationError(Exception):
    """
    An error the API reports to the caller.

    ``technical_message`` and ``context`` travel as ``detail`` and ``context``
    in the response body; the rest comes from ERROR_MESSAGES.
    """

    def __init__(
        self,
        category: ErrorCategory,
        technical_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.category = category
        self.technical_message = technical_message or ""
        self.context = context or {}

        copy = ERROR_MESSAGES.get(category) or ERROR_MESSAGES[ErrorCategory.SYSTEM_ERROR]
        self.title, self.message, self.action = copy["title"], copy["message"], copy["action"]

        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "error": self.category.value,
            "title": self.title,
            "message": self.message,
            "action": self.action,
        }
        if self.technical_message:
            payload["detail"] = self.technical_message
        if self.context:
            payload["context"] = self.context
        return payload


class UnauthorizedError(ApplicationError):
    """Raised when a request carries no caller identity."""

    def __init__(
        self,
        technical_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCategory.UNAUTHORIZED, technical_message, context)
        self.http_status_code = 401


def create_error_response(
    category: ErrorCategory,
    technical_message: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    status_code: int = 400,
) -> tuple[Dict[str, Any], int]:
    """Body and status for an error raised outside an ApplicationError."""
    return ApplicationError(category, technical_message, context).to_dict(), status_code
