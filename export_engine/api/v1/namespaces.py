"""
API Namespaces - Organized endpoint groups
"""

from typing import Any, Dict, Optional

from flask import Response, current_app, request
from flask_restx import Namespace, Resource, marshal

from export_engine.api.v1 import API_VERSION
from export_engine.api.v1.models import (
    checksum_model,
    error_response,
    export_job_model,
    export_request,
    job_page_model,
)
from export_engine.application.download_gateway import DownloadGateway
from export_engine.application.export_orchestrator import JobOrchestrator
from export_engine.application.job_query_service import JobQueryService, build_list_query
from export_engine.domain.errors import (
    ApplicationError,
    DomainError,
    ErrorCategory,
    ForbiddenError,
    InvalidExportRequestError,
    JobConflictError,
    JobDispatchError,
    JobNotFoundError,
    JobStateError,
    PackageGoneError,
    PackageIntegrityError,
    PackageNotFoundError,
    RangeNotSatisfiableError,
    TargetNotFoundError,
    UnauthorizedError,
    create_error_response,
)
from export_engine.domain.export_jobs import CallerRole, CallerScope, ExportJob, JobStatus

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"

# First match wins, so subclasses go before their bases.
DOMAIN_ERROR_STATUS = (
    (JobConflictError, ErrorCategory.EXPORT_CONFLICT, 409),
    (JobNotFoundError, ErrorCategory.JOB_NOT_FOUND, 404),
    (TargetNotFoundError, ErrorCategory.TARGET_NOT_FOUND, 404),
    (PackageNotFoundError, ErrorCategory.PACKAGE_NOT_FOUND, 404),
    (PackageGoneError, ErrorCategory.PACKAGE_EXPIRED, 410),
    (PackageIntegrityError, ErrorCategory.PACKAGE_TAMPERED, 403),
    (RangeNotSatisfiableError, ErrorCategory.INVALID_RANGE, 416),
    (JobStateError, ErrorCategory.INVALID_STATE, 409),
    (ForbiddenError, ErrorCategory.FORBIDDEN, 403),
    (InvalidExportRequestError, ErrorCategory.INVALID_REQUEST, 400),
    (JobDispatchError, ErrorCategory.SERVICE_UNAVAILABLE, 503),
)


def _caller_scope() -> CallerScope:
    """
    Build the caller scope from the headers set by the authentication layer.

    Raises:
        UnauthorizedError: If no user id is present
    """
    user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not user_id:
        raise UnauthorizedError(f"Missing {USER_ID_HEADER} header")

    role_value = (request.headers.get(USER_ROLE_HEADER) or "").strip().lower()
    role = CallerRole.ADMIN if role_value == CallerRole.ADMIN.value else CallerRole.USER
    return CallerScope(user_id=user_id, role=role)


def _domain_error_response(error: DomainError):
    """Map a domain exception onto the structured error document and status."""
    for error_type, category, status_code in DOMAIN_ERROR_STATUS:
        if isinstance(error, error_type):
            context = None
            if isinstance(error, JobConflictError) and error.active_job_id:
                context = {"active_job_id": error.active_job_id}
            return create_error_response(category, str(error), context, status_code)

    current_app.logger.error(f"Unmapped domain error: {error}")
    return create_error_response(ErrorCategory.SYSTEM_ERROR, str(error), status_code=500)


def _application_error_response(error: ApplicationError):
    status_code = getattr(error, "http_status_code", 400)
    return create_error_response(
        error.category, error.technical_message, error.context or None, status_code
    )


def _unexpected_error_response(action: str, error: Exception):
    current_app.logger.exception(f"Unexpected error while {action}: {str(error)}")
    return create_error_response(
        ErrorCategory.SYSTEM_ERROR,
        f"Internal server error: {str(error)}",
        status_code=500,
    )


def _job_payload(job: ExportJob) -> Dict[str, Any]:
    """Public job document: storage paths and version counters stay internal."""
    data = job.to_dict()
    data["download_url"] = _download_url(job)
    return marshal(data, export_job_model)


def _download_url(job: ExportJob) -> Optional[str]:
    if job.status != JobStatus.COMPLETED or not job.package_path or job.is_expired():
        return None
    return f"{request.script_root}/api/{API_VERSION}/exports/{job.job_id}/download"


def _orchestrator() -> JobOrchestrator:
    return current_app.container.resolve(JobOrchestrator)


# =============================================================================
# Target Namespace - Starting exports
# =============================================================================

target_ns = Namespace("targets", description="Export targets")


@target_ns.route("/<string:target_id>/exports")
@target_ns.param("target_id", "The resource to export")
class TargetExports(Resource):
    """Start an export of a target"""

    @target_ns.doc("start_export")
    @target_ns.expect(export_request)
    @target_ns.response(202, "Export accepted", export_job_model)
    @target_ns.response(400, "Bad Request", error_response)
    @target_ns.response(401, "Unauthorized", error_response)
    @target_ns.response(404, "Target Not Found", error_response)
    @target_ns.response(409, "Export Already Running", error_response)
    @target_ns.response(503, "Service Unavailable", error_response)
    def post(self, target_id):
        """
        Start an export job

        Creates a pending job and schedules its steps in the background.
        Only one export per target can be pending or in progress at a time.
        """
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return create_error_response(
                ErrorCategory.INVALID_REQUEST,
                "Request body must be a JSON object",
                status_code=400,
            )
        steps = data.get("steps")
        retention_days = data.get("retention_days")

        if steps is not None and (
            not isinstance(steps, list) or not all(isinstance(s, str) for s in steps)
        ):
            return create_error_response(
                ErrorCategory.INVALID_REQUEST,
                "'steps' must be a list of step names",
                status_code=400,
            )
        if retention_days is not None and (
            isinstance(retention_days, bool) or not isinstance(retention_days, int)
        ):
            return create_error_response(
                ErrorCategory.INVALID_REQUEST,
                "'retention_days' must be an integer",
                status_code=400,
            )

        try:
            scope = _caller_scope()
            job = _orchestrator().start(
                target_id, scope, step_names=steps, retention_days=retention_days
            )
            return _job_payload(job), 202

        except ApplicationError as e:
            return _application_error_response(e)
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            return _unexpected_error_response(f"starting export of {target_id}", e)


# =============================================================================
# Export Namespace - Job status, lifecycle and packages
# =============================================================================

export_ns = Namespace("exports", description="Export job operations")


@export_ns.route("/")
class ExportJobList(Resource):
    """List export jobs"""

    @export_ns.doc(
        "list_exports",
        params={
            "limit": "Page size (default 20, max 100)",
            "offset": "Number of jobs to skip",
            "sort_by": "created_at, completed_at, download_count or package_size_bytes",
            "sort_direction": "asc or desc",
            "status": "Comma separated statuses",
            "target_type": "Only jobs of this target type",
            "created_from": "ISO-8601 lower bound on created_at",
            "created_to": "ISO-8601 upper bound on created_at",
            "include_deleted": "Include soft-deleted jobs (admin only)",
        },
    )
    @export_ns.response(200, "Success", job_page_model)
    @export_ns.response(400, "Bad Request", error_response)
    @export_ns.response(403, "Forbidden", error_response)
    def get(self):
        """
        List export jobs

        Users see their own jobs, administrators see every job.
        """
        try:
            scope = _caller_scope()
            query = build_list_query(request.args)
            service = current_app.container.resolve(JobQueryService)
            page = service.list_jobs(scope, query)

            return {
                "items": [_job_payload(job) for job in page.items],
                "total": page.total,
                "limit": page.limit,
                "offset": page.offset,
                "page": page.page,
                "total_pages": page.total_pages,
            }, 200

        except ApplicationError as e:
            return _application_error_response(e)
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            return _unexpected_error_response("listing exports", e)


@export_ns.route("/<string:job_id>")
@export_ns.param("job_id", "The export job identifier")
class ExportJobResource(Resource):
    """Export job status and deletion"""

    @export_ns.doc("get_export_status")
    @export_ns.response(200, "Success", export_job_model)
    @export_ns.response(404, "Export Not Found", error_response)
    def get(self, job_id):
        """
        Get export status and progress

        Poll this endpoint to track progress. A download_url is present
        while the completed package can be downloaded.
        """
        try:
            job = _orchestrator().get_status(job_id, _caller_scope())
            return _job_payload(job), 200

        except ApplicationError as e:
            return _application_error_response(e)
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            return _unexpected_error_response(f"getting export {job_id}", e)

    @export_ns.doc("delete_export")
    @export_ns.response(204, "Export deleted")
    @export_ns.response(403, "Forbidden", error_response)
    @export_ns.response(404, "Export Not Found", error_response)
    @export_ns.response(409, "Export Still Active", error_response)
    def delete(self, job_id):
        """
        Soft-delete a finished export (administrators only)

        The job disappears from listings and status reads. Its package is
        reclaimed by the retention sweep.
        """
        try:
            _orchestrator().delete(job_id, _caller_scope())
            return "", 204

        except ApplicationError as e:
            return _application_error_response(e)
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            return _unexpected_error_response(f"deleting export {job_id}", e)


@export_ns.route("/<string:job_id>/cancel")
@export_ns.param("job_id", "The export job identifier")
class ExportJobCancel(Resource):
    """Cancel an active export"""

    @export_ns.doc("cancel_export")
    @export_ns.response(200, "Export cancelled", export_job_model)
    @export_ns.response(404, "Export Not Found", error_response)
    @export_ns.response(409, "Export Already Finished", error_response)
    def post(self, job_id):
        """
        Cancel a pending or running export

        The running step finishes; no further step starts.
        """
        try:
            job = _orchestrator().cancel(job_id, _caller_scope())
            return _job_payload(job), 200

        except ApplicationError as e:
            return _application_error_response(e)
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            return _unexpected_error_response(f"cancelling export {job_id}", e)


@export_ns.route("/<string:job_id>/download")
@export_ns.param("job_id", "The export job identifier")
class ExportPackageDownload(Resource):
    """Download the export package"""

    @export_ns.doc("download_export_package")
    @export_ns.response(200, "Full package")
    @export_ns.response(206, "Partial package")
    @export_ns.response(403, "Integrity Check Failed", error_response)
    @export_ns.response(404, "Package Not Available", error_response)
    @export_ns.response(410, "Package Expired", error_response)
    @export_ns.response(416, "Range Not Satisfiable", error_response)
    def get(self, job_id):
        """
        Stream the export package

        Supports a single byte range through the Range header so interrupted
        downloads can resume.
        """
        try:
            gateway = current_app.container.resolve(DownloadGateway)
            download = gateway.download(
                job_id, _caller_scope(), range_header=request.headers.get("Range")
            )

            headers = {
                "Content-Length": str(download.content_length),
                "Content-Disposition": f'attachment; filename="{download.filename}"',
                "Accept-Ranges": "bytes",
            }
            if download.is_partial:
                headers["Content-Range"] = download.content_range
            if download.checksum:
                headers["X-Checksum-SHA256"] = download.checksum

            return Response(
                download.chunks,
                status=206 if download.is_partial else 200,
                mimetype=download.content_type,
                headers=headers,
                direct_passthrough=True,
            )

        except RangeNotSatisfiableError as e:
            body, status_code = _domain_error_response(e)
            return body, status_code, {"Content-Range": f"bytes */{e.total_size}"}
        except ApplicationError as e:
            return _application_error_response(e)
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            return _unexpected_error_response(f"downloading export {job_id}", e)


@export_ns.route("/<string:job_id>/checksum")
@export_ns.param("job_id", "The export job identifier")
class ExportPackageChecksum(Resource):
    """Package integrity information"""

    @export_ns.doc("get_export_checksum")
    @export_ns.response(200, "Success", checksum_model)
    @export_ns.response(404, "Package Not Available", error_response)
    def get(self, job_id):
        """Get the checksum recorded for the export package"""
        try:
            info = _orchestrator().get_checksum(job_id, _caller_scope())
            return marshal(info, checksum_model), 200

        except ApplicationError as e:
            return _application_error_response(e)
        except DomainError as e:
            return _domain_error_response(e)
        except Exception as e:
            return _unexpected_error_response(f"reading checksum of export {job_id}", e)
