"""
API Models for request/response validation and Swagger documentation
"""

from flask_restx import fields

from export_engine.api.v1 import api

# =============================================================================
# Request Models
# =============================================================================

export_request = api.model(
    "ExportRequest",
    {
        "steps": fields.List(
            fields.String,
            required=False,
            description="Ordered step names; the configured default pipeline when omitted",
            example=["prepare_workspace", "write_manifest", "package_archive"],
        ),
        "retention_days": fields.Integer(
            required=False,
            description="Days the package stays downloadable after completion",
            min=1,
            max=365,
            example=30,
        ),
    },
)

# =============================================================================
# Response Models
# =============================================================================

step_model = api.model(
    "ExportStep",
    {
        "name": fields.String(description="Step name"),
        "status": fields.String(
            description="Step status",
            enum=["pending", "in_progress", "completed", "failed"],
        ),
        "message": fields.String(description="Failure message", allow_null=True),
        "started_at": fields.String(description="ISO-8601 start time", allow_null=True),
        "completed_at": fields.String(description="ISO-8601 end time", allow_null=True),
    },
)

export_job_model = api.model(
    "ExportJob",
    {
        "job_id": fields.String(description="Unique job identifier"),
        "target_id": fields.String(description="Exported resource"),
        "target_type": fields.String(description="Kind of exported resource"),
        "owner_id": fields.String(description="Requesting principal"),
        "status": fields.String(
            description="Job status",
            enum=["pending", "in_progress", "completed", "failed", "cancelled"],
        ),
        "steps": fields.List(fields.Nested(step_model)),
        "steps_completed": fields.Integer(),
        "steps_total": fields.Integer(),
        "progress_percentage": fields.Integer(min=0, max=100),
        "current_step": fields.String(allow_null=True),
        "error_message": fields.String(allow_null=True),
        "package_size_bytes": fields.Integer(allow_null=True),
        "package_checksum": fields.String(allow_null=True),
        "package_algorithm": fields.String(),
        "package_expires_at": fields.String(allow_null=True),
        "package_retention_days": fields.Integer(),
        "download_count": fields.Integer(),
        "last_downloaded_at": fields.String(allow_null=True),
        "download_url": fields.String(
            description="Present while the package can be downloaded", allow_null=True
        ),
        "created_at": fields.String(),
        "updated_at": fields.String(),
        "started_at": fields.String(allow_null=True),
        "completed_at": fields.String(allow_null=True),
        "deleted_at": fields.String(allow_null=True),
    },
)

job_page_model = api.model(
    "ExportJobPage",
    {
        "items": fields.List(fields.Nested(export_job_model)),
        "total": fields.Integer(description="Number of matching jobs"),
        "limit": fields.Integer(),
        "offset": fields.Integer(),
        "page": fields.Integer(description="1-based page number"),
        "total_pages": fields.Integer(),
    },
)

checksum_model = api.model(
    "PackageChecksum",
    {
        "job_id": fields.String(),
        "checksum": fields.String(description="Hex digest of the package"),
        "algorithm": fields.String(example="sha256"),
        "package_size_bytes": fields.Integer(allow_null=True),
        "checksum_verified_at": fields.String(allow_null=True),
    },
)

error_response = api.model(
    "ErrorResponse",
    {
        "error": fields.String(description="Error category"),
        "title": fields.String(description="Error title"),
        "message": fields.String(description="User-friendly message"),
        "action": fields.String(description="Suggested action"),
        "detail": fields.String(description="Technical detail"),
    },
)
