"""
API v1 - Export Job Engine REST API

Versioned endpoints with OpenAPI/Swagger documentation.
"""

import os

from flask import Blueprint
from flask_restx import Api

API_VERSION = os.getenv("API_VERSION", "v1")

api_v1_bp = Blueprint("api_v1", __name__, url_prefix=f"/api/{API_VERSION}")

api = Api(
    api_v1_bp,
    version="1.0",
    title="Export Job Engine API",
    description="Start, track, cancel and download export jobs",
    doc="/docs",  # Swagger UI at /api/v1/docs
)

# Import namespaces after api is created to avoid circular imports
from .namespaces import export_ns, target_ns  # noqa: E402

api.add_namespace(target_ns, path="/targets")
api.add_namespace(export_ns, path="/exports")
