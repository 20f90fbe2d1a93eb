"""
Job Query Service

Paginated, filtered and sorted listing of export jobs, scoped by caller role.
"""

import logging
from typing import List, Mapping, Optional

from export_engine.domain.errors import ForbiddenError, InvalidExportRequestError
from export_engine.domain.export_jobs.entities import ExportJob
from export_engine.domain.export_jobs.repositories import ExportJobRepository
from export_engine.domain.export_jobs.value_objects import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    CallerScope,
    JobListQuery,
    JobPage,
    JobStatus,
    SortDirection,
    SortField,
    parse_datetime,
)

logger = logging.getLogger(__name__)


class JobQueryService:
    def __init__(self, job_repository: ExportJobRepository, max_limit: int = MAX_PAGE_SIZE):
        self.job_repository = job_repository
        self.max_limit = max_limit

    def list_jobs(self, scope: CallerScope, query: JobListQuery) -> JobPage:
        """
        List the jobs visible to a caller.

        Non-administrators only ever see their own jobs. Soft-deleted jobs are
        hidden unless an administrator asks for them.

        Args:
            scope: Requesting caller
            query: Pagination, sort and filter parameters

        Returns:
            JobPage; an empty page is a valid result

        Raises:
            ForbiddenError: If a non-administrator asks for deleted jobs
            InvalidExportRequestError: If limit exceeds the configured maximum
        """
        if query.include_deleted and not scope.is_admin:
            raise ForbiddenError("Only administrators can list deleted export jobs")
        if query.limit > self.max_limit:
            raise InvalidExportRequestError(
                f"limit must be at most {self.max_limit}, got {query.limit}"
            )

        owner_id = None if scope.is_admin else scope.user_id
        candidates = self.job_repository.list_jobs(owner_id=owner_id)
        matching = [
            job for job in candidates if scope.can_view(job.owner_id) and self._matches(job, query)
        ]
        ordered = self._sort(matching, query.sort_by, query.sort_direction)
        items = tuple(ordered[query.offset : query.offset + query.limit])

        logger.debug(
            f"Listed {len(items)}/{len(ordered)} export jobs for {scope.user_id} "
            f"(offset={query.offset}, limit={query.limit})"
        )
        return JobPage(items=items, total=len(ordered), limit=query.limit, offset=query.offset)

    @staticmethod
    def _matches(job: ExportJob, query: JobListQuery) -> bool:
        if job.is_deleted and not query.include_deleted:
            return False
        if query.statuses and job.status not in query.statuses:
            return False
        if query.target_type and job.target_type != query.target_type:
            return False
        if query.created_from and job.created_at < query.created_from:
            return False
        if query.created_to and job.created_at > query.created_to:
            return False
        return True

    @staticmethod
    def _sort(jobs: List[ExportJob], field: SortField, direction: SortDirection) -> List[ExportJob]:
        # Missing values (e.g. completed_at of a running job) sort last either way.
        present = [job for job in jobs if getattr(job, field.value) is not None]
        missing = [job for job in jobs if getattr(job, field.value) is None]
        present.sort(
            key=lambda job: (getattr(job, field.value), job.job_id),
            reverse=direction == SortDirection.DESC,
        )
        missing.sort(key=lambda job: job.created_at, reverse=True)
        return present + missing


def build_list_query(params: Mapping[str, str]) -> JobListQuery:
    """
    Build a JobListQuery from raw request parameters.

    Accepts limit, offset, sort_by, sort_direction, status (comma separated),
    target_type, created_from, created_to and include_deleted.

    Raises:
        InvalidExportRequestError: On any unparseable or out-of-range value
    """
    try:
        statuses = frozenset(
            JobStatus(value.strip().lower())
            for value in (params.get("status") or "").split(",")
            if value.strip()
        )
        return JobListQuery(
            limit=int(params.get("limit") or DEFAULT_PAGE_SIZE),
            offset=int(params.get("offset") or 0),
            sort_by=SortField((params.get("sort_by") or SortField.CREATED_AT.value).lower()),
            sort_direction=SortDirection(
                (params.get("sort_direction") or SortDirection.DESC.value).lower()
            ),
            statuses=statuses,
            target_type=params.get("target_type") or None,
            created_from=parse_datetime(params.get("created_from")),
            created_to=parse_datetime(params.get("created_to")),
            include_deleted=_parse_bool(params.get("include_deleted")),
        )
    except ValueError as e:
        raise InvalidExportRequestError(f"Invalid listing parameters: {e}") from e


def _parse_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")
