"""
Download Gateway

Serves the package of a completed, non-expired job with byte-range support.
Expiry is a logical state checked against the job record before any storage
access, so a package awaiting the retention sweep is never served.
"""

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional, Tuple

from werkzeug.http import parse_range_header

from export_engine.domain.errors import (
    JobNotFoundError,
    PackageGoneError,
    PackageIntegrityError,
    PackageNotFoundError,
    RangeNotSatisfiableError,
)
from export_engine.domain.events import PackageDownloadedEvent
from export_engine.domain.export_jobs.entities import ExportJob
from export_engine.domain.export_jobs.repositories import ExportJobRepository
from export_engine.domain.export_jobs.value_objects import CallerScope, JobStatus, utc_now
from export_engine.domain.package_storage import IPackageStorage, sha256_stream

from .event_publisher import EventPublisher

logger = logging.getLogger(__name__)

PACKAGE_CONTENT_TYPE = "application/gzip"


@dataclass
class PackageDownload:
    """
    A package stream ready to be sent.

    Attributes:
        chunks: Iterator over the bytes between start and end
        filename: Suggested download file name
        total_size: Full package size
        start: First byte offset served
        end: Last byte offset served (inclusive)
        is_partial: True when a Range request was honored
    """

    chunks: Iterator[bytes]
    filename: str
    total_size: int
    start: int
    end: int
    is_partial: bool
    content_type: str = PACKAGE_CONTENT_TYPE
    checksum: Optional[str] = None

    @property
    def content_length(self) -> int:
        return max(self.end - self.start + 1, 0)

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total_size}"


class DownloadGateway:
    """Application service streaming export packages to callers."""

    def __init__(
        self,
        job_repository: ExportJobRepository,
        package_storage: IPackageStorage,
        event_publisher: EventPublisher,
        verify_checksum: bool = True,
    ):
        self.job_repository = job_repository
        self.package_storage = package_storage
        self.event_publisher = event_publisher
        self.verify_checksum = verify_checksum

    def download(
        self,
        job_id: str,
        scope: CallerScope,
        range_header: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PackageDownload:
        """
        Open a package stream for a caller.

        Args:
            job_id: Job whose package is requested
            scope: Requesting caller
            range_header: Raw HTTP Range header value, if any
            now: Reference time for the expiry check

        Returns:
            PackageDownload for the full package or the requested range

        Raises:
            JobNotFoundError: If the job is absent, deleted or not visible
            PackageNotFoundError: If the job has no stored package
            PackageGoneError: If the retention window has passed
            PackageIntegrityError: If the stored bytes fail checksum verification
            RangeNotSatisfiableError: If the requested range lies outside the package
        """
        now = now or utc_now()
        job = self.job_repository.get(job_id)
        if job is None or job.is_deleted or not scope.can_view(job.owner_id):
            raise JobNotFoundError(f"Export job {job_id} not found")
        if job.status != JobStatus.COMPLETED:
            raise PackageNotFoundError(
                f"Export job {job_id} is {job.status.value}, no package available"
            )
        if job.is_expired(now):
            raise PackageGoneError(
                f"Package of export job {job_id} expired at {job.package_expires_at.isoformat()}"
            )
        if not job.package_path:
            raise PackageNotFoundError(f"Export job {job_id} has no package")

        path = job.package_path
        total_size = self.package_storage.get_size(path)
        if total_size is None:
            logger.error(f"Package {path} of completed job {job_id} is missing from storage")
            raise PackageNotFoundError(f"Package of export job {job_id} is missing")

        start, end, is_partial = self._resolve_range(range_header, total_size)
        # Resume requests skip the full hash once a download has verified the package
        if self.verify_checksum and job.package_checksum and (
            not is_partial or job.checksum_verified_at is None
        ):
            self._verify_integrity(job, path)

        try:
            chunks = self.package_storage.open_range(path, start, end)
        except FileNotFoundError as e:
            raise PackageNotFoundError(f"Package of export job {job_id} is missing") from e

        self._record_download(job, scope, start, end, is_partial, now)

        return PackageDownload(
            chunks=chunks,
            filename=path.rsplit("/", 1)[-1],
            total_size=total_size,
            start=start,
            end=end,
            is_partial=is_partial,
            checksum=job.package_checksum,
        )

    @staticmethod
    def _resolve_range(range_header: Optional[str], total_size: int) -> Tuple[int, int, bool]:
        """
        Map a Range header onto inclusive byte offsets.

        Malformed and multi-range headers fall back to the full package.
        """
        full = (0, total_size - 1, False)
        if not range_header:
            return full

        parsed = parse_range_header(range_header)
        if parsed is None or parsed.units != "bytes" or len(parsed.ranges) != 1:
            logger.debug(f"Ignoring unsupported Range header: {range_header}")
            return full

        bounds = parsed.range_for_length(total_size)
        if bounds is None:
            raise RangeNotSatisfiableError(
                f"Range {range_header} cannot be satisfied for {total_size} bytes",
                total_size=total_size,
            )
        start, stop = bounds
        return start, stop - 1, True

    def _verify_integrity(self, job: ExportJob, path: str) -> None:
        try:
            actual = sha256_stream(self.package_storage.open_range(path))
        except FileNotFoundError as e:
            raise PackageNotFoundError(f"Package of export job {job.job_id} is missing") from e

        if not hmac.compare_digest(actual, job.package_checksum):
            logger.error(
                f"Checksum mismatch for package {path} of job {job.job_id}: "
                f"expected {job.package_checksum}, got {actual}"
            )
            raise PackageIntegrityError(
                f"Package of export job {job.job_id} failed integrity verification"
            )

        try:
            current = self.job_repository.get(job.job_id)
            if current is not None:
                current.mark_checksum_verified()
                self.job_repository.save(current)
        except Exception as e:
            logger.warning(f"Could not record checksum verification for job {job.job_id}: {e}")

    def _record_download(
        self,
        job: ExportJob,
        scope: CallerScope,
        start: int,
        end: int,
        is_partial: bool,
        now: datetime,
    ) -> None:
        # Counts download attempts at stream start; never blocks the transfer.
        try:
            if not self.job_repository.record_download(job.job_id, now):
                logger.warning(f"Download counters of job {job.job_id} were not updated")
        except Exception as e:
            logger.warning(f"Could not record download of job {job.job_id}: {e}")

        self.event_publisher.publish(
            PackageDownloadedEvent(
                aggregate_id=job.job_id,
                occurred_at=now,
                downloaded_by=scope.user_id,
                byte_start=start,
                byte_end=end,
                partial=is_partial,
            )
        )
