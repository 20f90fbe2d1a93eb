"""
Unit tests for DownloadGateway.

Packages live in a real LocalPackageStorage under tmp_path; the job store is
in memory.
"""

import io
from unittest.mock import Mock

import pytest

from export_engine.application.download_gateway import DownloadGateway
from export_engine.domain.errors import (
    JobNotFoundError,
    PackageGoneError,
    PackageIntegrityError,
    PackageNotFoundError,
    RangeNotSatisfiableError,
)
from export_engine.domain.events import PackageDownloadedEvent
from tests.fixtures import expire, make_completed_job, make_job, make_running_job

CONTENT = b"0123456789abcdefghijklmnopqrstuvwxyz"


@pytest.fixture
def completed_job(job_repository, package_storage):
    return job_repository.put(make_completed_job(content=CONTENT, storage=package_storage))


def read_all(download) -> bytes:
    return b"".join(download.chunks)


class TestFullDownload:
    def test_streams_whole_package(self, download_gateway, completed_job, alice):
        download = download_gateway.download(completed_job.job_id, alice)

        assert read_all(download) == CONTENT
        assert not download.is_partial
        assert download.total_size == len(CONTENT)
        assert download.content_length == len(CONTENT)
        assert download.filename == "tool-1.tar.gz"
        assert download.content_type == "application/gzip"
        assert download.checksum == completed_job.package_checksum

    def test_counts_the_download(self, download_gateway, job_repository, completed_job, alice):
        download_gateway.download(completed_job.job_id, alice)
        download_gateway.download(completed_job.job_id, alice)

        stored = job_repository.get(completed_job.job_id)
        assert stored.download_count == 2
        assert stored.last_downloaded_at is not None

    def test_publishes_download_event(
        self, download_gateway, completed_job, alice, published_events
    ):
        download_gateway.download(completed_job.job_id, alice, range_header="bytes=0-9")

        [event] = [e for e in published_events if isinstance(e, PackageDownloadedEvent)]
        assert event.downloaded_by == "alice"
        assert (event.byte_start, event.byte_end, event.partial) == (0, 9, True)

    def test_records_checksum_verification(
        self, download_gateway, job_repository, completed_job, alice
    ):
        download_gateway.download(completed_job.job_id, alice)
        assert job_repository.get(completed_job.job_id).checksum_verified_at is not None

    def test_admin_downloads_any_package(self, download_gateway, completed_job, admin):
        assert read_all(download_gateway.download(completed_job.job_id, admin)) == CONTENT


class TestRanges:
    @pytest.mark.parametrize(
        "header,start,end",
        [
            ("bytes=5-9", 5, 9),
            ("bytes=30-", 30, len(CONTENT) - 1),
            ("bytes=-4", len(CONTENT) - 4, len(CONTENT) - 1),
            ("bytes=10-1000", 10, len(CONTENT) - 1),
        ],
    )
    def test_single_range(self, download_gateway, completed_job, alice, header, start, end):
        download = download_gateway.download(completed_job.job_id, alice, range_header=header)

        assert download.is_partial
        assert (download.start, download.end) == (start, end)
        assert read_all(download) == CONTENT[start : end + 1]
        assert download.content_range == f"bytes {start}-{end}/{len(CONTENT)}"

    def test_resumed_download_reassembles_package(self, download_gateway, completed_job, alice):
        head = read_all(download_gateway.download(completed_job.job_id, alice, "bytes=0-11"))
        tail = read_all(download_gateway.download(completed_job.job_id, alice, "bytes=12-"))

        assert head + tail == CONTENT

    def test_range_past_end_is_not_satisfiable(self, download_gateway, completed_job, alice):
        with pytest.raises(RangeNotSatisfiableError) as exc_info:
            download_gateway.download(completed_job.job_id, alice, range_header="bytes=500-600")

        assert exc_info.value.total_size == len(CONTENT)

    @pytest.mark.parametrize("header", ["bytes=abc", "items=0-5", "bytes=0-1,4-5"])
    def test_unsupported_range_serves_full_package(
        self, download_gateway, completed_job, alice, header
    ):
        download = download_gateway.download(completed_job.job_id, alice, range_header=header)

        assert not download.is_partial
        assert read_all(download) == CONTENT


class TestUnavailablePackages:
    def test_expired_package_is_gone_before_sweep(
        self, download_gateway, job_repository, package_storage, alice
    ):
        job = make_completed_job(content=CONTENT, storage=package_storage)
        job_repository.put(expire(job))

        with pytest.raises(PackageGoneError):
            download_gateway.download(job.job_id, alice)
        assert package_storage.exists(job.package_path)

    def test_swept_package_is_gone(self, download_gateway, job_repository, alice):
        job = expire(make_completed_job())
        job.clear_package()
        job_repository.put(job)

        with pytest.raises(PackageGoneError):
            download_gateway.download(job.job_id, alice)

    @pytest.mark.parametrize("builder", [make_job, make_running_job])
    def test_unfinished_job_has_no_package(self, download_gateway, job_repository, alice, builder):
        job = job_repository.put(builder())
        with pytest.raises(PackageNotFoundError):
            download_gateway.download(job.job_id, alice)

    def test_failed_job_has_no_package(self, download_gateway, job_repository, alice):
        job = make_running_job()
        job.fail("boom")
        job_repository.put(job)
        with pytest.raises(PackageNotFoundError):
            download_gateway.download(job.job_id, alice)

    def test_missing_bytes(self, download_gateway, job_repository, alice):
        job = job_repository.put(make_completed_job())
        with pytest.raises(PackageNotFoundError):
            download_gateway.download(job.job_id, alice)

    def test_other_user_gets_not_found(self, download_gateway, completed_job, bob):
        with pytest.raises(JobNotFoundError):
            download_gateway.download(completed_job.job_id, bob)

    def test_deleted_job_gets_not_found(
        self, download_gateway, job_repository, package_storage, alice
    ):
        job = make_completed_job(content=CONTENT, storage=package_storage)
        job.mark_deleted("root")
        job_repository.put(job)
        with pytest.raises(JobNotFoundError):
            download_gateway.download(job.job_id, alice)


class TestIntegrity:
    def test_tampered_package_is_refused(
        self, download_gateway, completed_job, package_storage, alice
    ):
        package_storage.save(completed_job.package_path, io.BytesIO(b"tampered" + CONTENT[8:]))

        with pytest.raises(PackageIntegrityError):
            download_gateway.download(completed_job.job_id, alice)

    def test_verification_can_be_disabled(
        self, job_repository, package_storage, event_publisher, completed_job, alice
    ):
        package_storage.save(completed_job.package_path, io.BytesIO(b"changed"))
        gateway = DownloadGateway(
            job_repository, package_storage, event_publisher, verify_checksum=False
        )

        assert read_all(gateway.download(completed_job.job_id, alice)) == b"changed"

    def test_first_ranged_request_verifies_the_package(
        self, download_gateway, completed_job, package_storage, alice
    ):
        package_storage.save(completed_job.package_path, io.BytesIO(b"tampered" + CONTENT[8:]))

        with pytest.raises(PackageIntegrityError):
            download_gateway.download(completed_job.job_id, alice, range_header="bytes=10-19")

    def test_resume_of_verified_package_reads_only_the_range(
        self, download_gateway, job_repository, completed_job, package_storage, alice
    ):
        download_gateway.download(completed_job.job_id, alice)
        package_storage.open_range = Mock(wraps=package_storage.open_range)

        download = download_gateway.download(
            completed_job.job_id, alice, range_header="bytes=10-19"
        )

        assert read_all(download) == CONTENT[10:20]
        package_storage.open_range.assert_called_once_with(completed_job.package_path, 10, 19)

    def test_full_download_is_verified_every_time(
        self, download_gateway, job_repository, completed_job, package_storage, alice
    ):
        download_gateway.download(completed_job.job_id, alice)
        assert job_repository.get(completed_job.job_id).checksum_verified_at is not None
        package_storage.save(completed_job.package_path, io.BytesIO(b"X" * len(CONTENT)))

        with pytest.raises(PackageIntegrityError):
            download_gateway.download(completed_job.job_id, alice)


class TestDownloadCounters:
    def test_counter_failure_does_not_block_download(
        self, download_gateway, job_repository, completed_job, alice
    ):
        job_repository.record_download = Mock(side_effect=ConnectionError("store down"))

        download = download_gateway.download(completed_job.job_id, alice)

        assert read_all(download) == CONTENT
        job_repository.record_download.assert_called_once()
