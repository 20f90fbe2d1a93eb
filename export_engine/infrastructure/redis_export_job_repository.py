"""
Redis Export Job Repository Implementation

Concrete Redis-based implementation of the ExportJobRepository interface.

Key Schema (prefix "export"):
    - export:job:{job_id} -> ExportJob JSON document
    - export:active:{target_id} -> job_id holding the target's active slot
    - export:index:created -> Sorted Set of job_ids by created_at timestamp
    - export:index:owner:{owner_id} -> Sorted Set of the owner's job_ids by created_at
    - export:index:expiry -> Sorted Set of job_ids by package_expires_at,
      only while the package path is set

Job creation, compare-and-set saves and download counters run as Lua scripts
so each is a single atomic step on the server.
"""

import json
import logging
from datetime import datetime
from typing import List, Optional

from export_engine.domain.export_jobs.entities import ExportJob
from export_engine.domain.export_jobs.repositories import ExportJobRepository
from export_engine.domain.export_jobs.value_objects import JobStatus, format_datetime

from .redis_repository import RedisRepository

logger = logging.getLogger(__name__)

# KEYS: active slot, job, created index, owner index
# ARGV: job_id, job json, created_at score
CREATE_IF_ABSENT_SCRIPT = """
local holder = redis.call('GET', KEYS[1])
if holder then
    return {0, holder}
end

redis.call('SET', KEYS[1], ARGV[1])
redis.call('SET', KEYS[2], ARGV[2])
redis.call('ZADD', KEYS[3], ARGV[3], ARGV[1])
redis.call('ZADD', KEYS[4], ARGV[3], ARGV[1])
return {1, ARGV[1]}
"""

# KEYS: job, active slot, expiry index
# ARGV: expected version, job json, job_id, release slot flag, expiry score or ''
COMPARE_AND_SET_SCRIPT = """
local data = redis.call('GET', KEYS[1])
if not data then
    return 0
end

local job_data = cjson.decode(data)
if tonumber(job_data['version']) ~= tonumber(ARGV[1]) then
    return -1
end

redis.call('SET', KEYS[1], ARGV[2])

if ARGV[4] == '1' and redis.call('GET', KEYS[2]) == ARGV[3] then
    redis.call('DEL', KEYS[2])
end

if ARGV[5] ~= '' then
    redis.call('ZADD', KEYS[3], ARGV[5], ARGV[3])
else
    redis.call('ZREM', KEYS[3], ARGV[3])
end
return 1
"""

# KEYS: job
# ARGV: downloaded_at iso string
RECORD_DOWNLOAD_SCRIPT = """
local data = redis.call('GET', KEYS[1])
if not data then
    return 0
end

local job_data = cjson.decode(data)
job_data['download_count'] = (tonumber(job_data['download_count']) or 0) + 1
job_data['last_downloaded_at'] = ARGV[1]
job_data['version'] = (tonumber(job_data['version']) or 0) + 1

redis.call('SET', KEYS[1], cjson.encode(job_data))
return 1
"""

_FETCH_BATCH_SIZE = 200


class RedisExportJobRepository(ExportJobRepository):
    """
    Redis-based implementation of ExportJobRepository.

    Jobs are kept without TTL: rows are soft-deleted, never removed.
    """

    def __init__(self, redis_repository: RedisRepository):
        """
        Initialize with Redis repository.

        Args:
            redis_repository: RedisRepository carrying the client and key prefix
        """
        self.redis_repo = redis_repository
        self.redis = redis_repository.redis
        self._create_script = redis_repository.register_script(CREATE_IF_ABSENT_SCRIPT)
        self._save_script = redis_repository.register_script(COMPARE_AND_SET_SCRIPT)
        self._download_script = redis_repository.register_script(RECORD_DOWNLOAD_SCRIPT)

    def _job_key(self, job_id: str) -> str:
        return self.redis_repo.make_key("job", job_id)

    def _active_key(self, target_id: str) -> str:
        return self.redis_repo.make_key("active", target_id)

    def _created_index(self) -> str:
        return self.redis_repo.make_key("index", "created")

    def _owner_index(self, owner_id: str) -> str:
        return self.redis_repo.make_key("index", "owner", owner_id)

    def _expiry_index(self) -> str:
        return self.redis_repo.make_key("index", "expiry")

    def create_if_absent(self, job: ExportJob) -> Optional[str]:
        if job.status != JobStatus.PENDING:
            raise ValueError(f"Only pending jobs can be created, got {job.status.value}")

        created, holder = self._create_script(
            keys=[
                self._active_key(job.target_id),
                self._job_key(job.job_id),
                self._created_index(),
                self._owner_index(job.owner_id),
            ],
            args=[job.job_id, json.dumps(job.to_dict()), job.created_at.timestamp()],
        )
        if int(created) == 1:
            return None

        holder_id = holder.decode("utf-8") if isinstance(holder, bytes) else str(holder)
        logger.info(
            f"Export target {job.target_id} is held by job {holder_id}, "
            f"rejected job {job.job_id}"
        )
        return holder_id

    def get(self, job_id: str) -> Optional[ExportJob]:
        data = self.redis_repo.decode(self.redis.get(self._job_key(job_id)), job_id)
        if data is None:
            return None
        return self._deserialize(data)

    def save(self, job: ExportJob) -> bool:
        expected_version = job.version
        job.version = expected_version + 1

        expiry_score = ""
        if job.package_path and job.package_expires_at is not None:
            expiry_score = str(job.package_expires_at.timestamp())

        result = self._save_script(
            keys=[
                self._job_key(job.job_id),
                self._active_key(job.target_id),
                self._expiry_index(),
            ],
            args=[
                expected_version,
                json.dumps(job.to_dict()),
                job.job_id,
                "1" if not job.is_active() else "0",
                expiry_score,
            ],
        )
        if int(result) == 1:
            return True

        job.version = expected_version
        if int(result) == 0:
            logger.warning(f"Cannot save export job {job.job_id}: not found")
        return False

    def record_download(self, job_id: str, downloaded_at: datetime) -> bool:
        result = self._download_script(
            keys=[self._job_key(job_id)], args=[format_datetime(downloaded_at)]
        )
        return int(result) == 1

    def find_expired_packages(self, now: datetime, limit: int = 500) -> List[ExportJob]:
        job_ids = self.redis.zrangebyscore(
            self._expiry_index(), "-inf", f"({now.timestamp()}", start=0, num=limit
        )
        jobs = self._get_many(job_ids)
        return [
            job
            for job in jobs
            if job.status == JobStatus.COMPLETED and job.package_path and job.is_expired(now)
        ]

    def list_jobs(self, owner_id: Optional[str] = None) -> List[ExportJob]:
        index_key = self._owner_index(owner_id) if owner_id else self._created_index()
        job_ids = self.redis.zrevrange(index_key, 0, -1)
        return self._get_many(job_ids)

    def get_active_job_id(self, target_id: str) -> Optional[str]:
        holder = self.redis.get(self._active_key(target_id))
        if holder is None:
            return None
        return holder.decode("utf-8") if isinstance(holder, bytes) else holder

    def _get_many(self, job_ids) -> List[ExportJob]:
        ids = [i.decode("utf-8") if isinstance(i, bytes) else i for i in job_ids]
        jobs: List[ExportJob] = []
        for start in range(0, len(ids), _FETCH_BATCH_SIZE):
            batch = ids[start : start + _FETCH_BATCH_SIZE]
            for data in self.redis_repo.get_many_json([f"job:{job_id}" for job_id in batch]):
                if data is None:
                    continue
                job = self._deserialize(data)
                if job is not None:
                    jobs.append(job)
        return jobs

    @staticmethod
    def _deserialize(data: dict) -> Optional[ExportJob]:
        try:
            return ExportJob.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Error deserializing export job {data.get('job_id')}: {e}")
            return None
