"""
Redis Target Registry

Reads export targets published by the tool registry service.

Key Schema (prefix "registry"):
    - registry:target:{target_id} -> ExportTarget JSON
"""

import logging
from typing import Optional

from export_engine.domain.targets import ExportTarget, ITargetRegistry

from .redis_repository import RedisRepository

logger = logging.getLogger(__name__)


class RedisTargetRegistry(ITargetRegistry):
    def __init__(self, redis_repository: RedisRepository):
        self.redis_repo = redis_repository

    def get(self, target_id: str) -> Optional[ExportTarget]:
        data = self.redis_repo.get_json(f"target:{target_id}")
        if data is None:
            return None
        try:
            return ExportTarget.from_dict(data)
        except KeyError as e:
            logger.error(f"Malformed registry entry for target {target_id}: missing {e}")
            return None

    def publish(self, target: ExportTarget) -> bool:
        """Store a target document; used by the registry sync and by fixtures."""
        return self.redis_repo.set_json(f"target:{target.target_id}", target.to_dict())
