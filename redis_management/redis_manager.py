import json
import logging
from typing import Any, Dict, Optional

import redis.asyncio as aioredis

from support.constants import APP_NAME, JOB_EVENTS_CHANNEL, REDIS_URL


logger = logging.getLogger(APP_NAME)


class RedisManager:
    """Publishes job lifecycle events for downstream listeners."""

    def __init__(self, redis_url: str = REDIS_URL, channel: str = JOB_EVENTS_CHANNEL):
        self.redis_url = redis_url
        self.channel = channel
        self._redis = None

    async def get_redis_client(self):
        if self._redis is None:
            self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    async def publish_job_event(self, event: str, job_id: str, payload: Optional[Dict[str, Any]] = None) -> None:
        redis_client = await self.get_redis_client()
        message = {"event": event, "job_id": job_id, **(payload or {})}
        await redis_client.publish(self.channel, json.dumps(message))
        logger.info("Published %s event for job_id: %s", event, job_id)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
