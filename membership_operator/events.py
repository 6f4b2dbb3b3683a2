"""
Lifecycle event publishing to Redis Streams (optional).

Events go to a per-cluster stream and a global pub/sub channel for
dashboards. Redis being absent or down never affects reconciliation.
"""

import json
import logging
from datetime import datetime, timezone

import redis

logger = logging.getLogger("events")

STREAM_MAXLEN = 100
CHANNEL = "cluster:events"


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def stream_key(cluster_name: str) -> str:
    return f"cluster:events:{cluster_name}"


class EventPublisher:
    def __init__(self, redis_url: str = "", client=None):
        self.redis_url = redis_url
        self._client = client

    def get_redis(self):
        """Lazy-init Redis client. Returns None if unavailable."""
        if self._client is not None:
            return self._client
        if not self.redis_url:
            return None
        try:
            self._client = redis.Redis.from_url(self.redis_url, decode_responses=True)
            self._client.ping()
            logger.info(f"Redis connected: {self.redis_url}")
            return self._client
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable (non-fatal): {e}")
            self._client = None
            return None

    def publish(self, cluster_name: str, event_type: str, message: str, phase: str = ""):
        r = self.get_redis()
        if not r:
            return
        event = {
            "type": event_type,
            "message": message,
            "phase": phase,
            "timestamp": _now(),
            "cluster": cluster_name,
        }
        try:
            r.xadd(stream_key(cluster_name), event, maxlen=STREAM_MAXLEN)
            r.publish(CHANNEL, json.dumps(event))
        except redis.RedisError as e:
            logger.debug(f"Redis publish failed (non-fatal): {e}")

    def discard(self, cluster_name: str):
        """Drop the event stream of a cluster that has left."""
        r = self.get_redis()
        if not r:
            return
        try:
            r.delete(stream_key(cluster_name))
        except redis.RedisError as e:
            logger.debug(f"Redis stream cleanup failed (non-fatal): {e}")

    def read(self, cluster_name: str, count: int = 50) -> list[dict]:
        """Oldest-first events recorded for a cluster."""
        r = self.get_redis()
        if not r:
            return []
        try:
            entries = r.xrange(stream_key(cluster_name), count=count)
        except redis.RedisError as e:
            logger.debug(f"Redis stream read failed: {e}")
            return []
        return [
            {
                "timestamp": data.get("timestamp", ""),
                "event": data.get("type", ""),
                "message": data.get("message", ""),
                "phase": data.get("phase", ""),
            }
            for _, data in entries
        ]
