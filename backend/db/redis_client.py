"""
db/redis_client.py
-------------------
redis-py client — singleton plus the ETA matrix cache.

Key schema:

  eta:{mode}:{sha1(location list)}
       Type : String (JSON)
       TTL  : ETA_CACHE_TTL  (default 86,400 s = 1 day)
       Value: {"minutes": [[...]], "km": [[...]] | null}

Only matrices that came back from the remote provider are cached; local
estimates are cheap to recompute.

Environment variables (set in config.py):
    REDIS_HOST        default: localhost
    REDIS_PORT        default: 6379
    REDIS_DB          default: 0
    REDIS_PASSWORD    default: ""  (empty = no auth)
    ETA_CACHE_TTL     default: 86400
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Optional

import redis

import config

logger = logging.getLogger(__name__)

# Module-level singleton; initialised lazily on first call to get_redis()
_client: redis.Redis | None = None


def get_redis() -> redis.Redis:
    """Return the singleton Redis client, creating it on first call."""
    global _client
    if _client is None:
        kwargs: dict[str, Any] = {
            "host":             config.REDIS_HOST,
            "port":             config.REDIS_PORT,
            "db":               config.REDIS_DB,
            "decode_responses": True,   # return str, not bytes
        }
        if config.REDIS_PASSWORD:
            kwargs["password"] = config.REDIS_PASSWORD
        _client = redis.Redis(**kwargs)
    return _client


def _eta_key(mode: str, locations: list[str]) -> str:
    digest = hashlib.sha1("|".join(locations).encode("utf-8")).hexdigest()
    return f"eta:{mode}:{digest}"


class EtaCache:
    """
    Read-through cache for remote ETA matrices.

    Redis errors are logged and treated as a miss; the cache never breaks
    travel-time estimation.
    """

    def __init__(self, client: redis.Redis | None = None, ttl: int | None = None) -> None:
        self._client = client
        self.ttl = ttl if ttl is not None else config.ETA_CACHE_TTL

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = get_redis()
        return self._client

    def get(self, mode: str, locations: list[str]) -> Optional[dict]:
        try:
            raw = self.client.get(_eta_key(mode, locations))
        except redis.RedisError as exc:
            logger.warning("ETA cache read failed: %s", exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("ETA cache entry is not valid JSON; ignoring")
            return None

    def set(
        self,
        mode: str,
        locations: list[str],
        minutes: list[list[int]],
        km: Optional[list[list[float]]],
    ) -> None:
        payload = json.dumps({"minutes": minutes, "km": km})
        try:
            self.client.setex(_eta_key(mode, locations), self.ttl, payload)
        except redis.RedisError as exc:
            logger.warning("ETA cache write failed: %s", exc)
