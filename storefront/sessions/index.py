
import re
from typing import NamedTuple, Optional

import structlog
from redis import Redis

from storefront.core.config import SESSION_ID_LENGTH, settings
from storefront.sessions.record import key_prefix

logger = structlog.get_logger(__name__)

def get_client() -> Redis:
    return Redis.from_url(settings.REDIS_URL, decode_responses=True)

class ParsedKey(NamedTuple):
    user_id: Optional[int]
    id: Optional[str]

class SessionIndex:
    """Per-user Redis set of the storage keys of that user's live sessions.

    Only kept when sessions themselves live in Redis. With any other driver
    every operation is a no-op and sessions still work, just without listing
    or destroying them across devices.
    """

    def __init__(self, redis: Redis, cache_prefix: Optional[str] = None, driver: Optional[str] = None):
        self.redis = redis
        self.cache_prefix = settings.CACHE_PREFIX if cache_prefix is None else cache_prefix
        self.driver = settings.SESSION_DRIVER if driver is None else driver
        self._key_pattern = re.compile(
            "^" + re.escape(self.cache_prefix)
            + r":sessions:(?P<user_id>[0-9]+):(?P<id>.{" + str(SESSION_ID_LENGTH) + "})$"
        )

    @property
    def enabled(self) -> bool:
        return self.driver == "redis"

    key_prefix = staticmethod(key_prefix)

    def list_key(self, user_id: Optional[int]) -> str:
        return f"{self.cache_prefix}:{key_prefix(user_id)}"

    def full_key(self, session_id: str) -> str:
        return f"{self.cache_prefix}:{session_id}"

    def keys(self, user_id: Optional[int]) -> list[str]:
        if not self.enabled:
            return []
        return sorted(self.redis.smembers(self.list_key(user_id)))

    def parse_key(self, key: str) -> ParsedKey:
        match = self._key_pattern.match(key or "")
        if match is None:
            return ParsedKey(None, None)
        return ParsedKey(int(match["user_id"]), match["id"])

    def add(self, user_id: Optional[int], key: str) -> bool:
        if not self.enabled:
            return False
        self.redis.sadd(self.list_key(user_id), key)
        return True

    def remove_key(self, user_id: Optional[int], key: str) -> bool:
        if not self.enabled:
            return False
        if user_id is None:
            user_id = self.parse_key(key).user_id

        # unindex first, then drop the record; both run even if one finds nothing
        self.redis.srem(self.list_key(user_id), key)
        self.redis.delete(key)
        return True

    def remove_full_id(self, user_id: Optional[int], session_id: str) -> bool:
        return self.remove_key(user_id, self.full_key(session_id))

    def destroy_all(self, user_id: int) -> bool:
        if not self.enabled:
            return False
        keys = self.keys(user_id)
        self.redis.delete(self.list_key(user_id), *keys)
        logger.info("destroyed all sessions", user_id=user_id, count=len(keys))
        return True
