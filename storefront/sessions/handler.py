
from typing import Optional

from redis import Redis

from storefront.core.config import settings
from storefront.sessions.record import decode_stored, encode_stored

class RedisSessionHandler:
    """Reads and writes session payloads under ``{cache_prefix}:{session id}``.

    Payloads handed in and out are session-encoded strings; this layer adds
    and removes the storage encoding and sets the record's TTL.
    """

    def __init__(self, redis: Redis, cache_prefix: Optional[str] = None, lifetime_minutes: Optional[int] = None):
        self.redis = redis
        self.cache_prefix = settings.CACHE_PREFIX if cache_prefix is None else cache_prefix
        self.lifetime_minutes = settings.SESSION_LIFETIME_MINUTES if lifetime_minutes is None else lifetime_minutes

    def key(self, session_id: str) -> str:
        return f"{self.cache_prefix}:{session_id}"

    def read(self, session_id: str) -> Optional[str]:
        raw = self.redis.get(self.key(session_id))
        if raw is None:
            return None
        return decode_stored(raw)

    def write(self, session_id: str, payload: str) -> None:
        self.redis.setex(self.key(session_id), self.lifetime_minutes * 60, encode_stored(payload))

    def destroy(self, session_id: str) -> None:
        self.redis.delete(self.key(session_id))
