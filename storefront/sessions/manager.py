"""Web sessions namespaced per user, so a user's sessions can be listed and
destroyed from any of their devices.

A session goes ``new -> active -> (rotated -> active)* -> destroyed``. Session
ids carry the owner (``sessions:42:...`` or ``sessions:guest:...``) and every
saved non-guest session is registered in the owner's ``SessionIndex`` set.

Ordering matters on both ends: the payload is written before its key is
registered, and on removal the key is unregistered before the record is
deleted. Keys whose record has expired anyway are pruned the next time the
owner's sessions are listed.
"""

import time
from typing import Any, Callable, Optional

import structlog
from redis.exceptions import RedisError

from storefront.core.auth import AuthContext
from storefront.core.errors import SessionDecodeError
from storefront.sessions.agent import AgentInfo, classify
from storefront.sessions.handler import RedisSessionHandler
from storefront.sessions.index import SessionIndex
from storefront.sessions.record import (
    SessionRecord, current_key_prefix, decode_session, encode_session,
    generate_session_id, is_guest_id, key_prefix, strip_key_prefix,
)

logger = structlog.get_logger(__name__)


def _is_listable(meta: dict) -> bool:
    agent = meta.get("agent")
    last_visit = meta.get("last_visit")
    if agent is not None and not isinstance(agent, str):
        return False
    if last_visit is not None and (isinstance(last_visit, bool) or not isinstance(last_visit, (int, float))):
        return False
    return True


class SessionManager:
    def __init__(
        self,
        handler: RedisSessionHandler,
        index: SessionIndex,
        session_id: Optional[str] = None,
        classifier: Callable[[Optional[str]], AgentInfo] = classify,
        clock: Callable[[], float] = time.time,
    ):
        self.handler = handler
        self.index = index
        self.classifier = classifier
        self.clock = clock
        self.attributes: dict[str, Any] = {}
        self.exists = False
        self.started = False
        self.id = session_id if self.is_valid_id(session_id) else self.generate_id()

    @staticmethod
    def is_valid_id(session_id: Any) -> bool:
        # ids contain ':' namespacing, so anything non-empty is accepted
        return isinstance(session_id, str) and session_id != ""

    @staticmethod
    def generate_id(user_id: Optional[int] = None) -> str:
        return generate_session_id(user_id)

    def start(self) -> bool:
        self.attributes.update(self._read_from_handler())
        self.started = True
        return True

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def put(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def forget(self, key: str) -> None:
        self.attributes.pop(key, None)

    def all(self) -> dict[str, Any]:
        return dict(self.attributes)

    def touch(self, user_agent: Optional[str], now: Optional[float] = None) -> None:
        meta = dict(self.attributes.get("meta") or {})
        meta["last_visit"] = int(self.clock() if now is None else now)
        meta["agent"] = user_agent
        self.attributes["meta"] = meta

    def mark_verified(self) -> None:
        self.attributes["verified"] = True

    def is_verified(self) -> bool:
        return self.attributes.get("verified") is True

    def is_guest_session(self) -> bool:
        return is_guest_id(self.id)

    def is_current_session(self, session_id: str) -> bool:
        return self.id_without_key_prefix() == strip_key_prefix(session_id)

    def id_without_key_prefix(self) -> str:
        return strip_key_prefix(self.id)

    def current_key_prefix(self) -> str:
        return current_key_prefix(self.id)

    def save(self) -> None:
        self.handler.write(self.id, encode_session(self.attributes))
        self.exists = True

        if not self.is_guest_session():
            # registered only after the payload exists, so listing never sees a dangling key
            key = self.index.full_key(self.id)
            owner_id = self.index.parse_key(key).user_id
            if owner_id is not None:
                self.index.add(owner_id, key)

    def migrate(self, destroy: bool = False, user_id: Optional[int] = None) -> bool:
        """Moves the session to a fresh id namespaced under ``user_id``."""
        if destroy:
            if not self.is_guest_session():
                self.index.remove_full_id(user_id, self.id)
            self.handler.destroy(self.id)

        self.exists = False
        self.id = self.generate_id(user_id)
        return True

    def regenerate(self, destroy: bool = False) -> bool:
        return self.migrate(destroy)

    def invalidate(self) -> bool:
        self.attributes.clear()
        return self.migrate(True)

    def current_user_sessions(self, ctx: AuthContext) -> dict[str, dict]:
        """The user's live sessions keyed by bare session id, most recently active first.

        Sessions with the same ``last_visit`` are ordered by id.
        """
        if not ctx.authenticated or not self.index.enabled:
            return {}

        # flush first, otherwise the current session's metadata is stale
        self.save()

        keys = self.index.keys(ctx.user_id)
        if not keys:
            return {}

        sessions = []
        for key, raw in zip(keys, self.index.redis.mget(keys)):
            if raw is None:
                # expired; drop it from the index
                self.index.remove_key(ctx.user_id, key)
                continue

            try:
                record = SessionRecord.from_stored(key, raw)
            except SessionDecodeError:
                logger.warning("skipping undecodable session", user_id=ctx.user_id, key=key)
                continue

            meta = record.meta
            if meta is None:
                continue
            if not _is_listable(meta):
                logger.warning("skipping session with malformed metadata", user_id=ctx.user_id, key=key)
                continue

            info = {**meta, **self.classifier(meta.get("agent")), "verified": record.verified}
            sessions.append((strip_key_prefix(key), info))

        sessions.sort(key=lambda entry: entry[0])
        sessions.sort(key=lambda entry: entry[1].get("last_visit") or 0, reverse=True)
        return dict(sessions)

    def destroy_all_user_sessions(self, ctx: AuthContext) -> bool:
        """Ends every session of the user, the current one included."""
        if not ctx.authenticated:
            return False
        return self.index.destroy_all(ctx.user_id)

    def destroy_user_session(self, session_id: str, ctx: AuthContext) -> bool:
        if not ctx.authenticated:
            return False

        full_session_id = f"{key_prefix(ctx.user_id)}:{session_id}"
        self.handler.destroy(full_session_id)
        self.index.remove_full_id(ctx.user_id, full_session_id)
        logger.info("destroyed user session", user_id=ctx.user_id, session_id=session_id)
        return True

    def _read_from_handler(self) -> dict[str, Any]:
        # a session that can't be loaded is treated as absent and gets a new id
        destroy = True
        try:
            payload = self.handler.read(self.id)
            if payload is not None:
                data = decode_session(payload)
                self.exists = True
                return data
        except SessionDecodeError:
            logger.warning("discarding undecodable session", key_prefix=self.current_key_prefix())
        except RedisError as e:
            logger.warning("session store unavailable", error=str(e))
            destroy = False

        self.regenerate(destroy)
        return {}
