"""Session ids and the stored session payload format.

A session id is ``sessions:{user_id|guest}:{random}`` where the random suffix
is always ``SESSION_ID_LENGTH`` characters long, so the suffix can be cut off
the end of any key whatever prefix is in front of it. In Redis the record
lives at ``{cache_prefix}:{session id}``.

Payloads are encoded twice: the session layer JSON-encodes the attribute map
to a string, and the storage layer JSON-encodes that string again before it
is written. Anything reading records straight out of Redis has to peel both
layers (see ``decode_stored``).
"""

import json
import secrets
import string
from dataclasses import dataclass, field
from typing import Any, Optional

from storefront.core.config import SESSION_ID_LENGTH
from storefront.core.errors import SessionDecodeError

GUEST = "guest"
ID_ALPHABET = string.ascii_letters + string.digits


def key_prefix(user_id: Optional[int]) -> str:
    """Redis key prefix for the user's sessions, excluding the cache prefix."""
    return f"sessions:{GUEST if user_id is None else user_id}"


def random_id(length: int = SESSION_ID_LENGTH) -> str:
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def generate_session_id(user_id: Optional[int] = None) -> str:
    return f"{key_prefix(user_id)}:{random_id()}"


def strip_key_prefix(session_id: str) -> str:
    return session_id[-SESSION_ID_LENGTH:]


def current_key_prefix(session_id: str) -> str:
    """Everything in front of the ``:{random}`` suffix."""
    return session_id[: len(session_id) - SESSION_ID_LENGTH - 1]


def is_guest_id(session_id: str) -> bool:
    return session_id.startswith(key_prefix(None) + ":")


def encode_session(attributes: dict) -> str:
    return json.dumps(attributes, separators=(",", ":"))


def decode_session(payload: str) -> dict:
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise SessionDecodeError("session payload is not valid JSON") from e
    if not isinstance(data, dict):
        raise SessionDecodeError(f"session payload is a {type(data).__name__}, not a map")
    return data


def encode_stored(payload: str) -> str:
    return json.dumps(payload)


def decode_stored(raw: str) -> str:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise SessionDecodeError("stored session is not valid JSON") from e
    if not isinstance(payload, str):
        raise SessionDecodeError("stored session is missing the session encoding layer")
    return payload


@dataclass
class SessionRecord:
    id: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_stored(cls, session_id: str, raw: str) -> "SessionRecord":
        return cls(session_id, decode_session(decode_stored(raw)))

    @property
    def meta(self) -> Optional[dict]:
        meta = self.attributes.get("meta")
        return meta if isinstance(meta, dict) else None

    @property
    def verified(self) -> bool:
        return self.attributes.get("verified") is True

    def to_stored(self) -> str:
        return encode_stored(encode_session(self.attributes))
