
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from storefront.core.config import settings

security = HTTPBearer(auto_error=False)

@dataclass(frozen=True)
class AuthContext:
    """Who is making the request. ``user_id`` is None for guests."""
    user_id: Optional[int] = None

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None

def decode_identity(token: str) -> dict:
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError("not an access token")
    return payload

def get_auth_context(creds: HTTPAuthorizationCredentials = Depends(security)) -> AuthContext:
    # guests are allowed through; routes that need a user use require_user
    if not creds:
        return AuthContext()
    try:
        payload = decode_identity(creds.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    try:
        return AuthContext(user_id=int(payload["uid"]))
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid access token")

def require_user(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not ctx.authenticated:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return ctx
