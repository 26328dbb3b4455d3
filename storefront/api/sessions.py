from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from storefront.api.deps import get_session_manager
from storefront.core.auth import AuthContext, require_user
from storefront.core.config import settings
from storefront.sessions.manager import SessionManager

router = APIRouter()

class SessionOut(BaseModel):
    id: str
    current: bool
    last_visit: Optional[int] = None
    agent: Optional[str] = None
    mobile: bool
    device: str
    platform: str
    browser: str
    verified: bool

class SessionsOut(BaseModel):
    sessions: List[SessionOut] = []

@router.get("/v1/sessions", response_model=SessionsOut)
def list_sessions(
    response: Response,
    ctx: AuthContext = Depends(require_user),
    session: SessionManager = Depends(get_session_manager),
):
    sessions = session.current_user_sessions(ctx)
    response.set_cookie(settings.SESSION_COOKIE, session.id, httponly=True)
    return SessionsOut(sessions=[
        SessionOut(id=sid, current=session.is_current_session(sid), **meta)
        for sid, meta in sessions.items()
    ])

@router.delete("/v1/sessions")
def destroy_all_sessions(
    response: Response,
    ctx: AuthContext = Depends(require_user),
    session: SessionManager = Depends(get_session_manager),
):
    session.destroy_all_user_sessions(ctx)
    response.delete_cookie(settings.SESSION_COOKIE)
    return {"status": "ok"}

@router.delete("/v1/sessions/{session_id}")
def destroy_session(
    session_id: str,
    ctx: AuthContext = Depends(require_user),
    session: SessionManager = Depends(get_session_manager),
):
    if session.is_current_session(session_id):
        raise HTTPException(status_code=409, detail="Use logout to end the current session")
    session.destroy_user_session(session_id, ctx)
    return {"status": "ok"}
