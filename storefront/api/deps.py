from typing import Optional

from fastapi import Cookie, Depends
from redis import Redis
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.db.session import SessionLocal
from storefront.kafka.producer import publish_order_event
from storefront.sessions.handler import RedisSessionHandler
from storefront.sessions.index import SessionIndex, get_client
from storefront.sessions.manager import SessionManager

def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()

def get_redis() -> Redis:
    return get_client()

def get_publisher():
    return publish_order_event if settings.ORDER_EVENTS_ENABLED else None

def get_session_manager(
    redis: Redis = Depends(get_redis),
    session_cookie: Optional[str] = Cookie(default=None, alias=settings.SESSION_COOKIE),
) -> SessionManager:
    session = SessionManager(RedisSessionHandler(redis), SessionIndex(redis), session_cookie)
    session.start()
    return session
