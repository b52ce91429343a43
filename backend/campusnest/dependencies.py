"""
FastAPI dependencies wiring the chat collaborators
"""
from functools import lru_cache

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import sessionmaker

from campusnest.config import get_settings
from campusnest.database import get_session_factory
from campusnest.services.live_channel import InMemoryLiveChannel
from campusnest.services.message_store import SqlMessageStore
from campusnest.services.user_directory import SqlUserDirectory


@lru_cache
def get_live_channel() -> InMemoryLiveChannel:
    """Process-wide live channel shared by every feed"""
    return InMemoryLiveChannel()


def get_message_store(
    session_factory: sessionmaker = Depends(get_session_factory),
    live_channel: InMemoryLiveChannel = Depends(get_live_channel),
) -> SqlMessageStore:
    return SqlMessageStore(
        session_factory,
        live_channel=live_channel,
        max_length=get_settings().max_message_length,
    )


def get_user_directory(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> SqlUserDirectory:
    return SqlUserDirectory(session_factory)


def get_current_user_id(x_user_id: str = Header(default="")) -> str:
    """Identity is established upstream by the auth provider"""
    if not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()
