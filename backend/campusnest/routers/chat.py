"""
Chat Router - conversation history, sending and the live feed
"""
import asyncio
import logging
from uuid import UUID
from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session, sessionmaker
from pydantic import BaseModel, Field

from campusnest.database import get_db, get_session_factory
from campusnest.dependencies import (
    get_current_user_id,
    get_live_channel,
    get_message_store,
    get_user_directory,
)
from campusnest.errors import SendFailed, ValidationRejected
from campusnest.models import Application
from campusnest.services.chat_feed import ChatFeed, FeedEntry


router = APIRouter()
logger = logging.getLogger(__name__)


# Pydantic Schemas
class MessageCreate(BaseModel):
    content: str = Field(..., description="Message body; must contain non-whitespace text")


class MessageResponse(BaseModel):
    id: str
    content: str
    sender_id: str
    sender_display: str
    created_at: datetime
    is_own_message: bool


class ConversationResponse(BaseModel):
    conversation_id: UUID
    status: str
    initial_message: Optional[str]
    messages: List[MessageResponse] = []


def _is_participant(application: Application, user_id: str) -> bool:
    return user_id in (application.applicant_id, application.owner_id)


def _get_conversation(db: Session, conversation_id: UUID, user_id: str) -> Application:
    application = db.get(Application, conversation_id)
    if not application:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if not _is_participant(application, user_id):
        raise HTTPException(status_code=403, detail="Not a participant of this conversation")
    return application


# Endpoints
@router.get("/conversations/{conversation_id}/messages", response_model=ConversationResponse)
async def get_conversation_messages(
    conversation_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    store=Depends(get_message_store),
    directory=Depends(get_user_directory),
    live=Depends(get_live_channel),
):
    """Load a conversation's history, oldest first"""
    application = _get_conversation(db, conversation_id, user_id)

    feed = ChatFeed(store, directory, live, current_user_id=user_id)
    try:
        if not await feed.open(conversation_id):
            raise HTTPException(status_code=503, detail=str(feed.error))
        return ConversationResponse(
            conversation_id=conversation_id,
            status=feed.status.value,
            initial_message=application.message,
            messages=feed.render(),
        )
    finally:
        await feed.close()


@router.post("/conversations/{conversation_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    conversation_id: UUID,
    payload: MessageCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    store=Depends(get_message_store),
    directory=Depends(get_user_directory),
    live=Depends(get_live_channel),
):
    """Send a message to a conversation"""
    _get_conversation(db, conversation_id, user_id)

    if not payload.content.strip():
        raise HTTPException(status_code=400, detail="Message content cannot be empty")

    feed = ChatFeed(store, directory, live, current_user_id=user_id)
    try:
        if not await feed.open(conversation_id):
            raise HTTPException(status_code=503, detail=str(feed.error))

        entry = await feed.send(payload.content)
        if entry is None:
            if isinstance(feed.error, SendFailed) and isinstance(feed.error.__cause__, ValidationRejected):
                raise HTTPException(status_code=422, detail=str(feed.error.__cause__))
            raise HTTPException(status_code=502, detail=str(feed.error or "Message was not sent"))
        return entry.render(user_id)
    finally:
        await feed.close()


@router.websocket("/conversations/{conversation_id}/live")
async def conversation_live(
    websocket: WebSocket,
    conversation_id: UUID,
    user_id: str,
    session_factory: sessionmaker = Depends(get_session_factory),
    store=Depends(get_message_store),
    directory=Depends(get_user_directory),
    live=Depends(get_live_channel),
):
    """
    Live conversation feed

    Frames sent to the client:
    - {"type": "snapshot", "initial_message": ..., "messages": [...]} once history loads
    - {"type": "message", "message": {...}} for each message merged afterwards
    - {"type": "error", "detail": ...} when loading or sending fails

    Frames accepted from the client:
    - {"content": "..."} to send a message
    """
    with session_factory() as db:
        application = db.get(Application, conversation_id)
        allowed = application is not None and _is_participant(application, user_id)
        initial_message = application.message if application else None

    if not allowed:
        await websocket.close(code=1008)
        return

    await websocket.accept()

    updates: asyncio.Queue = asyncio.Queue()
    feed = ChatFeed(store, directory, live, current_user_id=user_id, on_update=updates.put_nowait)
    tasks = set()
    try:
        if not await feed.open(conversation_id):
            await websocket.send_json({"type": "error", "detail": str(feed.error)})
            await websocket.close(code=1011)
            return

        await websocket.send_json({
            "type": "snapshot",
            "initial_message": initial_message,
            "messages": feed.render(),
        })

        tasks = {
            asyncio.create_task(_read_sends(websocket, feed)),
            asyncio.create_task(_write_updates(websocket, feed, updates)),
        }
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("live feed for conversation %s failed: %r", conversation_id, exc)
    finally:
        # Also reached when the server cancels the connection
        for task in tasks:
            task.cancel()
        await feed.close()
        await asyncio.gather(*tasks, return_exceptions=True)


async def _read_sends(websocket: WebSocket, feed: ChatFeed):
    while True:
        data = await websocket.receive_json()
        content = data.get("content", "") if isinstance(data, dict) else ""
        if not isinstance(content, str) or not content.strip():
            continue

        entry = await feed.send(content)
        if entry is None and isinstance(feed.error, SendFailed):
            await websocket.send_json({"type": "error", "detail": str(feed.error)})


async def _write_updates(websocket: WebSocket, feed: ChatFeed, updates: asyncio.Queue):
    while True:
        entry: FeedEntry = await updates.get()
        await websocket.send_json({"type": "message", "message": entry.render(feed.current_user_id)})
