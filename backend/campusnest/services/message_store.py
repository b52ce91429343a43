"""
SQL Message Store
Persists chat messages with SQLAlchemy and announces inserts on the live channel
"""
import asyncio
import logging
import uuid
from datetime import timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from campusnest.errors import StoreUnavailable, ValidationRejected
from campusnest.models import Application, Message
from campusnest.services.collaborators import ChatMessage, MessageStore
from campusnest.services.live_channel import InMemoryLiveChannel

logger = logging.getLogger(__name__)


def to_chat_message(row: Message) -> ChatMessage:
    """Convert an ORM row into an immutable ChatMessage"""
    created_at = row.created_at
    # SQLite hands back naive datetimes; everything is stored as UTC
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return ChatMessage(
        id=row.id,
        conversation_id=row.application_id,
        sender_id=row.sender_id,
        content=row.content,
        created_at=created_at,
    )


def parse_conversation_id(conversation_id) -> Optional[uuid.UUID]:
    """Conversation ids are application UUIDs; None when malformed"""
    if isinstance(conversation_id, uuid.UUID):
        return conversation_id
    try:
        return uuid.UUID(str(conversation_id))
    except ValueError:
        return None


class SqlMessageStore(MessageStore):
    """
    Message store backed by the messages table

    Blocking database work runs in a worker thread so the event loop
    keeps serving live deliveries while a query is in flight.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        live_channel: Optional[InMemoryLiveChannel] = None,
        max_length: int = 4000,
    ):
        self.session_factory = session_factory
        self.live_channel = live_channel
        self.max_length = max_length

    async def query(self, conversation_id) -> List[ChatMessage]:
        return await asyncio.to_thread(self._query, conversation_id)

    async def insert(self, conversation_id, sender_id: str, content: str) -> ChatMessage:
        message = await asyncio.to_thread(self._insert, conversation_id, sender_id, content)
        if self.live_channel is not None:
            self.live_channel.publish(message)
        return message

    def _query(self, conversation_id) -> List[ChatMessage]:
        application_id = parse_conversation_id(conversation_id)
        if application_id is None:
            return []

        try:
            with self.session_factory() as db:
                rows = db.query(Message)\
                    .filter(Message.application_id == application_id)\
                    .order_by(Message.created_at.asc(), Message.id.asc())\
                    .all()
                return [to_chat_message(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error("message query failed for %s: %s", conversation_id, e)
            raise StoreUnavailable(str(e)) from e

    def _insert(self, conversation_id, sender_id: str, content: str) -> ChatMessage:
        if not content or not content.strip():
            raise ValidationRejected("message content is empty")
        if len(content) > self.max_length:
            raise ValidationRejected(f"message exceeds {self.max_length} characters")
        if not sender_id:
            raise ValidationRejected("sender is required")

        application_id = parse_conversation_id(conversation_id)
        if application_id is None:
            raise ValidationRejected(f"malformed conversation id {conversation_id!r}")

        try:
            with self.session_factory() as db:
                if db.get(Application, application_id) is None:
                    raise ValidationRejected(f"unknown conversation {conversation_id}")

                row = Message(
                    application_id=application_id,
                    sender_id=sender_id,
                    content=content,
                )
                db.add(row)
                db.commit()
                db.refresh(row)
                return to_chat_message(row)
        except IntegrityError as e:
            raise ValidationRejected(str(e.orig)) from e
        except SQLAlchemyError as e:
            logger.error("message insert failed for %s: %s", conversation_id, e)
            raise StoreUnavailable(str(e)) from e
