"""
Chat collaborators
Interfaces ChatFeed depends on: the message store, the user directory and
the live channel. Implementations are injected into ChatFeed.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, List, Optional


@dataclass(frozen=True)
class ChatMessage:
    """A stored chat message as returned by the message store"""
    id: Hashable
    conversation_id: Hashable
    sender_id: str
    content: str
    created_at: datetime


MessageHandler = Callable[[ChatMessage], Awaitable[None]]
LostHandler = Callable[[Exception], Any]


class MessageStore(ABC):
    """Durable append-only store of chat messages"""
    
    @abstractmethod
    async def query(self, conversation_id) -> List[ChatMessage]:
        """
        Fetch every message of a conversation, ascending by created_at
        
        Raises:
            StoreUnavailable: on connectivity or auth failure
        """
        pass
    
    @abstractmethod
    async def insert(self, conversation_id, sender_id: str, content: str) -> ChatMessage:
        """
        Insert a message; the store assigns id and created_at
        
        Raises:
            StoreUnavailable: on connectivity or auth failure
            ValidationRejected: when the payload is refused
        """
        pass


class UserDirectory(ABC):
    """Maps user ids to display labels"""
    
    @abstractmethod
    async def batch_resolve_display_label(self, sender_ids: Iterable[str]) -> Dict[str, str]:
        """Resolve many ids in one call; unresolved ids are omitted"""
        pass
    
    @abstractmethod
    async def resolve_display_label(self, sender_id: str) -> Optional[str]:
        """Resolve a single id, None when unknown"""
        pass


class Subscription(ABC):
    """Handle returned by LiveChannel.subscribe"""
    
    @property
    @abstractmethod
    def active(self) -> bool:
        pass


class LiveChannel(ABC):
    """Push mechanism delivering newly inserted messages per conversation"""
    
    @abstractmethod
    async def subscribe(
        self,
        conversation_id,
        handler: MessageHandler,
        on_lost: Optional[LostHandler] = None,
    ) -> Subscription:
        """
        Start delivering inserts for a conversation to handler
        
        Delivery is best-effort with no ordering guarantee relative to
        MessageStore reads. on_lost is called if the subscription drops.
        """
        pass
    
    @abstractmethod
    async def unsubscribe(self, subscription: Subscription) -> None:
        """Idempotent; handler is never invoked after this returns"""
        pass
