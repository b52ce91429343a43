"""
In-process live channel
Fans newly inserted messages out to every subscriber of a conversation.
Deliveries run as tasks on the event loop that published them.
"""
import asyncio
import logging
import uuid
from collections import defaultdict
from typing import Dict, Optional, Set

from campusnest.errors import SubscriptionLost
from campusnest.services.collaborators import (
    ChatMessage,
    LiveChannel,
    LostHandler,
    MessageHandler,
    Subscription,
)

logger = logging.getLogger(__name__)


class InMemorySubscription(Subscription):
    def __init__(self, conversation_id, handler: MessageHandler, on_lost: Optional[LostHandler]):
        self.id = uuid.uuid4().hex
        self.conversation_id = conversation_id
        self.handler = handler
        self.on_lost = on_lost
        self.deliveries: Set[asyncio.Task] = set()
        self._active = True
    
    @property
    def active(self) -> bool:
        return self._active
    
    def cancel(self):
        self._active = False


class InMemoryLiveChannel(LiveChannel):
    """Publish/subscribe channel for a single process"""
    
    def __init__(self):
        self._subscriptions: Dict[object, Dict[str, InMemorySubscription]] = defaultdict(dict)
        self._tasks: Set[asyncio.Task] = set()
    
    async def subscribe(self, conversation_id, handler, on_lost=None) -> InMemorySubscription:
        subscription = InMemorySubscription(conversation_id, handler, on_lost)
        self._subscriptions[conversation_id][subscription.id] = subscription
        logger.debug("subscribed %s to conversation %s", subscription.id, conversation_id)
        return subscription
    
    async def unsubscribe(self, subscription: InMemorySubscription) -> None:
        subscription.cancel()
        subscribers = self._subscriptions.get(subscription.conversation_id)
        if subscribers is not None:
            subscribers.pop(subscription.id, None)
            if not subscribers:
                del self._subscriptions[subscription.conversation_id]
        await self._cancel_deliveries(subscription)
    
    def subscriber_count(self, conversation_id) -> int:
        return len(self._subscriptions.get(conversation_id, {}))
    
    def publish(self, message: ChatMessage) -> int:
        """
        Schedule delivery of message to the conversation's subscribers
        
        Must be called from inside a running event loop.
        
        Returns:
            Number of deliveries scheduled
        """
        subscribers = list(self._subscriptions.get(message.conversation_id, {}).values())
        for subscription in subscribers:
            task = asyncio.create_task(self._deliver(subscription, message))
            self._tasks.add(task)
            subscription.deliveries.add(task)
            task.add_done_callback(self._tasks.discard)
            task.add_done_callback(subscription.deliveries.discard)
        return len(subscribers)
    
    async def _deliver(self, subscription: InMemorySubscription, message: ChatMessage):
        # Unsubscribed between publish and delivery
        if not subscription.active:
            return
        try:
            await subscription.handler(message)
        except Exception:
            logger.exception("live handler failed for subscription %s", subscription.id)
    
    async def disconnect(self, conversation_id=None):
        """Drop subscriptions (all, or one conversation's) and report the loss"""
        if conversation_id is None:
            dropped = [s for subs in self._subscriptions.values() for s in subs.values()]
            self._subscriptions.clear()
        else:
            dropped = list(self._subscriptions.pop(conversation_id, {}).values())
        
        for subscription in dropped:
            subscription.cancel()
            await self._cancel_deliveries(subscription)
            logger.warning("live subscription %s lost", subscription.id)
            if subscription.on_lost is not None:
                subscription.on_lost(SubscriptionLost(
                    f"live channel disconnected for conversation {subscription.conversation_id}"
                ))
    
    async def drain(self):
        """Wait until every scheduled delivery has finished"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
    
    async def _cancel_deliveries(self, subscription: InMemorySubscription):
        # A handler may unsubscribe its own subscription
        current = asyncio.current_task()
        in_flight = [t for t in subscription.deliveries if t is not current and not t.done()]
        for task in in_flight:
            task.cancel()
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
