"""
Chat Feed
Keeps one conversation's messages deduplicated, time-ordered and live.

Three sources feed the list: the one-time history load, the live channel
and the optimistic append after a successful send. All of them go through
the same accept step, which deduplicates by message id (first copy wins)
and inserts in (created_at, arrival) order.
"""
import asyncio
import bisect
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from campusnest.config import get_settings
from campusnest.errors import (
    ChatError,
    HistoryLoadFailed,
    SendFailed,
    StaleCompletion,
    SubscriptionLost,
)
from campusnest.services.collaborators import (
    ChatMessage,
    LiveChannel,
    MessageStore,
    Subscription,
    UserDirectory,
)

logger = logging.getLogger(__name__)


class FeedStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    CLOSED = "closed"


@dataclass(frozen=True)
class FeedEntry:
    """A message enriched with its sender label and arrival position"""
    message: ChatMessage
    sender_display: str
    arrival: int

    @property
    def id(self):
        return self.message.id

    def sort_key(self):
        # No sequence number exists; equal timestamps keep arrival order
        return (self.message.created_at, self.arrival)

    def render(self, current_user_id: str) -> Dict:
        return {
            "id": str(self.message.id),
            "content": self.message.content,
            "sender_id": self.message.sender_id,
            "sender_display": self.sender_display,
            "created_at": self.message.created_at.isoformat(),
            "is_own_message": self.message.sender_id == current_user_id,
        }


class ChatFeed:
    """
    Ordered, live message list for one conversation at a time

    Lifecycle:
        CLOSED  -> open()         -> LOADING
        LOADING -> history loaded -> READY
        LOADING/READY -> close()  -> CLOSED

    Every async operation captures the generation it was issued under.
    Opening another conversation or closing bumps the generation, so late
    completions from the previous context are discarded instead of applied.

    Failures never propagate out of open/load_history/send/resubscribe;
    they are stored on ``error`` and logged.
    """

    def __init__(
        self,
        store: MessageStore,
        directory: UserDirectory,
        live: LiveChannel,
        current_user_id: str,
        timeout: Optional[float] = None,
        unknown_label: Optional[str] = None,
        own_label: Optional[str] = None,
        on_update: Optional[Callable[[FeedEntry], None]] = None,
    ):
        settings = get_settings()
        self.store = store
        self.directory = directory
        self.live = live
        self.current_user_id = current_user_id
        self.timeout = timeout if timeout is not None else settings.store_timeout_seconds
        self.unknown_label = unknown_label or settings.unknown_sender_label
        self.own_label = own_label or settings.own_sender_label
        self.on_update = on_update

        self.conversation_id = None
        self.status = FeedStatus.CLOSED
        self.error: Optional[ChatError] = None
        self.connected = False
        self.draft = ""

        self._generation = 0
        self._arrivals = itertools.count()
        self._entries: List[FeedEntry] = []
        self._ids = set()
        self._pending: List[FeedEntry] = []
        self._subscription: Optional[Subscription] = None
        self._sending = False

    # ---------------------------------------------------------
    # Read side
    # ---------------------------------------------------------

    @property
    def sending(self) -> bool:
        return self._sending

    def render(self) -> List[Dict]:
        """Render-ready list, ascending by created_at"""
        return [entry.render(self.current_user_id) for entry in self._entries]

    # ---------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------

    async def open(self, conversation_id) -> bool:
        """
        Switch the feed to a conversation

        Tears down the current conversation, then subscribes to the live
        channel and loads history concurrently. Live messages delivered
        before history resolves are queued and merged once it does.

        Returns:
            True when history loaded and the feed is READY
        """
        if not conversation_id:
            raise ValueError("conversation_id must be non-empty")

        await self.close()

        self._generation += 1
        token = self._generation
        self.conversation_id = conversation_id
        self.status = FeedStatus.LOADING
        self.error = None
        self.draft = ""
        self._entries = []
        self._ids = set()
        self._pending = []
        self._sending = False

        _, loaded = await asyncio.gather(self._subscribe(token), self.load_history())
        return loaded

    async def close(self):
        """Tear down the subscription; nothing mutates the feed afterwards"""
        if self.status is FeedStatus.CLOSED and self._subscription is None:
            return

        self._generation += 1
        self.status = FeedStatus.CLOSED
        self.connected = False
        self._pending = []

        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            try:
                await self.live.unsubscribe(subscription)
            except Exception:
                logger.exception("failed to unsubscribe from conversation %s", self.conversation_id)

        logger.debug("closed feed for conversation %s", self.conversation_id)

    async def resubscribe(self) -> bool:
        """
        Re-establish the live subscription after it was lost

        History is reloaded afterwards so messages inserted while
        disconnected are merged in.
        """
        if self.status is FeedStatus.CLOSED or self.connected:
            return False

        await self._subscribe(self._generation)
        if not self.connected:
            return False
        return await self.load_history()

    # ---------------------------------------------------------
    # Operations
    # ---------------------------------------------------------

    async def load_history(self) -> bool:
        """
        Fetch the conversation's messages and their sender labels

        Labels are resolved with one batched directory call; unresolved
        senders get the unknown label. On failure the feed keeps its current
        content (nothing while LOADING) and records HistoryLoadFailed; call
        again to retry.
        """
        token = self._generation
        conversation_id = self.conversation_id
        if self.status is FeedStatus.CLOSED or conversation_id is None:
            return False

        logger.debug("loading history for conversation %s", conversation_id)
        try:
            messages = await asyncio.wait_for(self.store.query(conversation_id), self.timeout)
            sender_ids = {message.sender_id for message in messages}
            labels = {}
            if sender_ids:
                labels = await asyncio.wait_for(
                    self.directory.batch_resolve_display_label(sender_ids),
                    self.timeout,
                )
            self._ensure_current(token)
        except StaleCompletion:
            logger.debug("discarding stale history for conversation %s", conversation_id)
            return False
        except Exception as e:
            if token != self._generation:
                logger.debug("discarding stale history failure for conversation %s", conversation_id)
                return False
            self.error = HistoryLoadFailed(f"Failed to load messages: {str(e) or type(e).__name__}")
            self.error.__cause__ = e
            logger.warning("history load failed for conversation %s: %r", conversation_id, e)
            return False

        # A reload while READY (retry or resubscribe) reports what it recovered
        notify = self.status is FeedStatus.READY
        merged = []
        for message in messages:
            label = labels.get(message.sender_id) or self.unknown_label
            entry = self._entry(message, label)
            if self._merge(entry):
                merged.append(entry)

        pending, self._pending = self._pending, []
        for entry in pending:
            if self._merge(entry):
                merged.append(entry)

        if notify and self.on_update is not None:
            for entry in merged:
                self.on_update(entry)

        self.status = FeedStatus.READY
        if isinstance(self.error, HistoryLoadFailed):
            self.error = None
        logger.debug(
            "loaded %d messages (%d queued live) for conversation %s",
            len(messages), len(pending), conversation_id,
        )
        return True

    async def send(self, content: Optional[str] = None) -> Optional[FeedEntry]:
        """
        Insert a message and append it without waiting for the live echo

        Uses ``content`` when given, otherwise the current draft. Blank
        content, sends before history has loaded and sends issued while
        another send is in flight are no-ops. The draft is cleared only once
        the insert is confirmed.

        Returns:
            The feed entry for the stored message, or None when nothing was stored
        """
        if content is not None:
            self.draft = content
        text = self.draft

        if self.status is not FeedStatus.READY or self.conversation_id is None:
            return None
        if not text or not text.strip():
            return None
        if self._sending:
            logger.debug("send already in flight for conversation %s", self.conversation_id)
            return None

        token = self._generation
        conversation_id = self.conversation_id
        self._sending = True
        try:
            message = await asyncio.wait_for(
                self.store.insert(conversation_id, self.current_user_id, text),
                self.timeout,
            )
            self._ensure_current(token)
        except StaleCompletion:
            logger.debug("discarding stale send for conversation %s", conversation_id)
            return None
        except Exception as e:
            if token != self._generation:
                logger.debug("discarding stale send failure for conversation %s", conversation_id)
                return None
            self.error = SendFailed(f"Failed to send message: {str(e) or type(e).__name__}")
            self.error.__cause__ = e
            logger.warning("send failed for conversation %s: %r", conversation_id, e)
            return None
        finally:
            if token == self._generation:
                self._sending = False

        if self.draft == text:
            self.draft = ""
        if isinstance(self.error, SendFailed):
            self.error = None

        entry = self._entry(message, self._own_display_label())
        if self._accept(entry):
            return entry
        # The live echo got there first
        return self._find(entry.id)

    # ---------------------------------------------------------
    # Live channel
    # ---------------------------------------------------------

    async def _subscribe(self, token: int):
        conversation_id = self.conversation_id
        try:
            subscription = await self.live.subscribe(
                conversation_id,
                self._live_handler(token),
                on_lost=self._lost_handler(token),
            )
        except Exception as e:
            if token == self._generation:
                self.connected = False
                self.error = SubscriptionLost(f"Could not subscribe: {str(e) or type(e).__name__}")
            logger.warning("subscribe failed for conversation %s: %r", conversation_id, e)
            return

        if token != self._generation:
            # Closed while the subscribe call was in flight
            await self.live.unsubscribe(subscription)
            return

        self._subscription = subscription
        self.connected = True
        if isinstance(self.error, SubscriptionLost):
            self.error = None

    def _live_handler(self, token: int):
        async def handle(message: ChatMessage):
            if token != self._generation:
                logger.debug("discarding stale live message %s", message.id)
                return
            if str(message.conversation_id) != str(self.conversation_id):
                return

            try:
                label = await asyncio.wait_for(
                    self.directory.resolve_display_label(message.sender_id),
                    self.timeout,
                )
            except Exception as e:
                logger.warning("could not resolve sender %s: %r", message.sender_id, e)
                label = None

            if token != self._generation:
                logger.debug("discarding stale live message %s", message.id)
                return
            self._accept(self._entry(message, label or self.unknown_label))

        return handle

    def _lost_handler(self, token: int):
        def lost(exc: Exception):
            if token != self._generation:
                return
            self._subscription = None
            self.connected = False
            self.error = exc if isinstance(exc, SubscriptionLost) else SubscriptionLost(str(exc))
            logger.warning("live subscription lost for conversation %s", self.conversation_id)

        return lost

    # ---------------------------------------------------------
    # Merge
    # ---------------------------------------------------------

    def _ensure_current(self, token: int):
        if token != self._generation or self.status is FeedStatus.CLOSED:
            raise StaleCompletion(f"generation {token} superseded by {self._generation}")

    def _entry(self, message: ChatMessage, label: str) -> FeedEntry:
        return FeedEntry(message=message, sender_display=label, arrival=next(self._arrivals))

    def _own_display_label(self) -> str:
        for entry in self._entries:
            if entry.message.sender_id == self.current_user_id and entry.sender_display != self.unknown_label:
                return entry.sender_display
        return self.own_label

    def _accept(self, entry: FeedEntry) -> bool:
        """Route a live or sent entry: queue while LOADING, merge when READY"""
        if self.status is FeedStatus.LOADING:
            if entry.id in self._ids or any(p.id == entry.id for p in self._pending):
                return False
            self._pending.append(entry)
            return True

        if not self._merge(entry):
            logger.debug("dropping duplicate message %s", entry.id)
            return False
        if self.on_update is not None:
            self.on_update(entry)
        return True

    def _find(self, message_id) -> Optional[FeedEntry]:
        for entry in itertools.chain(self._entries, self._pending):
            if entry.id == message_id:
                return entry
        return None

    def _merge(self, entry: FeedEntry) -> bool:
        if entry.id in self._ids:
            return False
        self._ids.add(entry.id)
        bisect.insort(self._entries, entry, key=FeedEntry.sort_key)
        return True
