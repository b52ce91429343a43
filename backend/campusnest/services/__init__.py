"""Services package initialization"""
from campusnest.services.chat_feed import ChatFeed, FeedEntry, FeedStatus
from campusnest.services.live_channel import InMemoryLiveChannel
from campusnest.services.message_store import SqlMessageStore
from campusnest.services.user_directory import SqlUserDirectory

__all__ = [
    "ChatFeed",
    "FeedEntry",
    "FeedStatus",
    "InMemoryLiveChannel",
    "SqlMessageStore",
    "SqlUserDirectory",
]
