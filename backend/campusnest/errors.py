"""
Chat error taxonomy

Collaborator errors are raised by the message store, user directory and
live channel. Feed errors are recorded on ``ChatFeed.error`` and never
escape the feed's public operations.
"""


class ChatError(Exception):
    """Base class for all chat errors"""


# Collaborator errors

class StoreUnavailable(ChatError):
    """Message store could not be reached or refused the request"""


class ValidationRejected(ChatError):
    """Message store rejected the insert payload"""


class DirectoryUnavailable(ChatError):
    """User directory lookup failed"""


# Feed errors

class HistoryLoadFailed(ChatError):
    """History fetch or sender label resolution failed"""


class SendFailed(ChatError):
    """Message insert failed; nothing was appended"""


class SubscriptionLost(ChatError):
    """Live channel dropped the subscription"""


class StaleCompletion(ChatError):
    """A completion arrived for a torn-down or superseded conversation"""
