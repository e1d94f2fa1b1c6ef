"""
Domain layer for announce-bot.

Contains data models, interfaces and exceptions shared by the services
and adapters.
"""

from .schema import (
    # Enums
    SubscribeOutcome,
    UnsubscribeOutcome,
    SessionState,

    # Models
    ChatEvent,
    FanOutReport,
    HealthStatus
)

from .ports import (
    # Interfaces
    SubscriberStore,
    ChatTransport,
    ChatSender,
    ChatAPI,

    # Exceptions
    StoreUnavailableError,
    MalformedUserAddressError,
    ChatConnectError,
    ChatReadError,
    ChatSendError,
    ChatSessionTerminatedError,
    RoomNotificationError,
    DirectoryLookupError,
    MessageProducerError
)

from .addressing import parse_user

__all__ = [
    "SubscribeOutcome",
    "UnsubscribeOutcome",
    "SessionState",
    "ChatEvent",
    "FanOutReport",
    "HealthStatus",
    "SubscriberStore",
    "ChatTransport",
    "ChatSender",
    "ChatAPI",
    "StoreUnavailableError",
    "MalformedUserAddressError",
    "ChatConnectError",
    "ChatReadError",
    "ChatSendError",
    "ChatSessionTerminatedError",
    "RoomNotificationError",
    "DirectoryLookupError",
    "MessageProducerError",
    "parse_user"
]
