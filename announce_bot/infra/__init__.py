"""
Infrastructure adapters for announce-bot.

Implementations of the domain interfaces on top of Redis, the chat REST
API and XMPP.
"""

from .redis_client import RedisClient
from .redis_store import RedisSubscriberStore
from .hipchat_api import HipChatAPIClient
from .xmpp_transport import XMPPTransport

__all__ = [
    "RedisClient",
    "RedisSubscriberStore",
    "HipChatAPIClient",
    "XMPPTransport"
]
