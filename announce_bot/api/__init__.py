"""HTTP API layer for announce-bot."""

from .http_server import AnnounceBotAPI, MessageProducer, static_message_producer

__all__ = [
    "AnnounceBotAPI",
    "MessageProducer",
    "static_message_producer"
]
