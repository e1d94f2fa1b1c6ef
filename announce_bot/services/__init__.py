"""
Services layer for announce-bot.

Contains the command router, the chat session and the announcement
broadcaster.
"""

from .commands import CommandRouter, ChatCommand
from .chat_session import ChatSession
from .broadcaster import AnnouncementBroadcaster

__all__ = [
    "CommandRouter",
    "ChatCommand",
    "ChatSession",
    "AnnouncementBroadcaster"
]
