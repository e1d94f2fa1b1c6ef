"""
Announce Bot

Relays announcements triggered over HTTP to a chat room and to
individually subscribed users, and lets users manage their subscription
by chatting with the bot.
"""

__version__ = "1.0.0"
__description__ = "Chat announcement relay with per-user subscriptions"
