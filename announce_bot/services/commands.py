"""
Chat command routing for announce-bot.

Inbound chat text is matched on its first word (case-insensitive) against
a fixed keyword table. Identical text from the same sender within the
replay-lock TTL is handled once; the chat protocol occasionally delivers
the same message twice. Two deliberate identical commands inside that
window are therefore also handled once, which is harmless because every
built-in command is idempotent.
"""

import logging
import time
from types import MappingProxyType
from typing import Awaitable, Callable, Dict, Mapping, Optional

from announce_bot.domain.addressing import parse_user
from announce_bot.domain.ports import (
    SubscriberStore,
    StoreUnavailableError,
    MalformedUserAddressError,
)
from announce_bot.domain.schema import SubscribeOutcome, UnsubscribeOutcome
from announce_bot.telemetry.logger import MetricsLogger


logger = logging.getLogger(__name__)

# (user_id, raw_message) -> reply
ChatCommand = Callable[[str, str], Awaitable[str]]

REPLY_SUBSCRIBED = "Alright, you're signed up!"
REPLY_ALREADY_SUBSCRIBED = "Looks like you are already subscribed!"
REPLY_UNSUBSCRIBED = "Alright, you've been unsubscribed! I'll miss you..."
REPLY_NOT_SUBSCRIBED = "Looks like you aren't subscribed!"
REPLY_TRY_LATER = "Uh oh... something didn't go right. Try again later. :-("
REPLY_UNKNOWN = "I'm sorry. I didn't understand what you said. Try 'help' to see what I can do."


class CommandRouter:
    """
    Routes chat messages to command handlers.

    The keyword table is fixed when the router is built and exposed as a
    read-only mapping, so concurrent dispatches need no locking.
    """

    def __init__(
        self,
        store: SubscriberStore,
        extra_commands: Optional[Mapping[str, ChatCommand]] = None,
        replay_ttl_seconds: float = 4.0,
        metrics: Optional[MetricsLogger] = None
    ):
        """
        Initialize router with the built-in commands plus any extras.

        Args:
            store: Subscriber store used by the built-ins and replay locks
            extra_commands: Additional keyword -> handler bindings; a keyword
                that is already registered is replaced
            replay_ttl_seconds: Replay lock lifetime
            metrics: Metrics logger for routed commands
        """
        self.store = store
        self.replay_ttl_seconds = replay_ttl_seconds
        self.metrics = metrics or MetricsLogger()

        commands: Dict[str, ChatCommand] = {
            "subscribe": self.subscribe_command,
            "unsubscribe": self.unsubscribe_command,
            "help": self.help_command,
        }
        for keyword, handler in (extra_commands or {}).items():
            commands[keyword.lower()] = handler

        self._commands = MappingProxyType(commands)

    @property
    def commands(self) -> Mapping[str, ChatCommand]:
        return self._commands

    async def dispatch(self, sender: str, message: str) -> Optional[str]:
        """
        Handle one inbound chat message.

        Args:
            sender: Chat address the message came from
            message: Raw message text

        Returns:
            Reply text, or None when nothing should be sent back (empty
            text, malformed sender, duplicate delivery)
        """
        trimmed = (message or "").strip()
        if not trimmed:
            return None

        try:
            user_id = parse_user(sender)
        except MalformedUserAddressError as e:
            logger.warning(
                f"Ignoring message from malformed address: {e}",
                extra={"component": "commands", "sender": sender}
            )
            return None

        try:
            acquired = await self.store.try_acquire_replay_lock(
                user_id, trimmed, self.replay_ttl_seconds
            )
        except StoreUnavailableError as e:
            logger.error(
                f"Replay lock unavailable: {e}",
                extra={"component": "commands", "user": user_id, "text": trimmed}
            )
            return REPLY_TRY_LATER

        if not acquired:
            logger.info(
                "Dropping duplicate chat message",
                extra={"component": "commands", "user": user_id, "text": trimmed}
            )
            return None

        logger.info(
            "Received message",
            extra={"component": "commands", "user": user_id, "text": trimmed}
        )

        keyword = trimmed.split(None, 1)[0].lower()
        handler = self._commands.get(keyword)

        start_time = time.time()
        if handler is None:
            keyword = ""
            reply = REPLY_UNKNOWN
        else:
            reply = await handler(user_id, message)

        self.metrics.log_command(
            user=user_id,
            keyword=keyword,
            duration_ms=(time.time() - start_time) * 1000,
            replied=bool(reply)
        )
        return reply

    async def subscribe_command(self, user_id: str, message: str) -> str:
        try:
            outcome = await self.store.subscribe(user_id)
        except StoreUnavailableError as e:
            logger.error(
                f"Error while attempting to subscribe the user: {e}",
                extra={"component": "commands", "user": user_id}
            )
            return REPLY_TRY_LATER

        if outcome is SubscribeOutcome.CREATED:
            return REPLY_SUBSCRIBED
        return REPLY_ALREADY_SUBSCRIBED

    async def unsubscribe_command(self, user_id: str, message: str) -> str:
        try:
            outcome = await self.store.unsubscribe(user_id)
        except StoreUnavailableError as e:
            logger.error(
                f"Error while attempting to unsubscribe the user: {e}",
                extra={"component": "commands", "user": user_id}
            )
            return REPLY_TRY_LATER

        if outcome is UnsubscribeOutcome.REMOVED:
            return REPLY_UNSUBSCRIBED
        return REPLY_NOT_SUBSCRIBED

    async def help_command(self, user_id: str, message: str) -> str:
        return f"Valid commands are: {', '.join(sorted(self._commands))}"
