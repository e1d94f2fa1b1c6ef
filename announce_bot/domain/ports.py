"""
Ports (interfaces) for announce-bot.
Following Dependency Inversion Principle - services depend on abstractions,
adapters in infra/ implement them.
"""

from abc import ABC, abstractmethod
from typing import List

from .schema import ChatEvent, HealthStatus, SubscribeOutcome, UnsubscribeOutcome


class SubscriberStore(ABC):
    """
    Interface for the durable subscriber set and replay locks.
    Implemented with Redis; tests use an in-memory version.
    """

    @abstractmethod
    async def list_subscribers(self) -> List[str]:
        """
        Read the current subscriber set.

        Returns:
            Subscriber user ids, in no particular order

        Raises:
            StoreUnavailableError: If the backing store cannot be reached
        """
        pass

    @abstractmethod
    async def subscribe(self, user_id: str) -> SubscribeOutcome:
        """
        Add a user to the subscriber set.

        Args:
            user_id: User identifier

        Returns:
            CREATED if the user was added, ALREADY_SUBSCRIBED otherwise

        Raises:
            StoreUnavailableError: If the backing store cannot be reached
        """
        pass

    @abstractmethod
    async def unsubscribe(self, user_id: str) -> UnsubscribeOutcome:
        """
        Remove a user from the subscriber set.

        Args:
            user_id: User identifier

        Returns:
            REMOVED if the user was removed, NOT_SUBSCRIBED otherwise

        Raises:
            StoreUnavailableError: If the backing store cannot be reached
        """
        pass

    @abstractmethod
    async def try_acquire_replay_lock(
        self,
        sender: str,
        message_text: str,
        ttl_seconds: float
    ) -> bool:
        """
        Atomically create a short-lived lock for (sender, message_text).

        Args:
            sender: User id of the message sender
            message_text: Exact (trimmed) message text
            ttl_seconds: Lock lifetime

        Returns:
            True if the lock was acquired, False if it already exists

        Raises:
            StoreUnavailableError: If the backing store cannot be reached
        """
        pass

    @abstractmethod
    async def check_health(self) -> HealthStatus:
        """Check if the backing store is reachable."""
        pass


class ChatTransport(ABC):
    """
    A single persistent chat-protocol connection.

    One instance is shared by the receive loop, the heartbeat and every
    outbound send; implementations must tolerate a send or ping issued while
    a recv() is pending.
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the connection and authenticate.

        Raises:
            ChatConnectError: If the connection cannot be established
        """
        pass

    @abstractmethod
    async def recv(self) -> ChatEvent:
        """
        Wait for the next inbound event.

        Raises:
            ChatReadError: If the connection is lost
        """
        pass

    @abstractmethod
    async def send(self, address: str, text: str) -> None:
        """
        Send a private chat message.

        Raises:
            ChatSendError: If the message cannot be written
        """
        pass

    @abstractmethod
    async def ping(self) -> None:
        """Send a liveness ping to the server."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""
        pass


class ChatSender(ABC):
    """Something that can deliver private chat messages right now."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    async def send_chat(self, address: str, text: str) -> None:
        """
        Raises:
            ChatSendError: If not connected or the send fails
        """
        pass


class ChatAPI(ABC):
    """
    Interface for the chat service REST API.
    Covers the two calls the bot needs: room notifications and user lookup.
    """

    @abstractmethod
    async def send_room_notification(self, room_id: str, message: str) -> None:
        """
        Post a notification to a room.

        Raises:
            RoomNotificationError: If the notification is rejected or fails
        """
        pass

    @abstractmethod
    async def lookup_user_address(self, user_id: str) -> str:
        """
        Resolve a user id to the user's private chat address.

        Raises:
            DirectoryLookupError: If the user cannot be resolved
        """
        pass


# Custom exceptions
class StoreUnavailableError(Exception):
    """Raised when the subscriber store cannot be reached."""
    pass


class MalformedUserAddressError(ValueError):
    """Raised when a chat address does not carry a user id."""
    pass


class ChatConnectError(Exception):
    """Raised when the chat connection cannot be established."""
    pass


class ChatReadError(Exception):
    """Raised when reading from the chat connection fails."""
    pass


class ChatSendError(Exception):
    """Raised when a chat message cannot be sent."""
    pass


class ChatSessionTerminatedError(Exception):
    """Raised when the chat session gives up reconnecting."""
    pass


class RoomNotificationError(Exception):
    """Raised when a room notification fails."""
    pass


class DirectoryLookupError(Exception):
    """Raised when a user cannot be resolved to a chat address."""
    pass


class MessageProducerError(Exception):
    """Raised by a message producer when no announcement is available."""
    pass
