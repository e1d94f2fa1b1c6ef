"""
In-memory implementations of the domain ports for tests.
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from announce_bot.domain.ports import (
    ChatAPI,
    ChatSender,
    ChatTransport,
    SubscriberStore,
    StoreUnavailableError,
    ChatConnectError,
    ChatReadError,
    ChatSendError,
    DirectoryLookupError,
    RoomNotificationError,
)
from announce_bot.domain.schema import (
    ChatEvent,
    HealthStatus,
    SubscribeOutcome,
    UnsubscribeOutcome,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemorySubscriberStore(SubscriberStore):
    def __init__(self, subscribers=(), clock: Optional[FakeClock] = None):
        self.subscribers: Set[str] = set(subscribers)
        self.locks: Dict[Tuple[str, str], float] = {}
        self.clock = clock or FakeClock()
        self.available = True

    def _check(self) -> None:
        if not self.available:
            raise StoreUnavailableError("connection refused")

    async def list_subscribers(self) -> List[str]:
        self._check()
        return list(self.subscribers)

    async def subscribe(self, user_id: str) -> SubscribeOutcome:
        self._check()
        if user_id in self.subscribers:
            return SubscribeOutcome.ALREADY_SUBSCRIBED
        self.subscribers.add(user_id)
        return SubscribeOutcome.CREATED

    async def unsubscribe(self, user_id: str) -> UnsubscribeOutcome:
        self._check()
        if user_id not in self.subscribers:
            return UnsubscribeOutcome.NOT_SUBSCRIBED
        self.subscribers.discard(user_id)
        return UnsubscribeOutcome.REMOVED

    async def try_acquire_replay_lock(self, sender: str, message_text: str, ttl_seconds: float) -> bool:
        self._check()
        key = (sender, message_text)
        expires = self.locks.get(key)
        now = self.clock()
        if expires is not None and expires > now:
            return False
        self.locks[key] = now + ttl_seconds
        return True

    async def check_health(self) -> HealthStatus:
        status = "healthy" if self.available else "unhealthy"
        return HealthStatus(status=status, timestamp=datetime.utcnow(), checks={"memory": status})


class FakeTransport(ChatTransport):
    def __init__(self, fail_connect: bool = False):
        self.fail_connect = fail_connect
        self.connected = False
        self.closed = False
        self.sent: List[Tuple[str, str]] = []
        self.pings = 0
        self.events: asyncio.Queue = asyncio.Queue()

    def feed(self, sender: str, text: str, kind: str = "chat") -> None:
        self.events.put_nowait(ChatEvent(kind=kind, sender=sender, text=text))

    def drop(self) -> None:
        self.events.put_nowait(None)

    async def connect(self) -> None:
        if self.fail_connect:
            raise ChatConnectError("connection refused")
        self.connected = True

    async def recv(self) -> ChatEvent:
        event = await self.events.get()
        if event is None:
            raise ChatReadError("stream closed")
        return event

    async def send(self, address: str, text: str) -> None:
        if not self.connected:
            raise ChatSendError("not connected")
        self.sent.append((address, text))

    async def ping(self) -> None:
        self.pings += 1

    async def close(self) -> None:
        self.connected = False
        self.closed = True


class FakeChatAPI(ChatAPI):
    def __init__(self, addresses: Optional[Dict[str, str]] = None, room_fails: bool = False):
        self.addresses = addresses or {}
        self.room_fails = room_fails
        self.room_messages: List[Tuple[str, str]] = []
        self.lookups: List[str] = []

    async def send_room_notification(self, room_id: str, message: str) -> None:
        if self.room_fails:
            raise RoomNotificationError("HTTP 500")
        self.room_messages.append((room_id, message))

    async def lookup_user_address(self, user_id: str) -> str:
        self.lookups.append(user_id)
        if user_id not in self.addresses:
            raise DirectoryLookupError(f"User {user_id} lookup failed: HTTP 404")
        return self.addresses[user_id]


class FakeChatSender(ChatSender):
    def __init__(self, connected: bool = True, failing: Set[str] = frozenset()):
        self.connected = connected
        self.failing = set(failing)
        self.sent: List[Tuple[str, str]] = []

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def send_chat(self, address: str, text: str) -> None:
        if address in self.failing:
            raise ChatSendError(f"write to {address} failed")
        self.sent.append((address, text))
