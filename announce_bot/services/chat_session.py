"""
Chat session for announce-bot.
Owns the persistent chat connection: connect, heartbeat, receive loop,
command dispatch and supervised reconnect.
"""

import asyncio
import logging
from typing import Callable, Optional

from announce_bot.domain.ports import (
    ChatSender,
    ChatTransport,
    ChatConnectError,
    ChatReadError,
    ChatSendError,
    ChatSessionTerminatedError,
)
from announce_bot.domain.schema import ChatEvent, SessionState
from .commands import CommandRouter


logger = logging.getLogger(__name__)


class ChatSession(ChatSender):
    """
    Keeps one chat connection alive and routes inbound messages.

    State machine: DISCONNECTED -> CONNECTING -> CONNECTED -> TERMINATED.
    A failed connect or a lost connection goes back to DISCONNECTED and is
    retried with exponential backoff; after ``reconnect_max_attempts``
    consecutive failures the session is TERMINATED and run() raises.
    """

    def __init__(
        self,
        transport_factory: Callable[[], ChatTransport],
        router: CommandRouter,
        heartbeat_interval: float = 30.0,
        reconnect_max_attempts: int = 5,
        reconnect_backoff_ms: int = 1000,
        max_backoff_ms: int = 60000
    ):
        """
        Initialize chat session.

        Args:
            transport_factory: Builds a fresh, unconnected transport per attempt
            router: Command router for inbound chat messages
            heartbeat_interval: Seconds between liveness pings
            reconnect_max_attempts: Consecutive failures tolerated before giving up
            reconnect_backoff_ms: Initial backoff between attempts in milliseconds
            max_backoff_ms: Maximum backoff in milliseconds
        """
        self.transport_factory = transport_factory
        self.router = router
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_max_attempts = reconnect_max_attempts
        self.reconnect_backoff_ms = reconnect_backoff_ms
        self.max_backoff_ms = max_backoff_ms

        self._state = SessionState.DISCONNECTED
        self._transport: Optional[ChatTransport] = None
        self._connected_event = asyncio.Event()
        self._stopping = False

        # Background tasks of the current connection
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._receive_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED and self._transport is not None

    async def wait_connected(self, timeout: Optional[float] = None) -> None:
        await asyncio.wait_for(self._connected_event.wait(), timeout=timeout)

    async def run(self) -> None:
        """
        Run the session until stop() is called.

        Raises:
            ChatSessionTerminatedError: When reconnect attempts are exhausted
        """
        failures = 0

        while not self._stopping:
            error: Optional[Exception] = None
            try:
                await self._connect()
                failures = 0
                await self._serve()
            except (ChatConnectError, ChatReadError) as e:
                error = e
            finally:
                await self._teardown()

            if self._stopping or error is None:
                continue

            failures += 1
            logger.error(
                f"Chat connection failed: {error}",
                extra={
                    "component": "chat_session",
                    "failures": failures,
                    "max_attempts": self.reconnect_max_attempts
                }
            )

            if failures > self.reconnect_max_attempts:
                self._state = SessionState.TERMINATED
                raise ChatSessionTerminatedError(
                    f"Giving up after {failures} consecutive chat connection failures"
                ) from error

            backoff_ms = min(
                self.reconnect_backoff_ms * (2 ** (failures - 1)),
                self.max_backoff_ms
            )
            logger.info(
                f"Reconnecting in {backoff_ms}ms",
                extra={"component": "chat_session", "backoff_ms": backoff_ms}
            )
            await asyncio.sleep(backoff_ms / 1000.0)

        self._state = SessionState.TERMINATED

    async def stop(self) -> None:
        """Stop the session and close the connection."""
        self._stopping = True
        await self._teardown()
        self._state = SessionState.TERMINATED
        logger.info("Chat session stopped", extra={"component": "chat_session"})

    async def send_chat(self, address: str, text: str) -> None:
        transport = self._transport
        if transport is None or self._state is not SessionState.CONNECTED:
            raise ChatSendError("Chat session is not connected")
        await transport.send(address, text)

    async def _connect(self) -> None:
        self._state = SessionState.CONNECTING
        transport = self.transport_factory()
        self._transport = transport

        await transport.connect()

        self._state = SessionState.CONNECTED
        self._connected_event.set()
        logger.info("Chat client connected successfully", extra={"component": "chat_session"})

    async def _serve(self) -> None:
        """Run heartbeat and receive loop until the receive loop fails."""
        transport = self._transport
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(transport))
        self._receive_task = asyncio.create_task(self._receive_loop(transport))

        # The heartbeat never finishes on its own; the receive loop only
        # ends by raising ChatReadError or by stop() cancelling it
        try:
            await self._receive_task
        except asyncio.CancelledError:
            if not self._stopping:
                raise

    async def _teardown(self) -> None:
        self._connected_event.clear()

        current = asyncio.current_task()
        for task in (self._heartbeat_task, self._receive_task):
            if task and task is not current and not task.done():
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, ChatReadError):
                    pass
        self._heartbeat_task = None
        self._receive_task = None

        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                await transport.close()
            except Exception as e:
                logger.warning(f"Error closing chat transport: {e}")

        if self._state is not SessionState.TERMINATED:
            self._state = SessionState.DISCONNECTED

    async def _heartbeat_loop(self, transport: ChatTransport) -> None:
        while True:
            try:
                await transport.ping()
                logger.debug("Sent chat ping")
            except ChatSendError as e:
                logger.warning(
                    f"Chat ping failed: {e}",
                    extra={"component": "chat_session"}
                )
            await asyncio.sleep(self.heartbeat_interval)

    async def _receive_loop(self, transport: ChatTransport) -> None:
        while True:
            event = await transport.recv()
            logger.debug(
                "Received chat event",
                extra={"component": "chat_session", "kind": event.kind}
            )
            await self.handle_event(transport, event)

    async def handle_event(self, transport: ChatTransport, event: ChatEvent) -> None:
        """
        Route one inbound event and send the reply, if any.

        Failures are confined to this event; the receive loop carries on.
        """
        if event.kind != "chat" or not event.text or not event.sender:
            return

        try:
            reply = await self.router.dispatch(event.sender, event.text)
            if reply:
                await transport.send(event.sender, reply)
                logger.info(
                    "Replied to message",
                    extra={
                        "component": "chat_session",
                        "sender": event.sender,
                        "reply": reply
                    }
                )
        except ChatSendError as e:
            logger.error(
                f"Failed to send reply: {e}",
                extra={"component": "chat_session", "sender": event.sender}
            )
        except Exception as e:
            logger.exception(
                f"Error handling chat message: {e}",
                extra={"component": "chat_session", "sender": event.sender}
            )
