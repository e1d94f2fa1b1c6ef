"""
Announcement broadcaster for announce-bot.
Sends an announcement to the group room and, in the background, to every
subscriber's private chat address.
"""

import asyncio
import logging
import time
from typing import List, Optional, Set

from announce_bot.domain.ports import (
    ChatAPI,
    ChatSender,
    SubscriberStore,
    RoomNotificationError,
    DirectoryLookupError,
    ChatSendError,
)
from announce_bot.config import NO_ROOM
from announce_bot.domain.schema import FanOutReport
from announce_bot.telemetry.logger import MetricsLogger


logger = logging.getLogger(__name__)

TEST_MESSAGE = "This is a test message!"


class AnnouncementBroadcaster:
    """
    Best-effort announcement delivery.

    Pipeline: subscriber snapshot -> room notification -> per-user fan-out.
    The fan-out runs as a background task; each recipient fails on its own
    without affecting the others, and nothing is retried.
    """

    def __init__(
        self,
        store: SubscriberStore,
        chat_api: ChatAPI,
        chat_sender: ChatSender,
        announce_room: str = NO_ROOM,
        max_concurrent_fanouts: int = 4,
        metrics: Optional[MetricsLogger] = None
    ):
        """
        Initialize broadcaster.

        Args:
            store: Subscriber store
            chat_api: REST API used for room notifications and user lookup
            chat_sender: Live chat connection used for private messages
            announce_room: Group room id, "-1" to skip the room notification
            max_concurrent_fanouts: Fan-outs allowed to deliver at once
            metrics: Metrics logger for fan-out results
        """
        self.store = store
        self.chat_api = chat_api
        self.chat_sender = chat_sender
        self.announce_room = announce_room
        self.metrics = metrics or MetricsLogger()

        self._semaphore = asyncio.Semaphore(max_concurrent_fanouts)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def announce(self, message: str) -> "asyncio.Task[FanOutReport]":
        """
        Announce a message.

        Returns once the subscriber list is known and the room notification
        has been attempted; per-user delivery continues in the returned task.

        Args:
            message: Announcement text

        Returns:
            The background fan-out task (callers may ignore it)

        Raises:
            StoreUnavailableError: If subscribers cannot be read; nothing
                is sent in that case
        """
        subscribers = await self.store.list_subscribers()

        if self.announce_room != NO_ROOM:
            try:
                await self.chat_api.send_room_notification(self.announce_room, message)
                logger.info(
                    "Sent announcement to the room",
                    extra={
                        "component": "broadcaster",
                        "room": self.announce_room,
                        "announcement": message
                    }
                )
            except RoomNotificationError as e:
                logger.error(
                    f"An error occurred while sending the announcement to the room: {e}",
                    extra={
                        "component": "broadcaster",
                        "room": self.announce_room,
                        "announcement": message
                    }
                )

        task = asyncio.create_task(self._fan_out(subscribers, message))
        self._tasks.add(task)
        task.add_done_callback(self._on_fan_out_done)
        return task

    async def send_test_message(self, room_id: str) -> bool:
        """
        Send the fixed test message to a room.

        Returns:
            True if the notification went out
        """
        try:
            await self.chat_api.send_room_notification(room_id, TEST_MESSAGE)
        except RoomNotificationError as e:
            logger.error(
                f"An error occurred while sending the test message: {e}",
                extra={"component": "broadcaster", "room": room_id}
            )
            return False
        return True

    async def close(self, timeout: float = 10.0) -> None:
        """Wait for running fan-outs, cancelling what is left after timeout."""
        if not self._tasks:
            return

        tasks = list(self._tasks)
        logger.info(
            f"Waiting for {len(tasks)} announcement fan-outs",
            extra={"component": "broadcaster"}
        )
        done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(
                f"Cancelled {len(still_running)} unfinished fan-outs",
                extra={"component": "broadcaster"}
            )

    def _on_fan_out_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Announcement fan-out failed: {error}",
                exc_info=error,
                extra={"component": "broadcaster"}
            )

    async def _fan_out(self, subscribers: List[str], message: str) -> FanOutReport:
        report = FanOutReport(message=message)
        if not subscribers:
            return report

        async with self._semaphore:
            start_time = time.time()

            if not self.chat_sender.is_connected:
                logger.error(
                    "No chat connection to send the announcement",
                    extra={"component": "broadcaster", "announcement": message}
                )
                report.failed = {user_id: "chat not connected" for user_id in subscribers}
            else:
                for user_id in subscribers:
                    error = await self._deliver(user_id, message)
                    if error is None:
                        report.delivered.append(user_id)
                    else:
                        report.failed[user_id] = error

            self.metrics.log_fanout(
                recipients=len(subscribers),
                delivered=len(report.delivered),
                failed=len(report.failed),
                duration_ms=(time.time() - start_time) * 1000
            )

        return report

    async def _deliver(self, user_id: str, message: str) -> Optional[str]:
        """
        Send to one user; returns an error description or None.

        Never raises, so one recipient cannot end the fan-out for the rest.
        """
        context = {"component": "broadcaster", "user": user_id, "announcement": message}

        try:
            address = await self.chat_api.lookup_user_address(user_id)
        except DirectoryLookupError as e:
            logger.error(f"Could not find the user via the chat API: {e}", extra=context)
            return str(e)
        except Exception as e:
            logger.exception(f"Unexpected error while looking up the user: {e}", extra=context)
            return f"unexpected error: {e}"

        try:
            await self.chat_sender.send_chat(address, message)
        except ChatSendError as e:
            logger.error(
                f"An error occurred while sending the announcement to a user: {e}",
                extra=context
            )
            return str(e)
        except Exception as e:
            logger.exception(f"Unexpected error while delivering the announcement: {e}", extra=context)
            return f"unexpected error: {e}"

        logger.info("Sent announcement to user", extra=context)
        return None
