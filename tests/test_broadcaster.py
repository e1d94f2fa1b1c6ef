"""
Tests for announcement delivery.
"""

import asyncio

import pytest

from announce_bot.domain import StoreUnavailableError
from announce_bot.services.broadcaster import AnnouncementBroadcaster, TEST_MESSAGE

from fakes import FakeChatAPI, FakeChatSender, InMemorySubscriberStore


def make_broadcaster(store, chat_api, chat_sender, room="room1", **kwargs):
    return AnnouncementBroadcaster(
        store=store,
        chat_api=chat_api,
        chat_sender=chat_sender,
        announce_room=room,
        **kwargs
    )


@pytest.mark.asyncio
async def test_announces_to_room_and_every_subscriber(chat_api, chat_sender):
    store = InMemorySubscriberStore({"u1", "u2"})
    broadcaster = make_broadcaster(store, chat_api, chat_sender)

    task = await broadcaster.announce("Build failed")
    report = await task

    assert chat_api.room_messages == [("room1", "Build failed")]
    assert sorted(chat_sender.sent) == [
        ("1_u1@chat.example.com", "Build failed"),
        ("1_u2@chat.example.com", "Build failed"),
    ]
    assert sorted(report.delivered) == ["u1", "u2"]
    assert report.failed == {}


@pytest.mark.asyncio
async def test_lookup_failure_only_skips_that_user(chat_sender):
    store = InMemorySubscriberStore({"u1", "u2"})
    chat_api = FakeChatAPI(addresses={"u1": "1_u1@chat.example.com"})
    broadcaster = make_broadcaster(store, chat_api, chat_sender)

    report = await (await broadcaster.announce("Build failed"))

    assert chat_api.room_messages == [("room1", "Build failed")]
    assert sorted(chat_api.lookups) == ["u1", "u2"]
    assert chat_sender.sent == [("1_u1@chat.example.com", "Build failed")]
    assert report.delivered == ["u1"]
    assert set(report.failed) == {"u2"}


@pytest.mark.asyncio
async def test_send_failure_only_skips_that_user(chat_api):
    store = InMemorySubscriberStore({"u1", "u2"})
    chat_sender = FakeChatSender(failing={"1_u1@chat.example.com"})
    broadcaster = make_broadcaster(store, chat_api, chat_sender)

    report = await (await broadcaster.announce("Build failed"))

    assert chat_sender.sent == [("1_u2@chat.example.com", "Build failed")]
    assert report.delivered == ["u2"]
    assert report.attempted == 2


@pytest.mark.asyncio
async def test_no_room_sentinel_skips_room_but_fans_out(chat_api, chat_sender):
    store = InMemorySubscriberStore({"u1", "u2"})
    broadcaster = make_broadcaster(store, chat_api, chat_sender, room="-1")

    report = await (await broadcaster.announce("Build failed"))

    assert chat_api.room_messages == []
    assert len(chat_sender.sent) == 2
    assert report.attempted == 2


@pytest.mark.asyncio
async def test_store_outage_aborts_everything(chat_api, chat_sender):
    store = InMemorySubscriberStore({"u1", "u2"})
    store.available = False
    broadcaster = make_broadcaster(store, chat_api, chat_sender)

    with pytest.raises(StoreUnavailableError):
        await broadcaster.announce("Build failed")

    assert chat_api.room_messages == []
    assert chat_api.lookups == []
    assert chat_sender.sent == []
    assert broadcaster.pending == 0


@pytest.mark.asyncio
async def test_room_failure_does_not_stop_fan_out(chat_sender):
    store = InMemorySubscriberStore({"u1"})
    chat_api = FakeChatAPI(addresses={"u1": "1_u1@chat.example.com"}, room_fails=True)
    broadcaster = make_broadcaster(store, chat_api, chat_sender)

    report = await (await broadcaster.announce("Build failed"))

    assert report.delivered == ["u1"]


@pytest.mark.asyncio
async def test_empty_subscriber_list_still_notifies_room(chat_api, chat_sender):
    broadcaster = make_broadcaster(InMemorySubscriberStore(), chat_api, chat_sender)

    report = await (await broadcaster.announce("Build failed"))

    assert chat_api.room_messages == [("room1", "Build failed")]
    assert chat_api.lookups == []
    assert report.attempted == 0


@pytest.mark.asyncio
async def test_disconnected_chat_marks_every_recipient_failed(chat_api):
    store = InMemorySubscriberStore({"u1", "u2"})
    chat_sender = FakeChatSender(connected=False)
    broadcaster = make_broadcaster(store, chat_api, chat_sender)

    report = await (await broadcaster.announce("Build failed"))

    assert chat_api.room_messages == [("room1", "Build failed")]
    assert report.delivered == []
    assert set(report.failed) == {"u1", "u2"}
    assert chat_api.lookups == []


@pytest.mark.asyncio
async def test_announce_returns_before_fan_out_finishes(chat_api):
    release = asyncio.Event()

    class SlowSender(FakeChatSender):
        async def send_chat(self, address, text):
            await release.wait()
            await super().send_chat(address, text)

    store = InMemorySubscriberStore({"u1"})
    chat_sender = SlowSender()
    broadcaster = make_broadcaster(store, chat_api, chat_sender)

    task = await broadcaster.announce("Build failed")

    assert not task.done()
    assert broadcaster.pending == 1
    release.set()
    await task
    assert chat_sender.sent == [("1_u1@chat.example.com", "Build failed")]
    assert broadcaster.pending == 0


@pytest.mark.asyncio
async def test_fan_outs_are_bounded(chat_api):
    release = asyncio.Event()
    active = []
    peak = []

    class SlowSender(FakeChatSender):
        async def send_chat(self, address, text):
            active.append(address)
            peak.append(len(active))
            await release.wait()
            active.remove(address)

    store = InMemorySubscriberStore({"u1"})
    broadcaster = make_broadcaster(store, chat_api, SlowSender(), max_concurrent_fanouts=1)

    tasks = [await broadcaster.announce(f"msg {i}") for i in range(3)]
    await asyncio.sleep(0.01)
    assert max(peak) == 1

    release.set()
    await asyncio.gather(*tasks)
    assert max(peak) == 1


@pytest.mark.asyncio
async def test_close_cancels_stuck_fan_outs(chat_api):
    class StuckSender(FakeChatSender):
        async def send_chat(self, address, text):
            await asyncio.Event().wait()

    store = InMemorySubscriberStore({"u1"})
    broadcaster = make_broadcaster(store, chat_api, StuckSender())

    task = await broadcaster.announce("Build failed")
    await broadcaster.close(timeout=0.01)

    assert task.cancelled()


@pytest.mark.asyncio
async def test_send_test_message(chat_api, chat_sender):
    broadcaster = make_broadcaster(InMemorySubscriberStore(), chat_api, chat_sender)

    assert await broadcaster.send_test_message("test-room") is True
    assert chat_api.room_messages == [("test-room", TEST_MESSAGE)]

    chat_api.room_fails = True
    assert await broadcaster.send_test_message("test-room") is False


@pytest.mark.asyncio
async def test_unexpected_lookup_error_only_skips_that_user(chat_sender):
    class BrokenLookupAPI(FakeChatAPI):
        async def lookup_user_address(self, user_id):
            if user_id == "\x00":
                raise RuntimeError("invalid url")
            return await super().lookup_user_address(user_id)

    store = InMemorySubscriberStore()
    store.subscribers = ["\x00", "ok"]
    chat_api = BrokenLookupAPI(addresses={"ok": "1_ok@chat.example.com"})
    broadcaster = make_broadcaster(store, chat_api, chat_sender)

    report = await (await broadcaster.announce("Build failed"))

    assert chat_sender.sent == [("1_ok@chat.example.com", "Build failed")]
    assert report.delivered == ["ok"]
    assert set(report.failed) == {"\x00"}


@pytest.mark.asyncio
async def test_unexpected_send_error_only_skips_that_user(chat_api):
    class BrokenSender(FakeChatSender):
        async def send_chat(self, address, text):
            if address == "1_u1@chat.example.com":
                raise OSError("socket closed")
            await super().send_chat(address, text)

    store = InMemorySubscriberStore()
    store.subscribers = ["u1", "u2"]
    chat_sender = BrokenSender()
    broadcaster = make_broadcaster(store, chat_api, chat_sender)

    report = await (await broadcaster.announce("Build failed"))

    assert chat_sender.sent == [("1_u2@chat.example.com", "Build failed")]
    assert report.delivered == ["u2"]
    assert "socket closed" in report.failed["u1"]


@pytest.mark.asyncio
async def test_crashed_fan_out_is_logged(chat_api, chat_sender, caplog):
    class BrokenMetrics:
        def log_fanout(self, **kwargs):
            raise RuntimeError("metrics sink down")

    store = InMemorySubscriberStore({"u1"})
    broadcaster = make_broadcaster(store, chat_api, chat_sender, metrics=BrokenMetrics())

    task = await broadcaster.announce("Build failed")
    with pytest.raises(RuntimeError):
        await task
    await asyncio.sleep(0)

    assert broadcaster.pending == 0
    assert "Announcement fan-out failed: metrics sink down" in caplog.text
