"""
Pytest fixtures for announce-bot tests.
"""

import pytest

from announce_bot.services.commands import CommandRouter

from fakes import FakeChatAPI, FakeChatSender, FakeClock, InMemorySubscriberStore


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemorySubscriberStore(clock=clock)


@pytest.fixture
def router(store):
    return CommandRouter(store=store, replay_ttl_seconds=4.0)


@pytest.fixture
def chat_api():
    return FakeChatAPI(addresses={
        "u1": "1_u1@chat.example.com",
        "u2": "1_u2@chat.example.com",
    })


@pytest.fixture
def chat_sender():
    return FakeChatSender()
