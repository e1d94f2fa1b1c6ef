"""
Tests for configuration loading.
"""

import pytest

from announce_bot.config import ENV_MAPPINGS, NO_ROOM, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for env_var in ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def required_env(monkeypatch):
    monkeypatch.setenv("ANN_HIPCHAT_API_TOKEN", "token")
    monkeypatch.setenv("ANN_TEST_ROOM", "test-room")


def test_defaults_from_environment_only(tmp_path, required_env):
    config = load_config(str(tmp_path / "missing.yml"))

    assert config.server.port == 8080
    assert config.redis.address == "localhost:6379"
    assert config.redis.db == 0
    assert config.hipchat.api_host == "api.hipchat.com"
    assert config.hipchat.xmpp_address == ("chat.hipchat.com", 5222)
    assert config.hipchat.use_tls is False
    assert config.rooms.announce_room == NO_ROOM
    assert config.rooms.test_room == "test-room"


@pytest.mark.parametrize("missing", ["ANN_HIPCHAT_API_TOKEN", "ANN_TEST_ROOM"])
def test_missing_required_values(tmp_path, required_env, monkeypatch, missing):
    monkeypatch.delenv(missing)

    with pytest.raises(ValueError):
        load_config(str(tmp_path / "missing.yml"))


def test_env_overrides_are_coerced(tmp_path, required_env, monkeypatch):
    monkeypatch.setenv("ANN_PORT", "9000")
    monkeypatch.setenv("ANN_REDIS_ADDRESS", "redis.internal:6380")
    monkeypatch.setenv("ANN_REDIS_DB", "2")
    monkeypatch.setenv("ANN_HIPCHAT_USE_TLS", "true")
    monkeypatch.setenv("ANN_ANNOUNCE_ROOM", "1")

    config = load_config(str(tmp_path / "missing.yml"))

    assert config.server.port == 9000
    assert (config.redis.host, config.redis.port) == ("redis.internal", 6380)
    assert config.redis.db == 2
    assert config.hipchat.use_tls is True
    assert config.rooms.announce_room == "1"


def test_yaml_file_with_env_override(tmp_path, monkeypatch):
    config_file = tmp_path / "config.yml"
    config_file.write_text(
        "hipchat:\n"
        "  api_token: from-file\n"
        "  user: announcer\n"
        "  xmpp_host: chat.example.com\n"
        "rooms:\n"
        "  announce_room: 12345\n"
        "  test_room: test-room\n"
        "broadcast:\n"
        "  max_concurrent_fanouts: 2\n",
        encoding="utf-8"
    )
    monkeypatch.setenv("ANN_HIPCHAT_API_TOKEN", "from-env")

    config = load_config(str(config_file))

    assert config.hipchat.api_token == "from-env"
    assert config.hipchat.jid == "announcer@chat.example.com"
    assert config.rooms.announce_room == "12345"
    assert config.broadcast.max_concurrent_fanouts == 2


def test_invalid_yaml(tmp_path):
    config_file = tmp_path / "config.yml"
    config_file.write_text("hipchat: [unclosed\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid YAML"):
        load_config(str(config_file))


def test_unknown_keys_are_rejected(tmp_path, required_env):
    config_file = tmp_path / "config.yml"
    config_file.write_text("redis:\n  adress: typo:6379\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(str(config_file))
