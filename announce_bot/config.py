"""
Configuration management for announce-bot.
Loads and validates configuration from YAML files and ANN_* environment
variables using Pydantic.
"""

import os
import logging
from pathlib import Path
from typing import Optional, Tuple

import yaml
from pydantic import BaseModel, Field, validator, ConfigDict


logger = logging.getLogger(__name__)


NO_ROOM = "-1"


def _split_host_port(address: str, default_port: int) -> Tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, default_port
    return host, int(port)


class RedisConfig(BaseModel):
    """Redis connection and key configuration."""
    model_config = ConfigDict(extra='forbid')

    address: str = Field(
        default="localhost:6379",
        description="Redis host:port"
    )
    password: str = Field(
        default="",
        description="Redis password, empty for none"
    )
    db: int = Field(
        default=0,
        ge=0,
        description="Redis database index"
    )
    subscribers_key: str = Field(
        default="subscribers",
        description="Redis Set key holding subscriber user ids"
    )
    replay_lock_prefix: str = Field(
        default="announcebot:replay",
        description="Key prefix for chat command replay locks"
    )
    replay_lock_ttl_seconds: float = Field(
        default=4.0,
        gt=0,
        le=60,
        description="Lifetime of a replay lock"
    )
    max_connections: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum connections in Redis pool"
    )
    socket_timeout: float = Field(
        default=5.0,
        ge=0.1,
        le=30.0,
        description="Socket timeout in seconds"
    )
    socket_connect_timeout: float = Field(
        default=5.0,
        ge=0.1,
        le=30.0,
        description="Connection timeout in seconds"
    )
    health_check_interval: int = Field(
        default=30,
        ge=0,
        le=300,
        description="Health check interval in seconds"
    )

    @validator('address')
    def validate_address(cls, v):
        host, port = _split_host_port(v, 6379)
        if not host:
            raise ValueError("Redis address must include a host")
        return v

    @property
    def host(self) -> str:
        return _split_host_port(self.address, 6379)[0]

    @property
    def port(self) -> int:
        return _split_host_port(self.address, 6379)[1]


class HipChatConfig(BaseModel):
    """Chat service credentials and connection behaviour."""
    model_config = ConfigDict(extra='forbid')

    api_host: str = Field(
        default="api.hipchat.com",
        description="Host of the chat REST API"
    )
    xmpp_host: str = Field(
        default="chat.hipchat.com:5222",
        description="host:port of the XMPP endpoint"
    )
    user: str = Field(
        default="",
        description="XMPP user (full JID or local part)"
    )
    password: str = Field(
        default="",
        description="XMPP password"
    )
    api_token: str = Field(
        ...,
        min_length=1,
        description="Bearer token for the REST API"
    )
    use_tls: bool = Field(
        default=False,
        description="Negotiate STARTTLS on the XMPP connection"
    )
    request_timeout: float = Field(
        default=10.0,
        ge=1.0,
        le=60.0,
        description="REST API request timeout in seconds"
    )
    heartbeat_interval: float = Field(
        default=30.0,
        gt=0,
        description="Seconds between XMPP pings"
    )
    connect_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for the XMPP session to start"
    )
    reconnect_max_attempts: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Consecutive reconnect attempts before giving up (0 = fail fast)"
    )
    reconnect_backoff_ms: int = Field(
        default=1000,
        ge=0,
        description="Initial reconnect backoff in milliseconds"
    )
    max_backoff_ms: int = Field(
        default=60000,
        ge=0,
        description="Maximum reconnect backoff in milliseconds"
    )

    @property
    def xmpp_address(self) -> Tuple[str, int]:
        return _split_host_port(self.xmpp_host, 5222)

    @property
    def jid(self) -> str:
        """Bot JID; a bare user name is qualified with the XMPP host."""
        if "@" in self.user:
            return self.user
        return f"{self.user}@{self.xmpp_address[0]}"


class RoomsConfig(BaseModel):
    """Room ids used by the bot."""
    model_config = ConfigDict(extra='forbid')

    announce_room: str = Field(
        default=NO_ROOM,
        description="Room that receives every announcement; -1 disables"
    )
    test_room: str = Field(
        ...,
        min_length=1,
        description="Room that receives test messages"
    )

    @validator('announce_room', 'test_room', pre=True)
    def room_id_as_string(cls, v):
        # YAML reads numeric room ids as ints
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class BroadcastConfig(BaseModel):
    """Announcement fan-out configuration."""
    model_config = ConfigDict(extra='forbid')

    max_concurrent_fanouts: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Announcements delivered to users at the same time"
    )
    shutdown_grace_seconds: float = Field(
        default=10.0,
        ge=0,
        description="How long shutdown waits for running fan-outs"
    )
    default_message: str = Field(
        default="Something important happened!",
        min_length=1,
        description="Text used by the default message producer"
    )


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    model_config = ConfigDict(extra='forbid')

    host: str = Field(
        default="0.0.0.0",
        description="Host to bind to"
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port to bind to"
    )
    log_level: str = Field(
        default="info",
        description="Uvicorn log level"
    )

    @validator('log_level')
    def validate_log_level(cls, v):
        valid_levels = ['critical', 'error', 'warning', 'info', 'debug', 'trace']
        if v.lower() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.lower()


class LoggingConfig(BaseModel):
    """Logging configuration."""
    model_config = ConfigDict(extra='forbid')

    level: str = Field(
        default="INFO",
        description="Logging level"
    )
    json_format: bool = Field(
        default=True,
        description="Enable JSON log formatting"
    )
    enable_correlation: bool = Field(
        default=True,
        description="Enable correlation IDs in logs"
    )

    @validator('level')
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()


class AppConfig(BaseModel):
    """Main application configuration."""
    model_config = ConfigDict(extra='forbid', frozen=True)

    hipchat: HipChatConfig
    rooms: RoomsConfig
    redis: RedisConfig = Field(default_factory=RedisConfig)
    broadcast: BroadcastConfig = Field(default_factory=BroadcastConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# Environment variable mappings
ENV_MAPPINGS = {
    'ANN_PORT': 'server.port',
    'ANN_HOST': 'server.host',
    'ANN_HIPCHAT_API_HOST': 'hipchat.api_host',
    'ANN_HIPCHAT_XMPP_HOST': 'hipchat.xmpp_host',
    'ANN_HIPCHAT_USER': 'hipchat.user',
    'ANN_HIPCHAT_PASSWORD': 'hipchat.password',
    'ANN_HIPCHAT_API_TOKEN': 'hipchat.api_token',
    'ANN_HIPCHAT_USE_TLS': 'hipchat.use_tls',
    'ANN_ANNOUNCE_ROOM': 'rooms.announce_room',
    'ANN_TEST_ROOM': 'rooms.test_room',
    'ANN_REDIS_ADDRESS': 'redis.address',
    'ANN_REDIS_PASSWORD': 'redis.password',
    'ANN_REDIS_DB': 'redis.db',
    'ANN_LOG_LEVEL': 'logging.level',
    'ANN_LOG_JSON': 'logging.json_format'
}


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load configuration from YAML file with environment variable overrides.

    The YAML file is optional; a deployment configured purely through
    ANN_* variables is valid as long as the required values are set.

    Args:
        config_path: Path to config file, defaults to CONFIG_PATH env var or ./config.yml

    Returns:
        Loaded and validated configuration

    Raises:
        ValueError: If YAML parsing or config validation fails
    """
    if config_path is None:
        config_path = os.getenv('CONFIG_PATH', './config.yml')

    config_file = Path(config_path)
    yaml_data: dict = {}

    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise ValueError(f"Invalid YAML config: {e}") from e

        logger.info(f"Loaded config from: {config_file}")
    else:
        logger.info(f"Config file not found: {config_file}, using environment only")

    yaml_data = _apply_env_overrides(yaml_data)

    # pydantic's ValidationError is a ValueError
    config = AppConfig(**yaml_data)

    logger.info(
        "Configuration loaded successfully",
        extra={
            "component": "config",
            "config_file": str(config_file),
            "redis_address": config.redis.address,
            "xmpp_host": config.hipchat.xmpp_host,
            "announce_room": config.rooms.announce_room,
            "server_port": config.server.port
        }
    )

    return config


def _apply_env_overrides(config_data: dict) -> dict:
    """
    Apply ANN_* environment variable overrides to config data.

    Values are kept as strings; the pydantic field types coerce them
    ("8080" -> 8080, "true" -> True) while room ids such as "-1" stay
    strings.

    Args:
        config_data: Base configuration data

    Returns:
        Configuration data with environment overrides applied
    """
    for env_var, config_path in ENV_MAPPINGS.items():
        env_value = os.getenv(env_var)
        if env_value is not None:
            _set_nested_value(config_data, config_path, env_value)
            logger.debug(f"Applied env override: {env_var} -> {config_path}")

    return config_data


def _set_nested_value(data: dict, path: str, value: str) -> None:
    """
    Set a nested dictionary value using dot notation.

    Args:
        data: Dictionary to modify
        path: Dot-separated path (e.g., 'redis.address')
        value: Value to set
    """
    keys = path.split('.')
    current = data

    # Navigate to parent of target key
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    current[keys[-1]] = value
