"""
Main application module for announce-bot.
Implements dependency injection and service composition.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn

from announce_bot.config import load_config, AppConfig
from announce_bot.telemetry.logger import setup_logging, MetricsLogger

# Adapter imports
from announce_bot.infra.redis_client import RedisClient
from announce_bot.infra.redis_store import RedisSubscriberStore
from announce_bot.infra.hipchat_api import HipChatAPIClient
from announce_bot.infra.xmpp_transport import XMPPTransport

# Service imports
from announce_bot.services.commands import CommandRouter
from announce_bot.services.chat_session import ChatSession
from announce_bot.services.broadcaster import AnnouncementBroadcaster
from announce_bot.api.http_server import AnnounceBotAPI, MessageProducer, static_message_producer
from announce_bot.domain.ports import ChatSessionTerminatedError


logger = logging.getLogger(__name__)


class AnnounceBotService:
    """
    Main service class that composes all dependencies.
    Every collaborator is built here and handed to its users explicitly;
    nothing is kept in module-level state.
    """

    def __init__(
        self,
        config: AppConfig,
        message_producer: Optional[MessageProducer] = None
    ):
        """
        Initialize service with configuration.

        Args:
            config: Application configuration
            message_producer: Announcement text source; defaults to the
                configured static message
        """
        self.config = config
        self.message_producer = message_producer or static_message_producer(
            config.broadcast.default_message
        )

        # Dependencies (will be initialized in setup)
        self.redis_client: Optional[RedisClient] = None
        self.store: Optional[RedisSubscriberStore] = None
        self.chat_api: Optional[HipChatAPIClient] = None
        self.router: Optional[CommandRouter] = None
        self.chat_session: Optional[ChatSession] = None
        self.broadcaster: Optional[AnnouncementBroadcaster] = None
        self.api: Optional[AnnounceBotAPI] = None

    def _create_transport(self) -> XMPPTransport:
        host, port = self.config.hipchat.xmpp_address
        return XMPPTransport(
            jid=self.config.hipchat.jid,
            password=self.config.hipchat.password,
            host=host,
            port=port,
            use_tls=self.config.hipchat.use_tls,
            connect_timeout=self.config.hipchat.connect_timeout
        )

    async def setup(self) -> None:
        """
        Setup all service dependencies.

        Raises:
            Exception: If setup fails
        """
        try:
            logger.info("Setting up announce-bot service")
            metrics = MetricsLogger()

            self.redis_client = RedisClient.from_config(self.config.redis)
            await self.redis_client.connect()

            self.store = RedisSubscriberStore(
                redis_client=self.redis_client,
                subscribers_key=self.config.redis.subscribers_key,
                replay_lock_prefix=self.config.redis.replay_lock_prefix
            )

            self.chat_api = HipChatAPIClient(
                api_host=self.config.hipchat.api_host,
                api_token=self.config.hipchat.api_token,
                timeout=self.config.hipchat.request_timeout
            )

            self.router = CommandRouter(
                store=self.store,
                replay_ttl_seconds=self.config.redis.replay_lock_ttl_seconds,
                metrics=metrics
            )

            self.chat_session = ChatSession(
                transport_factory=self._create_transport,
                router=self.router,
                heartbeat_interval=self.config.hipchat.heartbeat_interval,
                reconnect_max_attempts=self.config.hipchat.reconnect_max_attempts,
                reconnect_backoff_ms=self.config.hipchat.reconnect_backoff_ms,
                max_backoff_ms=self.config.hipchat.max_backoff_ms
            )

            self.broadcaster = AnnouncementBroadcaster(
                store=self.store,
                chat_api=self.chat_api,
                chat_sender=self.chat_session,
                announce_room=self.config.rooms.announce_room,
                max_concurrent_fanouts=self.config.broadcast.max_concurrent_fanouts,
                metrics=metrics
            )

            self.api = AnnounceBotAPI(
                store=self.store,
                broadcaster=self.broadcaster,
                test_room=self.config.rooms.test_room,
                message_producer=self.message_producer,
                chat_session=self.chat_session,
                metrics=metrics,
                title="Announce Bot",
                version="1.0.0"
            )

            logger.info("Service setup completed successfully")

        except Exception as e:
            logger.error(f"Service setup failed: {e}")
            await self.cleanup()
            raise

    async def cleanup(self) -> None:
        """Cleanup service resources."""
        logger.info("Cleaning up service resources")

        try:
            if self.chat_session:
                await self.chat_session.stop()

            if self.broadcaster:
                await self.broadcaster.close(
                    timeout=self.config.broadcast.shutdown_grace_seconds
                )

            if self.chat_api:
                await self.chat_api.close()

            if self.redis_client:
                await self.redis_client.close()

            logger.info("Service cleanup completed")

        except Exception as e:
            logger.error(f"Error during cleanup: {e}")

    async def run(self) -> None:
        """
        Run the HTTP server and the chat session side by side.

        Returns when the HTTP server exits (e.g. on SIGTERM).

        Raises:
            ChatSessionTerminatedError: If the chat session gives up
        """
        if not self.api or not self.chat_session:
            raise RuntimeError("Service not setup. Call setup() first.")

        logger.info(
            f"Starting announce-bot on {self.config.server.host}:{self.config.server.port}"
        )

        server_config = uvicorn.Config(
            app=self.api.app,
            host=self.config.server.host,
            port=self.config.server.port,
            log_level=self.config.server.log_level,
            access_log=True
        )
        server = uvicorn.Server(server_config)

        logger.info("Starting chat client")
        chat_task = asyncio.create_task(self.chat_session.run(), name="chat-session")
        server_task = asyncio.create_task(server.serve(), name="http-server")

        done, _ = await asyncio.wait(
            {chat_task, server_task},
            return_when=asyncio.FIRST_COMPLETED
        )

        if chat_task in done:
            # Chat session ended on its own: bring the HTTP server down too
            server.should_exit = True
            await server_task
            chat_task.result()
        else:
            await self.chat_session.stop()
            chat_task.cancel()
            await asyncio.gather(chat_task, return_exceptions=True)
            server_task.result()

    @asynccontextmanager
    async def lifespan(self):
        """
        Context manager for service lifecycle.

        Handles setup and cleanup automatically.
        """
        try:
            await self.setup()
            yield self
        finally:
            await self.cleanup()


async def main() -> None:
    """
    Main entry point for the application.
    """
    try:
        config = load_config()
    except ValueError as e:
        # Logging is not configured yet
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(
        level=config.logging.level,
        service_name="announce-bot",
        enable_json=config.logging.json_format,
        enable_correlation=config.logging.enable_correlation
    )

    try:
        async with AnnounceBotService(config).lifespan() as service:
            await service.run()

    except KeyboardInterrupt:
        logger.info("Service interrupted by user")
    except ChatSessionTerminatedError as e:
        logger.critical(f"Chat session terminated: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Service failed: {e}")
        sys.exit(1)


def cli() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
