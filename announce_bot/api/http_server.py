"""
HTTP server for announce-bot using FastAPI.
Provides the subscription, announcement and test endpoints.
"""

import logging
import time
from typing import Awaitable, Callable, List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from announce_bot.domain.ports import (
    SubscriberStore,
    StoreUnavailableError,
    MessageProducerError,
)
from announce_bot.domain.schema import (
    HealthStatus,
    SessionState,
    SubscribeOutcome,
    UnsubscribeOutcome,
)
from announce_bot.services.broadcaster import AnnouncementBroadcaster
from announce_bot.services.chat_session import ChatSession
from announce_bot.telemetry.logger import MetricsLogger


logger = logging.getLogger(__name__)

MessageProducer = Callable[[], Awaitable[str]]

ALREADY_SUBSCRIBED_TEXT = "User is already subscribed"
NOT_SUBSCRIBED_TEXT = "User is not subscribed"


def static_message_producer(text: str) -> MessageProducer:
    """Build a producer that always announces the same text."""
    async def produce() -> str:
        return text
    return produce


class AnnounceBotAPI:
    """
    FastAPI application for announce-bot.
    Handles subscription management and announcement triggers.
    """

    def __init__(
        self,
        store: SubscriberStore,
        broadcaster: AnnouncementBroadcaster,
        test_room: str,
        message_producer: MessageProducer,
        chat_session: Optional[ChatSession] = None,
        metrics: Optional[MetricsLogger] = None,
        title: str = "Announce Bot",
        version: str = "1.0.0"
    ):
        """
        Initialize FastAPI application.

        Args:
            store: Subscriber store
            broadcaster: Announcement broadcaster
            test_room: Room receiving POST /test messages
            message_producer: Async callable returning the announcement text;
                raises MessageProducerError when there is nothing to announce
            chat_session: Chat session, reported by the health endpoint
            metrics: Metrics logger for requests
            title: API title
            version: API version
        """
        self.store = store
        self.broadcaster = broadcaster
        self.test_room = test_room
        self.message_producer = message_producer
        self.chat_session = chat_session
        self.metrics = metrics or MetricsLogger()

        self.app = FastAPI(
            title=title,
            version=version,
            description="Relays announcements to a chat room and to subscribed users",
            docs_url="/docs",
            redoc_url="/redoc"
        )

        self._setup_middleware()
        self._setup_routes()
        self._setup_exception_handlers()

    def _setup_middleware(self) -> None:
        """Setup FastAPI middleware."""

        @self.app.middleware("http")
        async def log_requests(request: Request, call_next):
            start_time = time.time()
            response = await call_next(request)

            self.metrics.log_http_request(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=(time.time() - start_time) * 1000,
                client_ip=request.client.host if request.client else None
            )
            return response

    def _setup_routes(self) -> None:
        """Setup FastAPI routes."""

        @self.app.get(
            "/subscribers",
            response_model=List[str],
            summary="List subscribers"
        )
        async def list_subscribers() -> List[str]:
            return await self.store.list_subscribers()

        @self.app.put(
            "/subscriber/{user_id}",
            status_code=201,
            summary="Subscribe a user",
            responses={400: {"description": ALREADY_SUBSCRIBED_TEXT}}
        )
        async def subscribe(user_id: str) -> Response:
            outcome = await self.store.subscribe(user_id)
            if outcome is SubscribeOutcome.ALREADY_SUBSCRIBED:
                return PlainTextResponse(ALREADY_SUBSCRIBED_TEXT, status_code=400)
            return Response(status_code=201)

        @self.app.delete(
            "/subscriber/{user_id}",
            status_code=204,
            summary="Unsubscribe a user",
            responses={400: {"description": NOT_SUBSCRIBED_TEXT}}
        )
        async def unsubscribe(user_id: str) -> Response:
            outcome = await self.store.unsubscribe(user_id)
            if outcome is UnsubscribeOutcome.NOT_SUBSCRIBED:
                return PlainTextResponse(NOT_SUBSCRIBED_TEXT, status_code=400)
            return Response(status_code=204)

        @self.app.post(
            "/announce",
            status_code=204,
            summary="Trigger an announcement",
            description="Always 204; delivery to users continues in the background"
        )
        async def announce() -> Response:
            try:
                message = await self.message_producer()
            except MessageProducerError as e:
                logger.error(
                    f"No message generated for the announcement: {e}",
                    extra={"component": "http_server"}
                )
                return Response(status_code=204)

            try:
                await self.broadcaster.announce(message)
            except StoreUnavailableError as e:
                logger.error(
                    f"An error occurred while retrieving subscribers: {e}",
                    extra={"component": "http_server", "announcement": message}
                )
            return Response(status_code=204)

        @self.app.post(
            "/test",
            status_code=204,
            summary="Send a test message to the test room"
        )
        async def send_test() -> Response:
            await self.broadcaster.send_test_message(self.test_room)
            return Response(status_code=204)

        @self.app.get(
            "/debug/health",
            response_model=HealthStatus,
            summary="Health Check",
            description="Store connectivity and chat session state"
        )
        async def health_check():
            health_status = await self.store.check_health()

            if self.chat_session is not None:
                state = self.chat_session.state
                health_status.checks["chat_session"] = state.value
                if state is not SessionState.CONNECTED:
                    health_status.status = "unhealthy"

            if health_status.status != "healthy":
                logger.warning(
                    f"Service not healthy: {health_status.status}",
                    extra={"component": "http_server", "checks": health_status.checks}
                )
                return JSONResponse(
                    status_code=503,
                    content=health_status.model_dump(mode='json')
                )

            return health_status

    def _setup_exception_handlers(self) -> None:
        """Setup custom exception handlers."""

        @self.app.exception_handler(StoreUnavailableError)
        async def store_exception_handler(request: Request, exc: StoreUnavailableError):
            # Error detail stays server-side
            logger.error(
                f"Subscriber store unavailable: {exc}",
                extra={
                    "component": "http_server",
                    "method": request.method,
                    "path": request.url.path
                }
            )
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error"}
            )
