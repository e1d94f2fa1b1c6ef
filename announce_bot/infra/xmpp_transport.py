"""
XMPP transport for announce-bot built on slixmpp.

slixmpp is callback driven; this adapter turns it into the pull-style
ChatTransport interface by pushing inbound stanzas onto an asyncio.Queue
that recv() drains.
"""

import asyncio
import inspect
import logging
from typing import Optional

import slixmpp
from slixmpp.exceptions import IqError, IqTimeout

from announce_bot.domain.ports import (
    ChatTransport,
    ChatConnectError,
    ChatReadError,
    ChatSendError,
)
from announce_bot.domain.schema import ChatEvent


logger = logging.getLogger(__name__)

# Queued when the stream goes away so a pending recv() wakes up
_DISCONNECTED = None


class XMPPTransport(ChatTransport):
    """
    One XMPP client connection.

    All slixmpp I/O happens on the running event loop, so the receive loop,
    the heartbeat and reply sends share the connection without extra locking.
    """

    def __init__(
        self,
        jid: str,
        password: str,
        host: str,
        port: int = 5222,
        use_tls: bool = False,
        connect_timeout: float = 30.0,
        ping_timeout: float = 10.0
    ):
        """
        Initialize XMPP transport.

        Args:
            jid: Bot JID
            password: Bot password
            host: XMPP server host
            port: XMPP server port
            use_tls: Negotiate STARTTLS; when False the stream stays plaintext
            connect_timeout: Seconds to wait for session start
            ping_timeout: Seconds to wait for a ping reply
        """
        self.jid = jid
        self.password = password
        self.host = host
        self.port = port
        self.use_tls = use_tls
        self.connect_timeout = connect_timeout
        self.ping_timeout = ping_timeout

        self._client: Optional[slixmpp.ClientXMPP] = None
        self._events: asyncio.Queue = asyncio.Queue()
        self._session_started: Optional[asyncio.Future] = None
        self._connected = False

    async def connect(self) -> None:
        """
        Connect, authenticate and announce presence.

        Raises:
            ChatConnectError: If the session does not start in time
        """
        loop = asyncio.get_running_loop()
        self._session_started = loop.create_future()

        client = slixmpp.ClientXMPP(self.jid, self.password)
        client.register_plugin('xep_0199')  # XMPP Ping

        client.enable_starttls = self.use_tls
        client.enable_direct_tls = False
        client.enable_plaintext = not self.use_tls
        if not self.use_tls:
            client.plugin['feature_mechanisms'].unencrypted_plain = True

        client.add_event_handler("session_start", self._on_session_start)
        client.add_event_handler("message", self._on_message)
        client.add_event_handler("disconnected", self._on_disconnected)
        client.add_event_handler("failed_auth", self._on_failed_auth)
        client.add_event_handler("connection_failed", self._on_connection_failed)

        self._client = client
        client.connect(host=self.host, port=self.port)

        try:
            await asyncio.wait_for(
                asyncio.shield(self._session_started),
                timeout=self.connect_timeout
            )
        except asyncio.TimeoutError as e:
            # Nothing awaits the future after this point
            self._session_started.cancel()
            await self.close()
            raise ChatConnectError(
                f"XMPP session to {self.host}:{self.port} did not start "
                f"within {self.connect_timeout}s"
            ) from e
        except ChatConnectError:
            await self.close()
            raise

        logger.info(
            "XMPP session started",
            extra={
                "component": "xmpp_transport",
                "jid": self.jid,
                "host": self.host,
                "port": self.port,
                "tls": self.use_tls
            }
        )

    async def recv(self) -> ChatEvent:
        event = await self._events.get()
        if event is _DISCONNECTED:
            raise ChatReadError("XMPP stream disconnected")
        return event

    async def send(self, address: str, text: str) -> None:
        if not self._client or not self._connected:
            raise ChatSendError("XMPP transport is not connected")

        try:
            self._client.send_message(mto=address, mbody=text, mtype='chat')
        except Exception as e:
            raise ChatSendError(f"Failed to send message to {address}: {e}") from e

    async def ping(self) -> None:
        if not self._client or not self._connected:
            raise ChatSendError("XMPP transport is not connected")

        try:
            await self._client.plugin['xep_0199'].ping(
                jid=self._client.boundjid.domain,
                timeout=self.ping_timeout
            )
        except (IqError, IqTimeout) as e:
            raise ChatSendError(f"XMPP ping failed: {e}") from e

    async def close(self) -> None:
        client, self._client = self._client, None
        self._connected = False
        if client is None:
            return

        try:
            result = client.disconnect()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Error while disconnecting XMPP client: {e}")

        logger.info("XMPP connection closed", extra={"component": "xmpp_transport"})

    async def _on_session_start(self, _event) -> None:
        self._client.send_presence()
        try:
            await self._client.get_roster()
        except (IqError, IqTimeout) as e:
            logger.warning(f"Could not fetch roster: {e}")

        self._connected = True
        if not self._session_started.done():
            self._session_started.set_result(True)

    def _on_message(self, msg) -> None:
        self._events.put_nowait(ChatEvent(
            kind=msg['type'] or "normal",
            sender=str(msg['from']),
            text=msg['body'] or ""
        ))

    def _on_disconnected(self, _event) -> None:
        was_connected = self._connected
        self._connected = False
        if self._session_started and not self._session_started.done():
            self._session_started.set_exception(ChatConnectError("XMPP stream closed during login"))
        if was_connected:
            self._events.put_nowait(_DISCONNECTED)

    def _on_failed_auth(self, _event) -> None:
        if self._session_started and not self._session_started.done():
            self._session_started.set_exception(ChatConnectError(f"XMPP authentication failed for {self.jid}"))

    def _on_connection_failed(self, error) -> None:
        if self._session_started and not self._session_started.done():
            self._session_started.set_exception(ChatConnectError(f"XMPP connection failed: {error}"))
