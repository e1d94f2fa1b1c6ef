"""
HipChat REST API client for announce-bot.
Sends room notifications and resolves user ids to XMPP addresses.
"""

import logging
from typing import Optional

import httpx
from httpx import HTTPError, HTTPStatusError, InvalidURL

from announce_bot.domain.ports import ChatAPI, RoomNotificationError, DirectoryLookupError


logger = logging.getLogger(__name__)


class HipChatAPIClient(ChatAPI):
    """
    httpx-based implementation of the ChatAPI interface (API v2).
    """

    def __init__(
        self,
        api_host: str,
        api_token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize REST API client.

        Args:
            api_host: API host, e.g. "api.hipchat.com"
            api_token: Bearer token
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.base_url = f"https://{api_host}/v2"

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers={
                "Authorization": f"Bearer {api_token}",
                "User-Agent": "announce-bot/1.0"
            },
            follow_redirects=True,
            limits=httpx.Limits(
                max_keepalive_connections=5,
                max_connections=10
            ),
            transport=transport
        )

    async def send_room_notification(self, room_id: str, message: str) -> None:
        """
        Post a plain-text notification to a room.

        Args:
            room_id: Room id or name
            message: Notification text

        Raises:
            RoomNotificationError: On HTTP or connection errors
        """
        try:
            response = await self.client.post(
                f"/room/{room_id}/notification",
                json={
                    "message": message,
                    "notify": True,
                    "message_format": "text"
                }
            )
            response.raise_for_status()

        except HTTPStatusError as e:
            raise RoomNotificationError(
                f"Room {room_id} notification rejected: HTTP {e.response.status_code}"
            ) from e

        except (HTTPError, InvalidURL) as e:
            raise RoomNotificationError(f"Room {room_id} notification failed: {e}") from e

        logger.debug(
            "Room notification sent",
            extra={"component": "hipchat_api", "room": room_id}
        )

    async def lookup_user_address(self, user_id: str) -> str:
        """
        Look up a user and return their XMPP JID.

        Args:
            user_id: User id, email or @mention name

        Returns:
            The user's XMPP address

        Raises:
            DirectoryLookupError: If the user is unknown or the call fails
        """
        try:
            response = await self.client.get(f"/user/{user_id}")
            response.raise_for_status()
            data = response.json()

        except HTTPStatusError as e:
            raise DirectoryLookupError(
                f"User {user_id} lookup failed: HTTP {e.response.status_code}"
            ) from e

        except (HTTPError, InvalidURL, ValueError) as e:
            raise DirectoryLookupError(f"User {user_id} lookup failed: {e}") from e

        jid = data.get("xmpp_jid") if isinstance(data, dict) else None
        if not jid:
            raise DirectoryLookupError(f"User {user_id} has no XMPP address")

        return jid

    async def close(self) -> None:
        """Close HTTP client and cleanup resources."""
        await self.client.aclose()
        logger.debug("HipChat API client closed")
