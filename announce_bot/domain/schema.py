"""
Domain schemas for announce-bot.
Defines chat events, subscription outcomes and delivery reports.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict


class SubscribeOutcome(str, Enum):
    """Result of a subscribe request."""
    CREATED = "created"
    ALREADY_SUBSCRIBED = "already_subscribed"


class UnsubscribeOutcome(str, Enum):
    """Result of an unsubscribe request."""
    REMOVED = "removed"
    NOT_SUBSCRIBED = "not_subscribed"


class SessionState(str, Enum):
    """Lifecycle states of the chat session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    TERMINATED = "terminated"


class ChatEvent(BaseModel):
    """An inbound event read from the chat connection."""
    model_config = ConfigDict(extra='forbid', frozen=True)

    kind: str = Field(..., description="Event type: chat, presence, iq, ...")
    sender: Optional[str] = Field(None, description="Full chat address of the sender")
    text: str = Field(default="", description="Message body, empty for non-message events")


class FanOutReport(BaseModel):
    """Outcome of delivering one announcement to individual subscribers."""
    model_config = ConfigDict(extra='forbid')

    message: str = Field(..., description="Announcement text")
    delivered: List[str] = Field(default_factory=list, description="User ids reached")
    failed: Dict[str, str] = Field(default_factory=dict, description="User id -> error")

    @property
    def attempted(self) -> int:
        return len(self.delivered) + len(self.failed)


class HealthStatus(BaseModel):
    """Health check response."""
    model_config = ConfigDict(extra='forbid')

    status: str = Field(..., description="overall status: healthy, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    checks: dict[str, str] = Field(default_factory=dict, description="Individual check results")
