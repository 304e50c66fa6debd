"""Base event model for all events."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from .types import EventType


class BaseEvent(BaseModel):
    """Base class for all events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# Player events from logs
class PlayerJoinedEvent(BaseEvent):
    """Fired when a player joins the server."""

    event_type: EventType = EventType.PLAYER_JOINED
    player_name: str = Field(..., description="Player display name")


class PlayerLeftEvent(BaseEvent):
    """Fired when a player leaves the server."""

    event_type: EventType = EventType.PLAYER_LEFT
    player_name: str = Field(..., description="Player display name")
    reason: str = Field(default="leave", description="Disconnect reason")


# Server log events
class ServerStoppingEvent(BaseEvent):
    """Fired when server shutdown is detected in logs."""

    event_type: EventType = EventType.SERVER_STOPPING


# Session tracking events
class SessionEndedEvent(BaseEvent):
    """Fired after a session was closed and its playtime recorded."""

    event_type: EventType = EventType.SESSION_ENDED
    uuid: str = Field(..., description="Player identity")
    player_name: str = Field(..., description="Player display name")
    duration_ms: int = Field(..., description="Length of the closed session")
    reason: str = Field(..., description="What closed the session")


class AuthorityReliabilityChangedEvent(BaseEvent):
    """Fired when the failure governor starts or stops trusting poll results."""

    event_type: EventType = EventType.AUTHORITY_RELIABILITY_CHANGED
    reliable: bool = Field(..., description="Whether poll results are trusted")
    consecutive_failures: int = Field(..., description="Current failure streak")
