"""Event type definitions."""

from enum import Enum


class EventType(str, Enum):
    """All event types in the system."""

    # Player events from logs
    PLAYER_JOINED = "player.joined"
    PLAYER_LEFT = "player.left"

    # Server log events
    SERVER_STOPPING = "server.stopping"

    # Session tracking events
    SESSION_ENDED = "session.ended"
    AUTHORITY_RELIABILITY_CHANGED = "authority.reliability_changed"
