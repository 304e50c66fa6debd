"""
Player presence tracking.

Tracks player sessions from join/leave events and authority polls.
"""

from .formatting import format_duration
from .governor import FailureGovernor, GovernorStatus
from .identity import IdentityResolver, fallback_uuid
from .manager import PresenceSystem
from .periodic import PeriodicTask
from .session_tracker import SessionTracker
from .store import PlayerStore
from .tasks import PollTask, WatchdogTask

__all__ = [
    "PresenceSystem",
    "SessionTracker",
    "PlayerStore",
    "FailureGovernor",
    "GovernorStatus",
    "IdentityResolver",
    "fallback_uuid",
    "PeriodicTask",
    "PollTask",
    "WatchdogTask",
    "format_duration",
]
