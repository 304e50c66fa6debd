"""
Event system for the presence tracker.

Provides an event dispatcher for asynchronous event handling between the
log parser, the session tracker and the failure governor.
"""

from .base import BaseEvent
from .dispatcher import EventDispatcher
from .types import EventType

__all__ = [
    "BaseEvent",
    "EventDispatcher",
    "EventType",
]
