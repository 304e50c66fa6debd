"""Session watchdog configuration."""

from typing import Annotated

from pydantic import Field

from ..schemas import BaseConfigSchema

SESSION_TIMEOUT_FLOOR_MS = 10_000


class WatchdogConfig(BaseConfigSchema):
    """
    Session watchdog and authority polling configuration.

    Read on every tick, so changes apply without a restart.
    """

    heartbeat_interval_ms: Annotated[
        int,
        Field(
            description="Interval between stale-session scans (ms)",
            ge=1_000,
        ),
    ] = 60_000

    session_timeout_ms: Annotated[
        int,
        Field(
            description="An online player unseen for longer than this is evicted (ms)",
            ge=SESSION_TIMEOUT_FLOOR_MS,
        ),
    ] = 180_000

    poll_interval_ms: Annotated[
        int,
        Field(
            description="Interval between authority polls (ms), should not exceed the heartbeat interval",
            ge=1_000,
        ),
    ] = 60_000

    max_consecutive_failures: Annotated[
        int,
        Field(
            description="Failed polls in a row after which poll results are no longer trusted",
            ge=1,
        ),
    ] = 3
