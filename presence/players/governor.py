"""Failure governor deciding whether authority poll results are trusted."""

from datetime import datetime
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel

from ..dynamic_config import WatchdogConfig
from ..logger import logger

ReliabilityListener = Callable[[bool, int], Awaitable[None]]


class GovernorStatus(BaseModel):
    """Snapshot of the governor state for observability."""

    consecutive_failures: int
    max_consecutive_failures: int
    authority_reliable: bool
    last_poll_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_known_online_count: Optional[int] = None
    last_error: Optional[str] = None


class FailureGovernor:
    """Tracks consecutive poll failures of the authority.

    The authority is reliable while ``consecutive_failures`` stays below the
    configured ``max_consecutive_failures``. The threshold is read from the
    live configuration on every check.
    """

    def __init__(
        self,
        config_provider: Callable[[], WatchdogConfig],
        on_reliability_changed: Optional[ReliabilityListener] = None,
    ):
        """Initialize failure governor.

        Args:
            config_provider: Returns the current watchdog configuration
            on_reliability_changed: Awaited with (reliable, consecutive_failures)
                whenever the verdict flips
        """
        self._config_provider = config_provider
        self._on_reliability_changed = on_reliability_changed

        self.consecutive_failures = 0
        self.last_poll_at: Optional[datetime] = None
        self.last_success_at: Optional[datetime] = None
        self.last_known_online_count: Optional[int] = None
        self.last_error: Optional[str] = None

    @property
    def max_consecutive_failures(self) -> int:
        return self._config_provider().max_consecutive_failures

    @property
    def authority_reliable(self) -> bool:
        return self.consecutive_failures < self.max_consecutive_failures

    async def record_success(self, online_count: int, now: datetime) -> None:
        was_reliable = self.authority_reliable

        self.consecutive_failures = 0
        self.last_poll_at = now
        self.last_success_at = now
        self.last_known_online_count = online_count
        self.last_error = None

        if not was_reliable:
            logger.info("Authority answered again, poll results are trusted again")
            await self._notify()

    async def record_failure(self, error: Exception, now: datetime) -> None:
        was_reliable = self.authority_reliable

        self.consecutive_failures += 1
        self.last_poll_at = now
        self.last_error = f"{type(error).__name__}: {error}"

        logger.warning(
            f"Authority poll failed ({self.consecutive_failures} in a row): {self.last_error}"
        )

        if was_reliable and not self.authority_reliable:
            logger.warning(
                f"Authority failed {self.consecutive_failures} polls in a row, "
                "no longer advancing last seen times from poll results"
            )
            await self._notify()

    def snapshot(self) -> GovernorStatus:
        return GovernorStatus(
            consecutive_failures=self.consecutive_failures,
            max_consecutive_failures=self.max_consecutive_failures,
            authority_reliable=self.authority_reliable,
            last_poll_at=self.last_poll_at,
            last_success_at=self.last_success_at,
            last_known_online_count=self.last_known_online_count,
            last_error=self.last_error,
        )

    async def _notify(self) -> None:
        if self._on_reliability_changed is None:
            return
        try:
            await self._on_reliability_changed(
                self.authority_reliable, self.consecutive_failures
            )
        except Exception as e:
            logger.error(f"Error in reliability change listener: {e}", exc_info=True)
