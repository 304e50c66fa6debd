"""The poll task and the watchdog task driving the session tracker."""

from typing import Callable

from ..dynamic_config import WatchdogConfig
from ..errors import AuthorityError
from ..logger import logger
from ..rcon import RconClient
from .governor import FailureGovernor
from .periodic import PeriodicTask
from .session_tracker import SessionTracker


class PollTask(PeriodicTask):
    """Polls the authority and feeds the result to the tracker."""

    def __init__(
        self,
        client: RconClient,
        tracker: SessionTracker,
        governor: FailureGovernor,
        config_provider: Callable[[], WatchdogConfig],
    ):
        self.client = client
        self.tracker = tracker
        self.governor = governor
        self._config_provider = config_provider
        super().__init__(
            name="authority poll task",
            tick=self.poll_once,
            interval_seconds=lambda: self._config_provider().poll_interval_ms / 1000,
        )

    async def poll_once(self) -> None:
        """Poll once and update the governor.

        The result is reconciled under the verdict in force before this poll;
        only afterwards is the success recorded. After an outage the first
        good answer restores trust without advancing anyone's last seen time.
        """
        try:
            online_players = await self.client.poll()
        except AuthorityError as e:
            await self.governor.record_failure(e, self.tracker.clock())
            return

        identities = await self.tracker.resolve_polled_identities(online_players)
        await self.tracker.reconcile(identities)
        await self.governor.record_success(online_players.online, self.tracker.clock())
        logger.debug(
            f"Authority reports {online_players.online}/{online_players.max} online"
        )


class WatchdogTask(PeriodicTask):
    """Evicts sessions whose last seen time went stale."""

    def __init__(
        self,
        tracker: SessionTracker,
        config_provider: Callable[[], WatchdogConfig],
    ):
        self.tracker = tracker
        self._config_provider = config_provider
        super().__init__(
            name="session watchdog task",
            tick=self.check_once,
            interval_seconds=lambda: self._config_provider().heartbeat_interval_ms
            / 1000,
        )

    async def check_once(self) -> None:
        await self.tracker.check_stale(self._config_provider().session_timeout_ms)
