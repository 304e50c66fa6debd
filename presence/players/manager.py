"""Presence system context owning every tracking component."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from ..config import Settings
from ..db.database import create_engine, create_session_factory, init_db
from ..dynamic_config import (
    SESSION_TIMEOUT_FLOOR_MS,
    WATCHDOG_MODULE,
    ConfigManager,
    WatchdogConfig,
)
from ..errors import ConfigurationError
from ..events import EventDispatcher
from ..events.base import AuthorityReliabilityChangedEvent
from ..logger import logger
from ..rcon import RconClient
from .governor import FailureGovernor
from .identity import IdentityResolver
from .session_tracker import REASON_SHUTDOWN, SessionTracker
from .store import PlayerStore
from .tasks import PollTask, WatchdogTask


class PresenceSystem:
    """Wires the store, authority client, governor, tracker and tasks together.

    Built once at startup and handed to whoever needs it; there is no
    module-level instance.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        rcon_client: RconClient,
        identity_resolver: IdentityResolver,
        write_retries: int = 3,
        retry_delay_seconds: float = 0.2,
        event_dispatcher: Optional[EventDispatcher] = None,
    ):
        self.engine = engine
        self.session_factory = create_session_factory(engine)
        self.event_dispatcher = event_dispatcher or EventDispatcher()

        self.config_manager = ConfigManager(self.session_factory)
        self.config_manager.register_config(WATCHDOG_MODULE, WatchdogConfig)

        self.store = PlayerStore(
            self.session_factory,
            write_retries=write_retries,
            retry_delay_seconds=retry_delay_seconds,
        )
        self.rcon_client = rcon_client
        self.identity_resolver = identity_resolver
        self.governor = FailureGovernor(
            config_provider=self.get_watchdog_config,
            on_reliability_changed=self._reliability_changed,
        )
        self.session_tracker = SessionTracker(
            store=self.store,
            identity_resolver=self.identity_resolver,
            governor=self.governor,
            event_dispatcher=self.event_dispatcher,
        )

        self.poll_task = PollTask(
            client=self.rcon_client,
            tracker=self.session_tracker,
            governor=self.governor,
            config_provider=self.get_watchdog_config,
        )
        self.watchdog_task = WatchdogTask(
            tracker=self.session_tracker,
            config_provider=self.get_watchdog_config,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "PresenceSystem":
        """Build a system from static settings."""
        return cls(
            engine=create_engine(settings.database_url),
            rcon_client=RconClient(
                host=settings.rcon.host,
                port=settings.rcon.port,
                password=settings.rcon.password,
                timeout_seconds=settings.rcon.timeout_seconds,
            ),
            identity_resolver=IdentityResolver(
                api_url=settings.identity.api_url,
                timeout_seconds=settings.identity.timeout_seconds,
                cache_ttl_seconds=settings.identity.cache_ttl_seconds,
            ),
            write_retries=settings.store.write_retries,
            retry_delay_seconds=settings.store.retry_delay_seconds,
        )

    async def start(self, start_tasks: bool = True) -> None:
        """Start presence tracking.

        Args:
            start_tasks: Whether to start the poll and watchdog tasks. When
                False the caller drives the ticks itself.
        """
        logger.info("Starting presence system...")

        await init_db(self.engine)
        await self.config_manager.initialize_all_configs()
        await self.session_tracker.recover_open_sessions()

        config = self.get_watchdog_config()
        logger.info(
            f"Watchdog config: heartbeat {config.heartbeat_interval_ms}ms, "
            f"timeout {config.session_timeout_ms}ms, poll {config.poll_interval_ms}ms, "
            f"max failures {config.max_consecutive_failures}"
        )

        if start_tasks:
            await self.poll_task.start()
            await self.watchdog_task.start()
        logger.info("Presence system started")

    async def stop(self) -> None:
        """Stop tasks and close every open session before releasing resources."""
        logger.info("Stopping presence system...")

        await self.poll_task.stop()
        await self.watchdog_task.stop()

        try:
            await self.session_tracker.end_all_sessions(REASON_SHUTDOWN)
            await self.session_tracker.flush_events()
        finally:
            await self.rcon_client.close()
            await self.identity_resolver.aclose()
            await self.engine.dispose()

        logger.info("Presence system stopped")

    # Runtime configuration

    def get_watchdog_config(self) -> WatchdogConfig:
        return self.config_manager.get_typed(WATCHDOG_MODULE, WatchdogConfig)

    async def update_watchdog_config(self, **changes) -> WatchdogConfig:
        """Apply a partial update to the watchdog configuration.

        Raises:
            ConfigurationError: If a value is below its floor
        """
        new_config = await self.config_manager.update_config(WATCHDOG_MODULE, changes)
        assert isinstance(new_config, WatchdogConfig)

        if new_config.poll_interval_ms > new_config.heartbeat_interval_ms:
            logger.warning(
                f"Poll interval {new_config.poll_interval_ms}ms exceeds heartbeat "
                f"interval {new_config.heartbeat_interval_ms}ms, sessions may be "
                "evicted between polls"
            )
        return new_config

    async def set_session_timeout(self, ms: int) -> WatchdogConfig:
        if ms < SESSION_TIMEOUT_FLOOR_MS:
            raise ConfigurationError(
                f"Session timeout {ms}ms is below the minimum of {SESSION_TIMEOUT_FLOOR_MS}ms"
            )
        return await self.update_watchdog_config(session_timeout_ms=ms)

    async def set_heartbeat_interval(self, ms: int) -> WatchdogConfig:
        return await self.update_watchdog_config(heartbeat_interval_ms=ms)

    async def set_poll_interval(self, ms: int) -> WatchdogConfig:
        return await self.update_watchdog_config(poll_interval_ms=ms)

    async def set_max_consecutive_failures(self, n: int) -> WatchdogConfig:
        return await self.update_watchdog_config(max_consecutive_failures=n)

    async def _reliability_changed(self, reliable: bool, consecutive_failures: int) -> None:
        await self.event_dispatcher.dispatch_authority_reliability_changed(
            AuthorityReliabilityChangedEvent(
                reliable=reliable, consecutive_failures=consecutive_failures
            )
        )
