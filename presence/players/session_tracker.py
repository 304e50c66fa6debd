"""Session tracking: reconciles join/leave events with authority polls."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from ..events.base import (
    PlayerJoinedEvent,
    PlayerLeftEvent,
    ServerStoppingEvent,
    SessionEndedEvent,
)
from ..events.dispatcher import EventDispatcher
from ..logger import log_exception, logger
from ..models import Player
from ..rcon import OnlinePlayers
from .governor import FailureGovernor
from .identity import IdentityResolver
from .store import PlayerStore

REASON_LEAVE = "leave"
REASON_REJOIN = "rejoin"
REASON_WATCHDOG = "watchdog-timeout"
REASON_SHUTDOWN = "shutdown"
REASON_SERVER_STOPPING = "server-stopping"
REASON_RECOVERY = "recovery"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionTracker:
    """Tracks player sessions.

    Join and leave events are always applied. Poll results only advance
    ``last_seen_at`` while the failure governor trusts the authority, and
    the watchdog scan evicts sessions whose ``last_seen_at`` went stale.
    Session ends are announced to listeners in the background, in order.
    """

    def __init__(
        self,
        store: PlayerStore,
        identity_resolver: IdentityResolver,
        governor: FailureGovernor,
        event_dispatcher: EventDispatcher,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize session tracker.

        Args:
            store: Persistent player store
            identity_resolver: Maps display names to identities on join
            governor: Decides whether poll results are trusted
            event_dispatcher: Event dispatcher for listening to and emitting events
            clock: Source of the current time
        """
        self.store = store
        self.identity_resolver = identity_resolver
        self.governor = governor
        self.event_dispatcher = event_dispatcher
        self.clock = clock
        self._last_notification: Optional[asyncio.Task] = None

        # Register event handlers
        self.event_dispatcher.on_player_joined(self._handle_player_joined)
        self.event_dispatcher.on_player_left(self._handle_player_left)
        self.event_dispatcher.on_server_stopping(self._handle_server_stopping)

    # State transitions

    async def on_join(self, player_name: str) -> Optional[Player]:
        """Open a new session for a player.

        A player that is still online from an earlier join gets that session
        closed at this instant first, so no playtime is lost or counted twice.

        Returns:
            The player record after the join
        """
        uuid = await self.identity_resolver.resolve(player_name)
        now = self.clock()

        # Closes a session left open by a re-login without an observed leave
        prior = await self.store.begin_session(uuid, player_name, now)
        if prior is not None:
            logger.warning(
                f"{player_name} joined while already online, closed previous session ({prior}ms)"
            )
            self._session_ended(uuid, player_name, prior, REASON_REJOIN)

        logger.info(f"Player joined: {player_name} ({uuid})")
        return await self.store.get_by_identity(uuid)

    async def on_leave(self, uuid: str, reason: str = REASON_LEAVE) -> int:
        """Close the open session of a player.

        Returns:
            Length of the closed session in ms, 0 if the player was offline
        """
        duration = await self._close(uuid, reason, self.clock())
        return duration or 0

    async def on_leave_by_name(self, player_name: str, reason: str = REASON_LEAVE) -> int:
        """Close a session given only the display name from a log line."""
        player = await self.store.get_by_display_name(player_name)
        if player is None:
            logger.warning(f"Leave event for unknown player: {player_name}")
            return 0
        return await self.on_leave(player.uuid, reason)

    async def reconcile(self, online_identities: Iterable[str]) -> int:
        """Merge poll evidence into the store.

        Online players present in ``online_identities`` get ``last_seen_at``
        advanced. Players missing from the set are left to age; eviction is
        the watchdog's decision.

        Returns:
            Number of players whose last seen time was advanced
        """
        online_identities = set(online_identities)
        if not self.governor.authority_reliable:
            logger.info(
                f"Authority unreliable ({self.governor.consecutive_failures} failures), "
                f"ignoring poll result with {len(online_identities)} players"
            )
            return 0

        touched = await self.store.touch_last_seen_many(online_identities, self.clock())
        logger.debug(
            f"Reconciled poll result: {len(online_identities)} reported, {touched} sessions refreshed"
        )
        return touched

    async def resolve_polled_identities(self, online_players: OnlinePlayers) -> set[str]:
        """Map a poll result to identities without network I/O.

        Uses the identities the server reports plus those of stored players
        known under the reported names, which covers records created with a
        fallback identity.
        """
        identities = {
            player.uuid for player in online_players.players if player.uuid is not None
        }
        identities |= await self.store.get_identities_by_display_names(
            online_players.names
        )
        return identities

    async def check_stale(self, timeout_ms: int) -> List[str]:
        """Evict online players not seen for more than ``timeout_ms``.

        Returns:
            Identities that were evicted by this call
        """
        now = self.clock()
        seen_before = now - timedelta(milliseconds=timeout_ms)
        stale = await self.store.get_stale_online(timeout_ms, now)

        evicted = []
        for player in stale:
            duration = await self._close(
                player.uuid, REASON_WATCHDOG, now, seen_before=seen_before
            )
            if duration is not None:
                evicted.append(player.uuid)

        if evicted:
            logger.warning(
                f"Watchdog evicted {len(evicted)} stale sessions (timeout {timeout_ms}ms)"
            )
        return evicted

    async def end_all_sessions(self, reason: str = REASON_SHUTDOWN) -> int:
        """Close every open session.

        Returns:
            Number of sessions closed
        """
        now = self.clock()
        closed = 0
        for player in await self.store.get_all_online():
            if await self._close(player.uuid, reason, now) is not None:
                closed += 1

        logger.info(f"Closed {closed} open sessions ({reason})")
        return closed

    async def recover_open_sessions(self) -> int:
        """Close sessions a previous process left open.

        Each is closed at its last seen time, the last moment the player is
        known to have been online.
        """
        recovered = 0
        for player in await self.store.get_all_online():
            if (
                await self._close(player.uuid, REASON_RECOVERY, player.last_seen_at)
                is not None
            ):
                recovered += 1

        if recovered:
            logger.warning(f"Recovered {recovered} sessions left open by a previous run")
        return recovered

    async def flush_events(self) -> None:
        """Wait until listeners have seen every session end emitted so far."""
        if self._last_notification is not None:
            await self._last_notification

    # Read side

    async def is_online(self, uuid: str) -> bool:
        player = await self.store.get_by_identity(uuid)
        return player is not None and player.is_online

    async def online_count(self) -> int:
        return await self.store.count_online()

    async def online_identities(self) -> set[str]:
        return await self.store.get_online_identities()

    async def get_player(self, uuid: str) -> Optional[Player]:
        return await self.store.get_by_identity(uuid)

    async def list_players(self) -> List[Player]:
        return await self.store.get_all_ordered_by_cumulative_time()

    # Internals

    async def _close(
        self,
        uuid: str,
        reason: str,
        now: datetime,
        seen_before: Optional[datetime] = None,
    ) -> Optional[int]:
        duration = await self.store.close_session(uuid, now, seen_before=seen_before)
        if duration is None:
            logger.debug(f"No open session to close for {uuid} ({reason})")
            return None

        player = await self.store.get_by_identity(uuid)
        player_name = player.display_name if player else uuid
        logger.info(f"Ended session for {player_name} ({duration}ms, {reason})")
        self._session_ended(uuid, player_name, duration, reason)
        return duration

    def _session_ended(
        self, uuid: str, player_name: str, duration: int, reason: str
    ) -> None:
        # Listeners run in the background, one event after the other
        event = SessionEndedEvent(
            uuid=uuid,
            player_name=player_name,
            duration_ms=duration,
            reason=reason,
        )
        self._last_notification = asyncio.create_task(
            self._notify_session_ended(event, self._last_notification)
        )

    async def _notify_session_ended(
        self, event: SessionEndedEvent, previous: Optional[asyncio.Task]
    ) -> None:
        if previous is not None:
            await previous
        try:
            await self.event_dispatcher.dispatch_session_ended(event)
        except Exception as e:
            logger.error(
                f"Error dispatching session end of {event.uuid}: {e}", exc_info=True
            )

    # Event handlers

    @log_exception("Error in session join handler")
    async def _handle_player_joined(self, event: PlayerJoinedEvent) -> None:
        await self.on_join(event.player_name)

    @log_exception("Error in session leave handler")
    async def _handle_player_left(self, event: PlayerLeftEvent) -> None:
        await self.on_leave_by_name(event.player_name, event.reason or REASON_LEAVE)

    @log_exception("Error in server stopping handler")
    async def _handle_server_stopping(self, event: ServerStoppingEvent) -> None:
        await self.end_all_sessions(REASON_SERVER_STOPPING)
