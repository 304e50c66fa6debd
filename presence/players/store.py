"""Persistent player store.

Wraps the CRUD functions with per-identity serialization and write retries.
Every call uses its own short-lived database session.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    TypeVar,
)

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import StoreUnavailable
from ..logger import logger
from ..models import Player
from . import crud

T = TypeVar("T")


def _utc(now: datetime) -> datetime:
    # SQLite keeps wall-clock text without an offset
    return now.astimezone(timezone.utc)


class PlayerStore:
    """Durable table of player records keyed by identity."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        write_retries: int = 3,
        retry_delay_seconds: float = 0.2,
    ):
        """Initialize player store.

        Args:
            session_factory: Factory for database sessions
            write_retries: Attempts per write before StoreUnavailable is raised
            retry_delay_seconds: Base delay between attempts, grows linearly
        """
        self._session_factory = session_factory
        self.write_retries = write_retries
        self.retry_delay_seconds = retry_delay_seconds
        # Per-identity locks, dropped once no caller holds or waits on them
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    # Writes

    async def upsert(self, uuid: str, display_name: str, now: datetime) -> None:
        async with self._identity_lock(uuid):
            await self._write(
                f"upsert {uuid}",
                lambda session: crud.upsert_player(
                    session, uuid, display_name, _utc(now)
                ),
            )

    async def start_session(self, uuid: str, now: datetime) -> bool:
        async with self._identity_lock(uuid):
            return await self._write(
                f"start session {uuid}",
                lambda session: crud.start_session(session, uuid, _utc(now)),
            )

    async def begin_session(
        self, uuid: str, display_name: str, now: datetime
    ) -> Optional[int]:
        """Record a join in one step under the identity's lock.

        Upserts the player, closes a session still open from an earlier join
        at ``now`` and opens a new one.

        Returns:
            Duration in ms of the session that was still open, None if there
            was none
        """
        async with self._identity_lock(uuid):
            await self._write(
                f"upsert {uuid}",
                lambda session: crud.upsert_player(
                    session, uuid, display_name, _utc(now)
                ),
            )
            prior = await self._write(
                f"end session {uuid}",
                lambda session: crud.end_session(session, uuid, _utc(now)),
            )
            await self._write(
                f"start session {uuid}",
                lambda session: crud.start_session(session, uuid, _utc(now)),
            )
        return prior

    async def end_session(self, uuid: str, now: datetime) -> int:
        """Close the open session of a player.

        Returns:
            Duration in ms, 0 if no session was open
        """
        return await self.close_session(uuid, now) or 0

    async def close_session(
        self, uuid: str, now: datetime, seen_before: Optional[datetime] = None
    ) -> Optional[int]:
        """Close the open session of a player, telling "closed" from "no-op".

        Args:
            uuid: Player identity
            now: End time of the session
            seen_before: Only close if the player was last seen before this

        Returns:
            Duration in ms, None if no session was closed
        """
        seen_before = _utc(seen_before) if seen_before is not None else None
        async with self._identity_lock(uuid):
            return await self._write(
                f"end session {uuid}",
                lambda session: crud.end_session(
                    session, uuid, _utc(now), seen_before
                ),
            )

    async def touch_last_seen(self, uuid: str, now: datetime) -> bool:
        async with self._identity_lock(uuid):
            return await self._write(
                f"touch {uuid}",
                lambda session: crud.touch_last_seen(session, uuid, _utc(now)),
            )

    async def touch_last_seen_many(self, uuids: Iterable[str], now: datetime) -> int:
        """Advance last seen for the online players among ``uuids``.

        Runs as one UPDATE statement, which the database applies atomically.
        """
        uuids = sorted(set(uuids))
        return await self._write(
            f"touch {len(uuids)} players",
            lambda session: crud.touch_online_last_seen(session, uuids, _utc(now)),
        )

    # Reads

    async def get_by_identity(self, uuid: str) -> Optional[Player]:
        return await self._read(
            lambda session: crud.get_player_by_uuid(session, uuid)
        )

    async def get_by_display_name(self, display_name: str) -> Optional[Player]:
        return await self._read(
            lambda session: crud.get_player_by_display_name(session, display_name)
        )

    async def get_identities_by_display_names(
        self, display_names: Iterable[str]
    ) -> set[str]:
        return await self._read(
            lambda session: crud.get_uuids_by_display_names(session, display_names)
        )

    async def get_all_ordered_by_cumulative_time(self) -> List[Player]:
        return await self._read(crud.get_all_players_by_playtime)

    async def get_all_online(self) -> List[Player]:
        return await self._read(crud.get_online_players)

    async def get_online_identities(self) -> set[str]:
        return await self._read(crud.get_online_uuids)

    async def count_online(self) -> int:
        return await self._read(crud.count_online_players)

    async def get_stale_online(self, timeout_ms: int, now: datetime) -> List[Player]:
        """Online players with ``now - last_seen_at > timeout_ms``."""
        seen_before = _utc(now) - timedelta(milliseconds=timeout_ms)
        return await self._read(
            lambda session: crud.get_stale_online_players(session, seen_before)
        )

    # Internals

    @asynccontextmanager
    async def _identity_lock(self, uuid: str) -> AsyncIterator[None]:
        lock = self._locks.get(uuid)
        if lock is None:
            lock = self._locks[uuid] = asyncio.Lock()
        self._lock_users[uuid] = self._lock_users.get(uuid, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[uuid] -= 1
            if self._lock_users[uuid] == 0:
                del self._lock_users[uuid]
                del self._locks[uuid]

    async def _read(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            async with self._session_factory() as session:
                return await operation(session)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Read failed: {e}") from e

    async def _write(
        self, description: str, operation: Callable[[AsyncSession], Awaitable[T]]
    ) -> T:
        last_error: Optional[SQLAlchemyError] = None
        for attempt in range(1, self.write_retries + 1):
            try:
                async with self._session_factory() as session:
                    return await operation(session)
            except SQLAlchemyError as e:
                last_error = e
                logger.error(
                    f"Store write '{description}' failed (attempt {attempt}/{self.write_retries}): {e}"
                )
                if attempt < self.write_retries:
                    await asyncio.sleep(self.retry_delay_seconds * attempt)

        logger.critical(
            f"Store write '{description}' failed after {self.write_retries} attempts, "
            "session state may be stale"
        )
        raise StoreUnavailable(f"{description}: {last_error}") from last_error
