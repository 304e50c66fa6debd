"""CRUD operations for the Player model."""
# flake8: noqa: E711

from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ...models import Player


async def upsert_player(
    session: AsyncSession, uuid: str, display_name: str, now: datetime
) -> None:
    """Insert a player, or refresh the name and last seen time of an existing one.

    Args:
        session: Database session
        uuid: Player identity
        display_name: Latest known display name
        now: Current time, used as first seen time for new players
    """
    stmt = insert(Player).values(
        uuid=uuid,
        display_name=display_name,
        first_seen_at=now,
        last_seen_at=now,
        cumulative_online_ms=0,
        session_count=0,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["uuid"],
        set_={"display_name": display_name, "last_seen_at": now},
    )
    await session.execute(stmt)
    await session.commit()


async def start_session(session: AsyncSession, uuid: str, now: datetime) -> bool:
    """Open a session and count it.

    Returns:
        False if the player does not exist
    """
    result = await session.execute(
        update(Player)
        .where(Player.uuid == uuid)
        .values(
            active_session_started_at=now,
            session_count=Player.session_count + 1,
            last_seen_at=now,
        )
    )
    await session.commit()
    return result.rowcount > 0


async def end_session(
    session: AsyncSession,
    uuid: str,
    now: datetime,
    seen_before: Optional[datetime] = None,
) -> Optional[int]:
    """Close the open session of a player and add its length to the total.

    The update only applies if the session observed here is still the open
    one, so of two concurrent callers exactly one records the duration.

    Args:
        session: Database session
        uuid: Player identity
        now: End time of the session
        seen_before: Only close the session if the player's last seen time is
            still older than this

    Returns:
        Duration of the closed session in ms, None if nothing was closed
    """
    result = await session.execute(
        select(Player.active_session_started_at).where(Player.uuid == uuid)
    )
    started_at = result.scalar_one_or_none()
    if started_at is None:
        return None

    duration_ms = max(0, int((now - started_at) / timedelta(milliseconds=1)))

    conditions = [
        Player.uuid == uuid,
        Player.active_session_started_at == started_at,
    ]
    if seen_before is not None:
        conditions.append(Player.last_seen_at < seen_before)

    result = await session.execute(
        update(Player)
        .where(*conditions)
        .values(
            cumulative_online_ms=Player.cumulative_online_ms + duration_ms,
            active_session_started_at=None,
            last_seen_at=now,
        )
    )
    await session.commit()

    if result.rowcount == 0:
        return None
    return duration_ms


async def touch_last_seen(session: AsyncSession, uuid: str, now: datetime) -> bool:
    """Set a player's last seen time.

    Returns:
        False if the player does not exist
    """
    result = await session.execute(
        update(Player).where(Player.uuid == uuid).values(last_seen_at=now)
    )
    await session.commit()
    return result.rowcount > 0


async def touch_online_last_seen(
    session: AsyncSession, uuids: Iterable[str], now: datetime
) -> int:
    """Set the last seen time of every online player among ``uuids``.

    Offline players are left alone.

    Returns:
        Number of players updated
    """
    uuids = list(uuids)
    if not uuids:
        return 0

    result = await session.execute(
        update(Player)
        .where(
            Player.uuid.in_(uuids),
            Player.active_session_started_at != None,
        )
        .values(last_seen_at=now)
    )
    await session.commit()
    return result.rowcount


async def get_player_by_uuid(session: AsyncSession, uuid: str) -> Optional[Player]:
    result = await session.execute(select(Player).where(Player.uuid == uuid))
    return result.scalar_one_or_none()


async def get_player_by_display_name(
    session: AsyncSession, display_name: str
) -> Optional[Player]:
    """Get the player currently using a display name.

    Names can move between identities, so the most recently seen holder wins.
    """
    result = await session.execute(
        select(Player)
        .where(Player.display_name == display_name)
        .order_by(Player.last_seen_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()
