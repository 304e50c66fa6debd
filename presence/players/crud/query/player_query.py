"""Read queries over the Player table."""
# flake8: noqa: E711

from datetime import datetime
from typing import Iterable, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ....models import Player


async def get_all_players_by_playtime(session: AsyncSession) -> List[Player]:
    """All players, most cumulative online time first."""
    result = await session.execute(
        select(Player).order_by(
            Player.cumulative_online_ms.desc(), Player.display_name
        )
    )
    return list(result.scalars().all())


async def get_online_players(session: AsyncSession) -> List[Player]:
    result = await session.execute(
        select(Player)
        .where(Player.active_session_started_at != None)
        .order_by(Player.display_name)
    )
    return list(result.scalars().all())


async def get_online_uuids(session: AsyncSession) -> set[str]:
    result = await session.execute(
        select(Player.uuid).where(Player.active_session_started_at != None)
    )
    return {uuid for (uuid,) in result.all()}


async def count_online_players(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Player)
        .where(Player.active_session_started_at != None)
    )
    return result.scalar_one()


async def get_stale_online_players(
    session: AsyncSession, seen_before: datetime
) -> List[Player]:
    """Online players whose last seen time is strictly older than ``seen_before``."""
    result = await session.execute(
        select(Player)
        .where(
            Player.active_session_started_at != None,
            Player.last_seen_at < seen_before,
        )
        .order_by(Player.last_seen_at)
    )
    return list(result.scalars().all())


async def get_uuids_by_display_names(
    session: AsyncSession, display_names: Iterable[str]
) -> set[str]:
    """Identities of every player currently known under one of the names."""
    display_names = list(display_names)
    if not display_names:
        return set()

    result = await session.execute(
        select(Player.uuid).where(Player.display_name.in_(display_names))
    )
    return {uuid for (uuid,) in result.all()}
