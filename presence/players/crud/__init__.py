"""CRUD operations for the presence tracker."""

from .player import (
    end_session,
    get_player_by_display_name,
    get_player_by_uuid,
    start_session,
    touch_last_seen,
    touch_online_last_seen,
    upsert_player,
)
from .query import (
    count_online_players,
    get_all_players_by_playtime,
    get_online_players,
    get_online_uuids,
    get_stale_online_players,
    get_uuids_by_display_names,
)

__all__ = [
    # Player writes
    "upsert_player",
    "start_session",
    "end_session",
    "touch_last_seen",
    "touch_online_last_seen",
    # Player lookups
    "get_player_by_uuid",
    "get_player_by_display_name",
    # Queries
    "get_all_players_by_playtime",
    "get_online_players",
    "get_online_uuids",
    "count_online_players",
    "get_stale_online_players",
    "get_uuids_by_display_names",
]
