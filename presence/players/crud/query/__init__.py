"""Read-only query helpers for the player tables."""

from .player_query import (
    count_online_players,
    get_all_players_by_playtime,
    get_online_players,
    get_online_uuids,
    get_stale_online_players,
    get_uuids_by_display_names,
)

__all__ = [
    "count_online_players",
    "get_all_players_by_playtime",
    "get_online_players",
    "get_online_uuids",
    "get_stale_online_players",
    "get_uuids_by_display_names",
]
