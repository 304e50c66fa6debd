"""
RCON protocol client used to poll the game server for online players.
"""

from .client import RconClient
from .types import ConnectionState, OnlinePlayer, OnlinePlayers, parse_player_list

__all__ = [
    "RconClient",
    "ConnectionState",
    "OnlinePlayer",
    "OnlinePlayers",
    "parse_player_list",
]
