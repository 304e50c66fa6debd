"""Types and response parsing for the RCON client."""

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..errors import AuthorityProtocolError

ANSI_ESCAPE_PATTERN = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
FORMATTING_CODE_PATTERN = re.compile(r"§[0-9a-fk-or]", re.IGNORECASE)

LIST_HEADER_PATTERN = re.compile(
    r"There are (?P<online>\d+) of a max(?: of)? (?P<max>\d+) players online:?(?P<players>.*)$",
    re.DOTALL,
)
PLAYER_WITH_UUID_PATTERN = re.compile(
    r"^(?P<name>\S+) \((?P<uuid>[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})\)$"
)


class ConnectionState(str, Enum):
    """Connection state of the RCON client. For observability only."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class OnlinePlayer(BaseModel):
    name: str
    uuid: Optional[str] = None


class OnlinePlayers(BaseModel):
    """Parsed answer of the ``list`` command."""

    online: int = 0
    max: int = 0
    players: list[OnlinePlayer] = Field(default_factory=list)

    @property
    def names(self) -> set[str]:
        return {player.name for player in self.players}


def clean_response(response: str) -> str:
    """Strip terminal escapes and Minecraft formatting codes."""
    response = ANSI_ESCAPE_PATTERN.sub("", response)
    return FORMATTING_CODE_PATTERN.sub("", response).strip()


def parse_player_list(response: str) -> OnlinePlayers:
    """Parse the response of ``list`` or ``list uuids``.

    Both ``Alice, Bob`` and ``Alice (uuid), Bob (uuid)`` player sections are
    accepted.

    Raises:
        AuthorityProtocolError: If the response is not a player list
    """
    cleaned = clean_response(response)
    match = LIST_HEADER_PATTERN.search(cleaned)
    if match is None:
        raise AuthorityProtocolError(f"Unexpected list response: {cleaned!r}")

    players = []
    for entry in match.group("players").split(","):
        entry = entry.strip()
        if not entry:
            continue
        with_uuid = PLAYER_WITH_UUID_PATTERN.match(entry)
        if with_uuid:
            players.append(
                OnlinePlayer(
                    name=with_uuid.group("name"),
                    uuid=with_uuid.group("uuid").lower(),
                )
            )
        else:
            players.append(OnlinePlayer(name=entry))

    return OnlinePlayers(
        online=int(match.group("online")),
        max=int(match.group("max")),
        players=players,
    )
