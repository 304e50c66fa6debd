"""Player presence API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi import status as http_status
from pydantic import BaseModel, Field

from ..dynamic_config import WatchdogConfig
from ..errors import ConfigurationError, StoreUnavailable
from ..models import Player, PlayerPublic
from ..players import GovernorStatus, PresenceSystem
from ..players.formatting import avatar_url, format_duration
from ..rcon import ConnectionState

router = APIRouter(prefix="/players", tags=["players"])


class PlayerListResponse(BaseModel):
    players: List[PlayerPublic]
    total_players: int
    online_count: int


class OnlinePlayersResponse(BaseModel):
    online_count: int
    uuids: List[str]


class WatchdogStatusResponse(BaseModel):
    governor: GovernorStatus
    connection_state: ConnectionState
    config: WatchdogConfig


class WatchdogConfigUpdate(BaseModel):
    """Partial update, fields left out keep their value."""

    heartbeat_interval_ms: Optional[int] = Field(default=None)
    session_timeout_ms: Optional[int] = Field(default=None)
    poll_interval_ms: Optional[int] = Field(default=None)
    max_consecutive_failures: Optional[int] = Field(default=None)


def get_presence(request: Request) -> PresenceSystem:
    return request.app.state.presence


def to_public(player: Player) -> PlayerPublic:
    return PlayerPublic(
        uuid=player.uuid,
        display_name=player.display_name,
        first_seen_at=player.first_seen_at,
        last_seen_at=player.last_seen_at,
        cumulative_online_ms=player.cumulative_online_ms,
        session_count=player.session_count,
        active_session_started_at=player.active_session_started_at,
        is_online=player.is_online,
        formatted_playtime=format_duration(player.cumulative_online_ms),
        avatar_url=avatar_url(player.display_name),
    )


def _store_error(e: StoreUnavailable) -> HTTPException:
    return HTTPException(
        status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Player store unavailable: {str(e)}",
    )


@router.get("/", response_model=PlayerListResponse)
async def get_all_players(presence: PresenceSystem = Depends(get_presence)):
    """
    Get all players.

    Ordered by cumulative online time, longest first.
    """
    try:
        players = await presence.session_tracker.list_players()
    except StoreUnavailable as e:
        raise _store_error(e)

    public = [to_public(player) for player in players]
    return PlayerListResponse(
        players=public,
        total_players=len(public),
        online_count=sum(1 for player in public if player.is_online),
    )


@router.get("/online", response_model=OnlinePlayersResponse)
async def get_online_players(presence: PresenceSystem = Depends(get_presence)):
    """Get identities of players with an open session."""
    try:
        uuids = await presence.session_tracker.online_identities()
    except StoreUnavailable as e:
        raise _store_error(e)
    return OnlinePlayersResponse(online_count=len(uuids), uuids=sorted(uuids))


@router.get("/status/watchdog", response_model=WatchdogStatusResponse)
async def get_watchdog_status(presence: PresenceSystem = Depends(get_presence)):
    """Get failure governor state and the current watchdog configuration."""
    return WatchdogStatusResponse(
        governor=presence.governor.snapshot(),
        connection_state=presence.rcon_client.state,
        config=presence.get_watchdog_config(),
    )


@router.put("/status/watchdog", response_model=WatchdogConfig)
async def update_watchdog_config(
    update: WatchdogConfigUpdate,
    presence: PresenceSystem = Depends(get_presence),
):
    """Update the watchdog configuration. Applies from the next tick."""
    changes = update.model_dump(exclude_none=True)
    if not changes:
        return presence.get_watchdog_config()

    try:
        return await presence.update_watchdog_config(**changes)
    except ConfigurationError as e:
        # Values below their floor
        raise HTTPException(
            status_code=422,
            detail=str(e),
        )


@router.get("/{uuid}", response_model=PlayerPublic)
async def get_player(uuid: str, presence: PresenceSystem = Depends(get_presence)):
    """Get one player by identity."""
    try:
        player = await presence.session_tracker.get_player(uuid.lower())
    except StoreUnavailable as e:
        raise _store_error(e)

    if player is None:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=f"Player with UUID '{uuid}' not found",
        )
    return to_public(player)
