"""
Shared helpers for presence tests: temporary databases, a controllable clock,
a mocked Mojang API and an in-process RCON server.
"""

import asyncio
import struct
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from presence.db.database import create_engine, create_session_factory, init_db
from presence.dynamic_config import WatchdogConfig
from presence.events import EventDispatcher
from presence.players.governor import FailureGovernor
from presence.players.identity import IdentityResolver
from presence.players.session_tracker import SessionTracker
from presence.players.store import PlayerStore

MOJANG_URL = "https://api.mojang.test/users/profiles/minecraft"

ALICE_UUID = "11111111-1111-4111-8111-111111111111"
BOB_UUID = "22222222-2222-4222-8222-222222222222"
CAROL_UUID = "33333333-3333-4333-8333-333333333333"

PROFILES = {
    "alice": ALICE_UUID,
    "bob": BOB_UUID,
    "carol": CAROL_UUID,
}

T0 = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock advanced by hand."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, seconds: float) -> datetime:
        """Move to ``seconds`` after the start time."""
        self.now = T0 + timedelta(seconds=seconds)
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def temp_database_url() -> tuple[str, Path]:
    temp_db = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    temp_db.close()
    path = Path(temp_db.name)
    return f"sqlite:///{path}", path


async def create_test_store(**store_kwargs) -> tuple[PlayerStore, AsyncEngine, Path]:
    """Create a store backed by a temporary SQLite file."""
    database_url, path = temp_database_url()
    engine = create_engine(database_url)
    await init_db(engine)
    store = PlayerStore(create_session_factory(engine), **store_kwargs)
    return store, engine, path


async def cleanup_test_store(engine: AsyncEngine, path: Path) -> None:
    await engine.dispose()
    path.unlink(missing_ok=True)


def mojang_handler(
    profiles: Dict[str, str], calls: Optional[List[str]] = None
) -> Callable[[httpx.Request], httpx.Response]:
    """Mock Mojang profile endpoint answering from ``profiles``."""

    def handler(request: httpx.Request) -> httpx.Response:
        name = request.url.path.rsplit("/", 1)[-1]
        if calls is not None:
            calls.append(name)
        uuid = profiles.get(name.lower())
        if uuid is None:
            return httpx.Response(404)
        return httpx.Response(
            200, json={"id": uuid.replace("-", ""), "name": name}
        )

    return handler


def make_resolver(
    profiles: Dict[str, str] = PROFILES, calls: Optional[List[str]] = None
) -> IdentityResolver:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(mojang_handler(profiles, calls))
    )
    return IdentityResolver(api_url=MOJANG_URL, client=client)


@dataclass
class TrackerEnv:
    tracker: SessionTracker
    store: PlayerStore
    governor: FailureGovernor
    dispatcher: EventDispatcher
    clock: FakeClock
    engine: AsyncEngine
    path: Path
    config: Dict[str, WatchdogConfig] = field(default_factory=dict)

    def set_config(self, **changes) -> None:
        self.config["watchdog"] = self.config["watchdog"].model_copy(update=changes)

    async def cleanup(self) -> None:
        await self.tracker.flush_events()
        await self.tracker.identity_resolver.aclose()
        await cleanup_test_store(self.engine, self.path)


async def create_tracker_env(**config) -> TrackerEnv:
    """Build a tracker over a temporary store with a fake clock."""
    store, engine, path = await create_test_store()
    holder = {"watchdog": WatchdogConfig(**config)}
    governor = FailureGovernor(config_provider=lambda: holder["watchdog"])
    dispatcher = EventDispatcher()
    clock = FakeClock()
    tracker = SessionTracker(
        store=store,
        identity_resolver=make_resolver(),
        governor=governor,
        event_dispatcher=dispatcher,
        clock=clock,
    )
    return TrackerEnv(
        tracker=tracker,
        store=store,
        governor=governor,
        dispatcher=dispatcher,
        clock=clock,
        engine=engine,
        path=path,
        config=holder,
    )


# =============================================================================
# Fake RCON server
# =============================================================================

RCON_HEADER = struct.Struct("<iii")


def rcon_packet(request_id: int, packet_type: int, body: str) -> bytes:
    payload = body.encode("utf-8") + b"\x00\x00"
    return RCON_HEADER.pack(8 + len(payload), request_id, packet_type) + payload


def split_body(body: str, size: int = 4096) -> List[str]:
    data = body.encode("utf-8")
    return [
        data[start : start + size].decode("utf-8") for start in range(0, len(data), size)
    ] or [""]


class FakeRconServer:
    """Minimal RCON server answering the way a vanilla Minecraft server does.

    ``responses`` maps a command to its answer. Answers longer than 4096
    bytes are split over several packets, and non-command packets get an
    "Unknown request" answer. ``mirror_twice`` instead answers them with two
    empty packets like Source servers. ``drop_next`` closes the connection
    instead of answering the next N commands, ``stall`` stops answering
    commands altogether.
    """

    def __init__(self, password: str = "secret"):
        self.password = password
        self.responses: Dict[str, str] = {}
        self.drop_next = 0
        self.stall = False
        self.mirror_twice = False
        self.connections = 0
        self.commands: List[str] = []
        self.raw_response: Optional[bytes] = None
        self._server: Optional[asyncio.Server] = None
        self._release = asyncio.Event()
        self._writers: List[asyncio.StreamWriter] = []

    @property
    def port(self) -> int:
        assert self._server is not None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)

    async def stop(self) -> None:
        self._release.set()
        for writer in self._writers:
            writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    def set_list(self, *players: str, max_players: int = 20) -> None:
        """Answer ``list uuids`` with the given names and their known uuids."""
        entries = [
            f"{name} ({PROFILES[name.lower()]})" if name.lower() in PROFILES else name
            for name in players
        ]
        self.responses["list uuids"] = (
            f"There are {len(players)} of a max of {max_players} players online: "
            + ", ".join(entries)
        )

    async def _read_packet(self, reader: asyncio.StreamReader) -> tuple[int, int, str]:
        (length,) = struct.unpack("<i", await reader.readexactly(4))
        data = await reader.readexactly(length)
        request_id, packet_type = struct.unpack_from("<ii", data)
        return request_id, packet_type, data[8:-2].decode("utf-8")

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self.connections += 1
        self._writers.append(writer)
        try:
            request_id, _, password = await self._read_packet(reader)
            if password != self.password:
                writer.write(rcon_packet(-1, 2, ""))
                await writer.drain()
                return
            writer.write(rcon_packet(request_id, 2, ""))
            await writer.drain()

            while True:
                request_id, packet_type, command = await self._read_packet(reader)
                if packet_type != 2:
                    if self.mirror_twice:
                        writer.write(rcon_packet(request_id, 0, ""))
                        writer.write(rcon_packet(request_id, 0, ""))
                    else:
                        writer.write(
                            rcon_packet(request_id, 0, f"Unknown request {packet_type:x}")
                        )
                    await writer.drain()
                    continue

                self.commands.append(command)
                if self.drop_next > 0:
                    self.drop_next -= 1
                    return
                if self.stall:
                    await self._release.wait()
                    return
                if self.raw_response is not None:
                    writer.write(self.raw_response)
                else:
                    body = self.responses.get(command, f"Unknown command: {command}")
                    for chunk in split_body(body):
                        writer.write(rcon_packet(request_id, 0, chunk))
                await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()
