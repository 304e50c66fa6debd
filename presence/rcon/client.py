"""Async RCON client for the game server's admin protocol."""

import asyncio
import itertools
from typing import Optional

from ..errors import (
    AuthorityAuthFailed,
    AuthorityError,
    AuthorityProtocolError,
    AuthorityTimeout,
    AuthorityUnreachable,
)
from ..logger import logger
from .protocol import (
    AUTH_FAILED_ID,
    LENGTH,
    MAX_RESPONSE_PACKETS,
    Packet,
    PacketType,
    decode_length,
    decode_packet,
)
from .types import ConnectionState, OnlinePlayers, clean_response, parse_player_list

LIST_COMMAND = "list uuids"


class RconClient:
    """Owns a single authenticated RCON connection.

    Requests are serialized. A failed request triggers exactly one reconnect
    and retry before the error reaches the caller.
    """

    def __init__(
        self,
        host: str,
        port: int,
        password: str,
        timeout_seconds: float = 5.0,
    ):
        """Initialize RCON client.

        Args:
            host: Server host name
            port: RCON port
            password: RCON password
            timeout_seconds: Bound for every connect, write and read step
        """
        self.host = host
        self.port = port
        self.timeout_seconds = timeout_seconds
        self._password = password

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._lock = asyncio.Lock()
        self._request_ids = itertools.count(1)
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def connect(self) -> None:
        """Open and authenticate the connection.

        Raises:
            AuthorityUnreachable: If the socket cannot be opened in time
            AuthorityAuthFailed: If the server rejects the password
        """
        async with self._lock:
            await self._connect()

    async def poll(self) -> OnlinePlayers:
        """Ask the server who is online.

        Raises:
            AuthorityError: If the request failed twice or auth was rejected
        """
        response = await self.send_command(LIST_COMMAND)
        online_players = parse_player_list(response)
        if len(online_players.players) != online_players.online:
            logger.warning(
                f"RCON list reports {online_players.online} players online "
                f"but names {len(online_players.players)}"
            )
        return online_players

    async def send_command(self, command: str) -> str:
        """Execute a command and return its cleaned response text."""
        async with self._lock:
            try:
                return await self._request(command)
            except AuthorityAuthFailed:
                raise
            except AuthorityError as e:
                logger.warning(
                    f"RCON request '{command}' failed ({type(e).__name__}: {e}), reconnecting once"
                )
                self._state = ConnectionState.RECONNECTING
                await self._close_connection()

            try:
                return await self._request(command)
            except AuthorityError:
                await self._close_connection()
                self._state = ConnectionState.DISCONNECTED
                raise

    async def close(self) -> None:
        """Close the connection."""
        async with self._lock:
            await self._close_connection()
            self._state = ConnectionState.DISCONNECTED
        logger.info("RCON connection closed")

    async def _request(self, command: str) -> str:
        if self._writer is None:
            await self._connect()

        request_id = next(self._request_ids)
        # Replies over 4096 bytes arrive as several packets. The server answers
        # in order, so the answer to a trailing empty packet ends the reply.
        end_id = next(self._request_ids)
        await self._send(
            Packet(request_id, PacketType.COMMAND, command),
            Packet(end_id, PacketType.RESPONSE, ""),
        )

        chunks: list[str] = []
        while True:
            packet = await self._receive()
            if packet.request_id == end_id:
                break
            if 0 < packet.request_id < request_id:
                # Servers that mirror the end marker answer it with two packets
                logger.debug(f"Discarding stale RCON packet with id {packet.request_id}")
                continue
            if packet.request_id != request_id:
                raise AuthorityProtocolError(
                    f"Response id {packet.request_id} does not match request id {request_id}"
                )
            if packet.packet_type != PacketType.RESPONSE:
                raise AuthorityProtocolError(
                    f"Unexpected packet type {packet.packet_type} in command response"
                )
            chunks.append(packet.body)
            if len(chunks) > MAX_RESPONSE_PACKETS:
                raise AuthorityProtocolError(
                    f"Response to '{command}' exceeds {MAX_RESPONSE_PACKETS} packets"
                )

        return clean_response("".join(chunks))

    async def _connect(self) -> None:
        await self._close_connection()
        if self._state == ConnectionState.CONNECTED:
            self._state = ConnectionState.RECONNECTING

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout_seconds,
            )
        except (OSError, TimeoutError) as e:
            self._state = ConnectionState.DISCONNECTED
            raise AuthorityUnreachable(
                f"Cannot connect to RCON at {self.host}:{self.port}: {str(e) or type(e).__name__}"
            ) from e

        try:
            request_id = next(self._request_ids)
            await self._send(Packet(request_id, PacketType.LOGIN, self._password))
            packet = await self._receive()
            # Some servers send an empty RESPONSE before the auth answer
            if packet.packet_type == PacketType.RESPONSE:
                packet = await self._receive()
        except AuthorityError as e:
            await self._close_connection()
            self._state = ConnectionState.DISCONNECTED
            raise AuthorityUnreachable(f"RCON login handshake failed: {e}") from e

        if packet.request_id == AUTH_FAILED_ID:
            await self._close_connection()
            self._state = ConnectionState.DISCONNECTED
            raise AuthorityAuthFailed(
                f"RCON authentication rejected by {self.host}:{self.port}"
            )
        if packet.request_id != request_id:
            await self._close_connection()
            self._state = ConnectionState.DISCONNECTED
            raise AuthorityUnreachable(
                f"RCON login answered with unexpected id {packet.request_id}"
            )

        self._state = ConnectionState.CONNECTED
        logger.info(f"RCON connected to {self.host}:{self.port}")

    async def _send(self, *packets: Packet) -> None:
        assert self._writer is not None
        try:
            self._writer.write(b"".join(packet.encode() for packet in packets))
            await asyncio.wait_for(self._writer.drain(), timeout=self.timeout_seconds)
        except TimeoutError as e:
            raise AuthorityTimeout("Timed out sending RCON packet") from e
        except OSError as e:
            raise AuthorityUnreachable(f"RCON connection lost while sending: {e}") from e

    async def _receive(self) -> Packet:
        assert self._reader is not None
        try:
            length = decode_length(
                await asyncio.wait_for(
                    self._reader.readexactly(LENGTH.size),
                    timeout=self.timeout_seconds,
                )
            )
            data = await asyncio.wait_for(
                self._reader.readexactly(length), timeout=self.timeout_seconds
            )
        except TimeoutError as e:
            raise AuthorityTimeout(
                f"RCON server did not answer within {self.timeout_seconds}s"
            ) from e
        except asyncio.IncompleteReadError as e:
            raise AuthorityUnreachable("RCON connection closed by server") from e
        except OSError as e:
            raise AuthorityUnreachable(f"RCON connection lost while reading: {e}") from e
        return decode_packet(data)

    async def _close_connection(self) -> None:
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error while closing RCON connection: {e}")
