"""Source RCON wire format.

A packet is a little-endian int32 length followed by the int32 request id,
the int32 packet type, an ASCII body and two NUL bytes. The length covers
everything after itself.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum

from ..errors import AuthorityProtocolError

HEADER = struct.Struct("<iii")
LENGTH = struct.Struct("<i")
# Smallest legal packet: id, type and the two terminating NULs
MIN_PACKET_LENGTH = HEADER.size - LENGTH.size + 2
MAX_PACKET_LENGTH = 4096 + MIN_PACKET_LENGTH
# Replies longer than one packet body are split; bounds a single reply
MAX_RESPONSE_PACKETS = 256

AUTH_FAILED_ID = -1


class PacketType(IntEnum):
    RESPONSE = 0
    COMMAND = 2
    LOGIN = 3


@dataclass
class Packet:
    request_id: int
    packet_type: int
    body: str

    def encode(self) -> bytes:
        payload = self.body.encode("utf-8") + b"\x00\x00"
        return (
            HEADER.pack(
                LENGTH.size * 2 + len(payload), self.request_id, self.packet_type
            )
            + payload
        )


def decode_length(data: bytes) -> int:
    (length,) = LENGTH.unpack(data)
    if not MIN_PACKET_LENGTH <= length <= MAX_PACKET_LENGTH:
        raise AuthorityProtocolError(f"Invalid packet length {length}")
    return length


def decode_packet(data: bytes) -> Packet:
    """Decode a packet without its leading length field."""
    if len(data) < MIN_PACKET_LENGTH or not data.endswith(b"\x00\x00"):
        raise AuthorityProtocolError("Malformed packet: missing terminator")
    request_id, packet_type = struct.unpack_from("<ii", data)
    body = data[8:-2].decode("utf-8", errors="replace")
    return Packet(request_id=request_id, packet_type=packet_type, body=body)
