"""Uplink telemetry packets: commands sent from the ground to the vehicle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union

from rocketlink.modes import FlightMode
from rocketlink.postcard import from_bytes, to_slice
from rocketlink.protocol import HmacMismatchError, UnknownMessageIdError
from rocketlink.siphash import siphash24

UPLINK_PACKET_SIZE = 16
UPLINK_PAYLOAD_SIZE = UPLINK_PACKET_SIZE - 10

_HMAC_OFFSET = UPLINK_PACKET_SIZE - 8
_ID_MASK = 0b11111


@dataclass(frozen=True)
class UplinkHeartbeat:
    """Keep-alive message without payload."""

    ID: ClassVar[int] = 0x01

    def serialize(self) -> bytes:
        return bytes(UPLINK_PAYLOAD_SIZE)


@dataclass(frozen=True)
class SetFlightModeMessage:
    """Request to switch the vehicle to another flight mode."""

    ID: ClassVar[int] = 0x02
    _SCHEMA: ClassVar[tuple[str, ...]] = ("u8",)

    mode: int

    def serialize(self) -> bytes:
        return to_slice(self._SCHEMA, (self.mode,), UPLINK_PAYLOAD_SIZE)

    @classmethod
    def _from_payload(cls, payload: bytes) -> "SetFlightModeMessage":
        (mode,) = from_bytes(cls._SCHEMA, payload)
        return cls(mode=mode)


@dataclass(frozen=True)
class SetFlightModeCommand:
    """Command handed to the vehicle after a flight mode request was received."""

    mode: FlightMode


UplinkMessage = Union[UplinkHeartbeat, SetFlightModeMessage]


def _hmac(hmac_key: bytes, data: bytes) -> bytes:
    return siphash24(hmac_key, data).to_bytes(8, "big")


def encode_uplink(message: UplinkMessage, seq: int, hmac_key: bytes) -> bytes:
    """Build the 16-byte packet for ``message`` with sequence number ``seq``.

    Only the lowest 11 bits of ``seq`` are transmitted.
    """
    if not isinstance(message, (UplinkHeartbeat, SetFlightModeMessage)):
        raise TypeError(f"not an uplink message: {message!r}")
    seq &= 0xFFFF
    header = bytes([(seq >> 3) & 0xFF, ((seq << 5) & 0xFF) | (message.ID & _ID_MASK)])
    body = header + message.serialize()
    return body + _hmac(hmac_key, body)


def decode_uplink(buffer: bytes, hmac_key: bytes) -> tuple[int, UplinkMessage]:
    """Check and parse an uplink packet, returning its sequence number and message."""
    buffer = bytes(buffer)
    if len(buffer) != UPLINK_PACKET_SIZE:
        raise ValueError(f"uplink packets are {UPLINK_PACKET_SIZE} bytes")
    if buffer[_HMAC_OFFSET:] != _hmac(hmac_key, buffer[:_HMAC_OFFSET]):
        raise HmacMismatchError()

    seq = (buffer[0] << 3) | (buffer[1] >> 5)
    payload = buffer[2:_HMAC_OFFSET]
    message_id = buffer[1] & _ID_MASK
    if message_id == UplinkHeartbeat.ID:
        return seq, UplinkHeartbeat()
    if message_id == SetFlightModeMessage.ID:
        return seq, SetFlightModeMessage._from_payload(payload)
    raise UnknownMessageIdError(message_id)