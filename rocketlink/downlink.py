"""Downlink telemetry packets: packing MAVLink data into fixed-size radio packets."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from rocketlink.channels import AnySender
from rocketlink.mavlink import (
    Altitude,
    Attitude,
    Heartbeat,
    LocalPositionNed,
    MavAutopilot,
    MavModeFlag,
    MavState,
    MavType,
    RadioStatus,
    SysStatus,
    SystemTime,
    VfrHud,
)
from rocketlink.postcard import from_bytes, to_slice
from rocketlink.protocol import HmacMismatchError, UnknownMessageIdError
from rocketlink.siphash import siphash24

DOWNLINK_PACKET_SIZE = 16
DOWNLINK_PAYLOAD_SIZE = DOWNLINK_PACKET_SIZE - 4

_HMAC_OFFSET = DOWNLINK_PACKET_SIZE - 2
_ID_MASK = 0b11111
_TIME_LOW_MASK = 0b1110_0000
_ANGLE_SCALE = 127 / math.pi
_ALTITUDE_OFFSET = 3000.0
_PROFILE = 0x01


def _saturate(value: float, low: int, high: int) -> int:
    """Convert a float to an integer in ``[low, high]``, truncating; NaN becomes 0."""
    if math.isnan(value):
        return 0
    if value <= low:
        return low
    if value >= high:
        return high
    return math.trunc(value)


@dataclass
class ConnectionContext:
    """What the receiver remembers between packets to enrich received data."""

    time: int
    altitude_ground_asl: Optional[float] = None
    rx_rssi: Optional[int] = None
    rx_noise: Optional[int] = None
    rx_packet_loss: Optional[int] = None

    @classmethod
    def init(cls, time: int) -> "ConnectionContext":
        """A fresh context starting from the 16-bit packet ``time``."""
        return cls(time=time & 0xFFFF)


@dataclass(frozen=True)
class HeartbeatMessage:
    """Mode, attitude and altitude, built from HEARTBEAT, LOCAL_POSITION_NED and ATTITUDE."""

    ID: ClassVar[int] = 0x01
    _SCHEMA: ClassVar[tuple[str, ...]] = ("u8", "u8", "u16", "i8", "i8", "i8", "f16", "f16")

    mav_state_profile_and_armed: int
    mode_and_altitude: int
    altitude_local: int
    euler_angles: tuple[int, int, int]
    vertical_speed: float = 0.0
    ground_speed: float = 0.0

    @classmethod
    def pack(
        cls, heartbeat: Heartbeat, local_position: LocalPositionNed, attitude: Attitude
    ) -> "HeartbeatMessage":
        mav_state = max(int(heartbeat.system_status), 1) - 1
        armed = int(MavModeFlag.SAFETY_ARMED in heartbeat.base_mode)
        state_profile_armed = (((mav_state & 0b111) << 5) | (_PROFILE << 1) | armed) & 0xFF

        altitude = _saturate(local_position.z * -10.0 + _ALTITUDE_OFFSET, 0, 0xFFFF_FFFF)
        mode_and_altitude = ((heartbeat.custom_mode << 2) | ((altitude >> 16) & 0b1)) & 0xFF

        euler = tuple(
            _saturate(angle * _ANGLE_SCALE, -128, 127)
            for angle in (attitude.roll, attitude.pitch, attitude.yaw)
        )
        return cls(
            mav_state_profile_and_armed=state_profile_armed,
            mode_and_altitude=mode_and_altitude,
            altitude_local=altitude & 0xFFFF,
            euler_angles=euler,
        )

    def unpack(
        self, context: ConnectionContext
    ) -> tuple[Heartbeat, LocalPositionNed, Attitude, Altitude, VfrHud]:
        heartbeat = Heartbeat(
            type_=MavType.ROCKET,
            autopilot=MavAutopilot.GENERIC,
            system_status=MavState.ACTIVE,
            base_mode=MavModeFlag(0),
            custom_mode=self.mode_and_altitude >> 2,
            mavlink_version=2,
        )
        altitude = ((self.mode_and_altitude & 0b1) << 16) | self.altitude_local
        local_position = LocalPositionNed(
            time_boot_ms=context.time,
            z=(altitude - _ALTITUDE_OFFSET) / -10.0,
        )
        roll, pitch, yaw = self.euler_angles
        attitude = Attitude(
            time_boot_ms=context.time,
            roll=roll / _ANGLE_SCALE,
            pitch=pitch / _ANGLE_SCALE,
            yaw=yaw / _ANGLE_SCALE,
        )
        altitude_msg = Altitude(time_usec=context.time * 1000)
        return heartbeat, local_position, attitude, altitude_msg, VfrHud()

    def serialize(self) -> bytes:
        values = (
            self.mav_state_profile_and_armed,
            self.mode_and_altitude,
            self.altitude_local,
            *self.euler_angles,
            self.vertical_speed,
            self.ground_speed,
        )
        return to_slice(self._SCHEMA, values, DOWNLINK_PAYLOAD_SIZE)

    @classmethod
    def _from_payload(cls, payload: bytes) -> "HeartbeatMessage":
        state, mode_alt, alt, roll, pitch, yaw, vspeed, gspeed = from_bytes(cls._SCHEMA, payload)
        return cls(state, mode_alt, alt, (roll, pitch, yaw), vspeed, gspeed)


@dataclass(frozen=True)
class StatusMessage:
    """System load, uplink quality and the high bits of the time since boot."""

    ID: ClassVar[int] = 0x02
    _SCHEMA: ClassVar[tuple[str, ...]] = ("u16", "u8", "u8", "u8", "u8")

    absolute_time: int
    load: int
    uplink_packet_loss: int
    uplink_rssi: int
    uplink_noise: int

    @classmethod
    def pack(
        cls, sys_status: SysStatus, radio_status: RadioStatus, system_time: SystemTime
    ) -> "StatusMessage":
        return cls(
            absolute_time=(system_time.time_boot_ms >> 15) & 0xFFFF,
            load=(sys_status.load // 10) & 0xFF,
            uplink_packet_loss=radio_status.fixed & 0xFF,
            uplink_rssi=radio_status.remrssi,
            uplink_noise=radio_status.remnoise,
        )

    def unpack(self, context: ConnectionContext) -> tuple[SysStatus, RadioStatus, SystemTime]:
        # The load is scaled in 8-bit arithmetic and wraps above 25.
        sys_status = SysStatus(load=(self.load * 10) & 0xFF)
        radio_status = RadioStatus(
            rssi=0xFF if context.rx_rssi is None else context.rx_rssi,
            remrssi=self.uplink_rssi,
            noise=0xFF if context.rx_noise is None else context.rx_noise,
            remnoise=self.uplink_noise,
            rxerrors=0 if context.rx_packet_loss is None else context.rx_packet_loss,
            fixed=self.uplink_packet_loss,
            txbuf=100,
        )
        return sys_status, radio_status, SystemTime()

    def serialize(self) -> bytes:
        values = (
            self.absolute_time,
            self.load,
            self.uplink_packet_loss,
            self.uplink_rssi,
            self.uplink_noise,
        )
        return to_slice(self._SCHEMA, values, DOWNLINK_PAYLOAD_SIZE)

    @classmethod
    def _from_payload(cls, payload: bytes) -> "StatusMessage":
        return cls(*from_bytes(cls._SCHEMA, payload))


DownlinkMessage = Union[HeartbeatMessage, StatusMessage]

_MESSAGE_TYPES: dict[int, type] = {cls.ID: cls for cls in (HeartbeatMessage, StatusMessage)}


def _hmac(hmac_key: bytes, data: bytes) -> bytes:
    return (siphash24(hmac_key, data) & 0xFFFF).to_bytes(2, "big")


def encode_downlink(message: DownlinkMessage, time: int, hmac_key: bytes) -> bytes:
    """Build the 16-byte packet for ``message`` sent at 16-bit packet ``time``."""
    if not isinstance(message, (HeartbeatMessage, StatusMessage)):
        raise TypeError(f"not a downlink message: {message!r}")
    time &= 0xFFFF
    header = bytes([(time >> 7) & 0xFF, (time & _TIME_LOW_MASK) | (message.ID & _ID_MASK)])
    body = header + message.serialize()
    return body + _hmac(hmac_key, body)


def decode_downlink(buffer: bytes, hmac_key: bytes) -> tuple[int, DownlinkMessage]:
    """Check and parse a downlink packet, returning its time and message."""
    buffer = bytes(buffer)
    if len(buffer) != DOWNLINK_PACKET_SIZE:
        raise ValueError(f"downlink packets are {DOWNLINK_PACKET_SIZE} bytes")
    if buffer[_HMAC_OFFSET:] != _hmac(hmac_key, buffer[:_HMAC_OFFSET]):
        raise HmacMismatchError()

    time = (buffer[0] << 7) | (buffer[1] & _TIME_LOW_MASK)
    message_id = buffer[1] & _ID_MASK
    message_type = _MESSAGE_TYPES.get(message_id)
    if message_type is None:
        raise UnknownMessageIdError(message_id)
    return time, message_type._from_payload(buffer[2:_HMAC_OFFSET])


async def unpack_downlink(
    message: DownlinkMessage, sender: AnySender, context: ConnectionContext
) -> None:
    """Send every MAVLink message recovered from ``message`` to ``sender``, in order."""
    for item in message.unpack(context):
        await sender.anysend(item)