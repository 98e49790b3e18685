import math

import pytest

from rocketlink.downlink import (
    DOWNLINK_PACKET_SIZE,
    DOWNLINK_PAYLOAD_SIZE,
    ConnectionContext,
    HeartbeatMessage,
    StatusMessage,
    decode_downlink,
    encode_downlink,
    unpack_downlink,
)
from rocketlink.mavlink import (
    Altitude,
    Attitude,
    Heartbeat,
    LocalPositionNed,
    MavModeFlag,
    MavState,
    MavType,
    RadioStatus,
    SysStatus,
    SystemTime,
    VfrHud,
)
from rocketlink.protocol import HmacMismatchError, SerializationError, UnknownMessageIdError
from rocketlink.siphash import siphash24

HMAC_KEY = bytes(range(16))
OTHER_KEY = bytes(16)


def _heartbeat(z=-123.4, custom_mode=5, armed=True, roll=0.5, pitch=-0.3, yaw=2.0):
    base_mode = MavModeFlag.SAFETY_ARMED if armed else MavModeFlag(0)
    return HeartbeatMessage.pack(
        Heartbeat(system_status=MavState.ACTIVE, base_mode=base_mode, custom_mode=custom_mode),
        LocalPositionNed(z=z),
        Attitude(roll=roll, pitch=pitch, yaw=yaw),
    )


def _status():
    return StatusMessage.pack(
        SysStatus(load=200),
        RadioStatus(remrssi=180, remnoise=40, fixed=12),
        SystemTime(time_boot_ms=5 << 15),
    )


def _resign(buffer: bytearray) -> bytes:
    tag = siphash24(HMAC_KEY, bytes(buffer[:14])) & 0xFFFF
    buffer[14:16] = tag.to_bytes(2, "big")
    return bytes(buffer)


def test_context_init():
    context = ConnectionContext.init(40000)
    assert context.time == 40000
    assert context.rx_rssi is None and context.rx_packet_loss is None


def test_heartbeat_header_bits():
    message = _heartbeat()
    assert message.mav_state_profile_and_armed >> 5 == MavState.ACTIVE - 1
    assert message.mav_state_profile_and_armed & 1 == 1
    assert (message.mav_state_profile_and_armed >> 1) & 0b1111 == 1


def test_heartbeat_unarmed():
    assert _heartbeat(armed=False).mav_state_profile_and_armed & 1 == 0


def test_heartbeat_unpack_recovers_values():
    context = ConnectionContext.init(1024)
    heartbeat, position, attitude, altitude, hud = _heartbeat().unpack(context)
    assert heartbeat.custom_mode == 5
    assert heartbeat.type_ is MavType.ROCKET
    assert heartbeat.mavlink_version == 2
    assert position.z == pytest.approx(-123.4, abs=0.1)
    assert position.time_boot_ms == 1024
    step = math.pi / 127
    assert attitude.roll == pytest.approx(0.5, abs=step)
    assert attitude.pitch == pytest.approx(-0.3, abs=step)
    assert attitude.yaw == pytest.approx(2.0, abs=step)
    assert altitude == Altitude(time_usec=1024 * 1000)
    assert hud == VfrHud()


def test_high_altitude_uses_extra_bit():
    message = _heartbeat(z=-10000.0)
    assert message.mode_and_altitude & 1 == 1
    _, position, *_ = message.unpack(ConnectionContext.init(0))
    assert position.z == pytest.approx(-10000.0, abs=0.1)


def test_altitude_below_range_saturates():
    message = _heartbeat(z=1000.0)
    assert message.altitude_local == 0
    _, position, *_ = message.unpack(ConnectionContext.init(0))
    assert position.z == pytest.approx(300.0)


def test_heartbeat_serialized_size():
    assert len(_heartbeat().serialize()) == DOWNLINK_PAYLOAD_SIZE


@pytest.mark.parametrize("time", [0, 32, 1024, 0x7FE0])
def test_encode_decode_round_trip(time):
    message = _heartbeat()
    packet = encode_downlink(message, time, HMAC_KEY)
    assert len(packet) == DOWNLINK_PACKET_SIZE
    assert packet[1] & 0x1F == HeartbeatMessage.ID
    decoded_time, decoded = decode_downlink(packet, HMAC_KEY)
    assert decoded_time == time
    assert decoded == message


def test_status_round_trip():
    message = _status()
    assert message.absolute_time == 5
    decoded_time, decoded = decode_downlink(encode_downlink(message, 64, HMAC_KEY), HMAC_KEY)
    assert decoded_time == 64
    assert decoded == message


def test_status_unpack_with_empty_context():
    sys_status, radio, system_time = _status().unpack(ConnectionContext.init(0))
    assert sys_status.load == 200
    assert radio.rssi == 0xFF and radio.noise == 0xFF
    assert radio.remrssi == 180 and radio.remnoise == 40
    assert radio.fixed == 12 and radio.rxerrors == 0
    assert radio.txbuf == 100
    assert system_time == SystemTime()


def test_status_unpack_uses_context():
    context = ConnectionContext(time=0, rx_rssi=90, rx_noise=20, rx_packet_loss=7)
    _, radio, _ = _status().unpack(context)
    assert (radio.rssi, radio.noise, radio.rxerrors) == (90, 20, 7)


def test_wrong_key_is_rejected():
    packet = encode_downlink(_status(), 0, HMAC_KEY)
    with pytest.raises(HmacMismatchError):
        decode_downlink(packet, OTHER_KEY)


def test_corrupted_packet_is_rejected():
    packet = bytearray(encode_downlink(_heartbeat(), 0, HMAC_KEY))
    packet[5] ^= 0x01
    with pytest.raises(HmacMismatchError):
        decode_downlink(bytes(packet), HMAC_KEY)


def test_unknown_message_id():
    packet = bytearray(encode_downlink(_heartbeat(), 0, HMAC_KEY))
    packet[1] = (packet[1] & 0xE0) | 0x1F
    with pytest.raises(UnknownMessageIdError) as info:
        decode_downlink(_resign(packet), HMAC_KEY)
    assert info.value.message_id == 0x1F


def test_bad_payload_is_serialization_error():
    packet = bytearray(encode_downlink(_status(), 0, HMAC_KEY))
    packet[2:5] = b"\xff\xff\xff"
    with pytest.raises(SerializationError):
        decode_downlink(_resign(packet), HMAC_KEY)


def test_wrong_length_buffer():
    with pytest.raises(ValueError):
        decode_downlink(bytes(15), HMAC_KEY)


def test_encode_rejects_other_objects():
    with pytest.raises(TypeError):
        encode_downlink(Heartbeat(), 0, HMAC_KEY)


class _ListSender:
    def __init__(self):
        self.items = []

    async def anysend(self, value):
        self.items.append(value)


@pytest.mark.asyncio
async def test_unpack_heartbeat_sends_five_messages():
    sender = _ListSender()
    await unpack_downlink(_heartbeat(), sender, ConnectionContext.init(0))
    assert [type(item) for item in sender.items] == [
        Heartbeat,
        LocalPositionNed,
        Attitude,
        Altitude,
        VfrHud,
    ]


@pytest.mark.asyncio
async def test_unpack_status_sends_three_messages():
    sender = _ListSender()
    await unpack_downlink(_status(), sender, ConnectionContext.init(0))
    assert [type(item) for item in sender.items] == [SysStatus, RadioStatus, SystemTime]
    assert sender.items[1].remrssi == 180