"""Frequency-hopping receiver for both the downlink and the uplink."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from itertools import cycle
from typing import Awaitable, Callable, Optional, TypeVar

from rocketlink.channels import AnySender, Watch
from rocketlink.config import FREQUENCIES, SEQUENCE_LENGTH, LinkConfig
from rocketlink.downlink import DOWNLINK_PACKET_SIZE, ConnectionContext, unpack_downlink
from rocketlink.mavlink import RadioStatus
from rocketlink.modes import FlightMode
from rocketlink.protocol import DOWNLINK_MESSAGE_INTERVAL_MS, TelemetryError
from rocketlink.radio import (
    IrqState,
    ModulationParams,
    PacketParams,
    PacketStatus,
    Radio,
    RadioError,
)
from rocketlink.uplink import SetFlightModeCommand, SetFlightModeMessage, UplinkHeartbeat

log = logging.getLogger(__name__)

T = TypeVar("T")
Decoder = Callable[[bytes, bytes], tuple]

_STEP_TIMEOUT_S = 0.010
_RESET_TIMEOUT_S = 1.0
_ERROR_BACKOFF_S = 0.010
_CONNECTION_LOST_TIMEOUT_S = 2.0
_SWEEP_DURATION_PER_FREQUENCY_S = SEQUENCE_LENGTH * DOWNLINK_MESSAGE_INTERVAL_MS / 1000.0
_DOWNLINK_INTERVAL_S = DOWNLINK_MESSAGE_INTERVAL_MS / 1000.0
_DOWNLINK_HISTORY_CAPACITY = 128
_DOWNLINK_HISTORY_WINDOW_S = 1.0
_UPLINK_HISTORY_CAPACITY = 32
_UPLINK_HISTORY_WINDOW_S = 10.0


class ReceiveError(Exception):
    """Reception failed because of a radio error or a timeout; see ``cause``."""

    def __init__(self, cause: BaseException) -> None:
        if isinstance(cause, RadioError):
            text = f"Radio error: {cause}"
        else:
            text = "Timeout Error"
        super().__init__(text)
        self.cause = cause


def _now() -> float:
    return asyncio.get_running_loop().time()


def _to_i8(value: int) -> int:
    return ((value + 0x80) & 0xFF) - 0x80


class _Ticker:
    """Fires at a fixed period; can be restarted from the current moment."""

    def __init__(self, period: float) -> None:
        self._period = period
        self._expires = _now() + period

    def reset(self) -> None:
        self._expires = _now() + self._period

    async def next(self) -> None:
        delay = self._expires - _now()
        if delay > 0:
            await asyncio.sleep(delay)
        self._expires += self._period


class HoppingReceiver:
    """Receives packets following the hopping sequence of a :class:`LinkConfig`.

    ``decoder`` turns a raw packet and HMAC key into ``(time_or_seq, message)``.
    Instants are event loop times in seconds.
    """

    def __init__(
        self, radio: Radio, config: LinkConfig, sender: AnySender, decoder: Decoder
    ) -> None:
        self._radio = radio
        self._config = config
        self._sender = sender
        self._decoder = decoder

    def _create_parameters(
        self, frequency: int, packet_size: int
    ) -> tuple[ModulationParams, PacketParams]:
        mod_params = ModulationParams(
            spreading_factor=self._config.spreading_factor,
            bandwidth=self._config.bandwidth,
            coding_rate=self._config.coding_rate,
            frequency_hz=frequency,
        )
        pkt_params = PacketParams(
            modulation=mod_params,
            preamble_length=self._config.preamble_length,
            implicit_header=True,
            payload_length=packet_size,
            crc_on=True,
            iq_inverted=False,
        )
        return mod_params, pkt_params

    @staticmethod
    async def _step(operation: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(operation, _STEP_TIMEOUT_S)
        except asyncio.TimeoutError as exc:
            raise ReceiveError(exc) from exc
        except RadioError as exc:
            raise ReceiveError(exc) from exc

    async def _reset_radio(self) -> None:
        for operation in (
            self._radio.enter_standby,
            lambda: self._radio.sleep(False),
            self._radio.init,
            self._radio.clear_irq_status,
        ):
            try:
                await operation()
            except RadioError:
                pass

    async def _receive_until(
        self, frequency: int, deadline: float
    ) -> Optional[tuple[int, object, PacketStatus]]:
        size = DOWNLINK_PACKET_SIZE
        mod_params, pkt_params = self._create_parameters(frequency, size)

        while True:
            if _now() > deadline:
                log.warning("timed out packet reception")
                return None

            await self._step(self._radio.prepare_for_rx(mod_params, pkt_params))
            await self._step(self._radio.start_rx())

            while True:
                # The only wait expected to time out in normal operation.
                try:
                    await asyncio.wait_for(
                        self._radio.wait_for_irq(), max(deadline - _now(), 0.0)
                    )
                except asyncio.TimeoutError:
                    return None
                except RadioError as exc:
                    raise ReceiveError(exc) from exc

                irq_state = await self._step(self._radio.get_irq_state())
                if irq_state is not None:
                    await self._step(self._radio.clear_irq_status())
                if irq_state is IrqState.DONE:
                    break

            try:
                data, status = await asyncio.wait_for(
                    self._radio.get_rx_result(pkt_params), _STEP_TIMEOUT_S
                )
            except asyncio.TimeoutError:
                log.error("get rx result timeout.")
                return None
            except RadioError as exc:
                log.error("RX read error: %s", exc)
                try:
                    await asyncio.wait_for(self._reset_radio(), _RESET_TIMEOUT_S)
                except asyncio.TimeoutError as timeout:
                    raise ReceiveError(timeout) from timeout
                raise ReceiveError(exc) from exc

            buffer = bytes(data[:size]).ljust(size, b"\x00")
            try:
                time_or_seq, message = self._decoder(buffer, self._config.hmac_key)
            except TelemetryError as exc:
                log.warning("Failed to decode packet: %s", exc)
                continue
            return time_or_seq, message, status

    async def _receive_slot_until(
        self, time: int, deadline: float
    ) -> Optional[tuple[int, object, PacketStatus]]:
        return await self._receive_until(self._config.frequency(time), deadline)

    async def run_downlink(self, connection_sender: AnySender) -> None:
        """Sweep all frequencies until a vehicle is heard, then follow its hops. Never returns.

        ``connection_sender`` gets ``(instant, packet_time)`` for every packet
        received while connected and ``None`` when the connection is lost.
        """
        log.info("Sweeping downlink frequencies")
        for frequency in cycle(FREQUENCIES):
            log.info("Listening on %d.", frequency)
            deadline = _now() + _SWEEP_DURATION_PER_FREQUENCY_S
            try:
                result = await self._receive_until(frequency, deadline)
            except ReceiveError as exc:
                log.error("Failed to receive packet: %s", exc)
                await asyncio.sleep(_ERROR_BACKOFF_S)
                result = None

            if result is not None:
                time, message, _status = result
                await connection_sender.anysend((_now(), time))
                log.info("Received first packet, initializing connection.")
                await self._handle_connection(time, message, connection_sender)
                log.warning("Connection lost.")
                await connection_sender.anysend(None)

            # Report total packet loss after every listening period of the sweep.
            await self._sender.anysend(
                RadioStatus(
                    rssi=0xFF,
                    remrssi=0xFF,
                    txbuf=0,
                    noise=0xFF,
                    remnoise=0xFF,
                    rxerrors=100,
                    fixed=100,
                )
            )

    async def _handle_connection(
        self, time: int, initial_message, connection_sender: AnySender
    ) -> None:
        """Follow the vehicle's hopping sequence until it goes quiet."""
        last_packet = _now()
        context = ConnectionContext.init(time)
        await unpack_downlink(initial_message, self._sender, context)

        # Keeps us in step with the sequence while packets are missed.
        ticker = _Ticker(_DOWNLINK_INTERVAL_S)
        history: deque[tuple[float, int]] = deque()

        while True:
            if _now() - last_packet > _CONNECTION_LOST_TIMEOUT_S:
                return

            deadline = _now() + _DOWNLINK_INTERVAL_S
            next_time = (time + DOWNLINK_MESSAGE_INTERVAL_MS) & 0xFFFF

            try:
                result = await self._receive_slot_until(next_time, deadline)
            except ReceiveError as exc:
                log.warning("Failed receiving packet: %s.", exc)
                await ticker.next()
                time = next_time
                continue

            if result is None:
                log.warning("Missed packet.")
                time = next_time
                continue

            packet_time, message, status = result
            # Shift slightly so jitter does not make us miss the next packet.
            await asyncio.sleep(0.001)

            last_packet = _now()
            ticker.reset()
            time = packet_time

            await unpack_downlink(message, self._sender, context)
            await connection_sender.anysend((last_packet, packet_time))

            while history and _now() - history[0][0] > _DOWNLINK_HISTORY_WINDOW_S:
                history.popleft()
            if len(history) < _DOWNLINK_HISTORY_CAPACITY:
                history.append((last_packet, packet_time // 16))

            packet_loss = 1.0 - len(history) / (1000.0 / DOWNLINK_MESSAGE_INTERVAL_MS)
            context.rx_rssi = status.rssi & 0xFF
            context.rx_noise = (status.rssi - status.snr) & 0xFF
            context.rx_packet_loss = min(max(int(100.0 * packet_loss), 0), 0xFFFF)

    async def run_uplink(self, stat_sender: AnySender, time_receiver: Watch) -> None:
        """Receive uplink commands on the slot given by the downlink timing. Never returns.

        ``time_receiver`` holds ``(instant, packet_time)`` of the latest downlink
        packet. ``stat_sender`` gets ``(rssi, snr, packet_loss)`` per packet.
        """
        last_seq = 0xFFFF
        history: deque[tuple[float, int]] = deque()

        while True:
            latest = time_receiver.try_get()
            if latest is None:
                await asyncio.sleep(_ERROR_BACKOFF_S)
                continue
            last_instant, last_counter = latest

            frequency = self._config.frequency(last_counter)
            interval = self._config.hopping_interval & 0xFFFF
            next_hop = (last_counter + interval - last_counter % interval) & 0xFFFF
            deadline = last_instant + ((next_hop - last_counter) & 0xFFFF) / 1000.0

            try:
                result = await self._receive_until(frequency, deadline)
            except ReceiveError as exc:
                log.error("Error receiving uplink: %s", exc)
                continue
            if result is None:
                await asyncio.sleep(0)
                continue
            seq, message, status = result

            if seq == last_seq:
                log.warning("Discarding duplicate message.")
                continue

            while history and _now() - history[0][0] > _UPLINK_HISTORY_WINDOW_S:
                history.popleft()
            if len(history) < _UPLINK_HISTORY_CAPACITY:
                history.append((_now(), seq))

            sequence = [entry_seq for _, entry_seq in history]
            lost = sum(
                ((current - previous) & 0xFFFF) - 1
                for previous, current in zip(sequence, sequence[1:])
                if previous != current
            )
            packet_loss = lost / (lost + len(history))

            await stat_sender.anysend((_to_i8(status.rssi), _to_i8(status.snr), packet_loss))
            last_seq = seq

            if isinstance(message, UplinkHeartbeat):
                continue
            if isinstance(message, SetFlightModeMessage):
                await self._sender.anysend(SetFlightModeCommand(FlightMode(message.mode)))