"""Frequency-hopping transmitter for both the downlink and the uplink."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from rocketlink.channels import AnyReceiver
from rocketlink.config import FREQUENCIES, LinkConfig
from rocketlink.downlink import encode_downlink
from rocketlink.protocol import DOWNLINK_MESSAGE_INTERVAL_MS, UPLINK_HOP_INTERVAL_MS
from rocketlink.radio import ModulationParams, PacketParams, Radio, RadioError
from rocketlink.uplink import UplinkHeartbeat, encode_uplink

log = logging.getLogger(__name__)

DOWNLINK_TX_POWER = 10
UPLINK_TX_POWER = 22

_DOWNLINK_TX_TIMEOUT_S = (DOWNLINK_MESSAGE_INTERVAL_MS - 1) / 1000.0
_UPLINK_TX_TIMEOUT_S = 0.100
_HOP_END_MARGIN_MS = 30
_HOP_START_MARGIN_MS = 10
_DOWNLINK_SLOT_MARGIN_MS = 2


def _now() -> float:
    return asyncio.get_running_loop().time()


class HoppingTransmitter:
    """Transmits packets following the hopping sequence of a :class:`LinkConfig`.

    ``receiver`` yields ``(time_or_seq, message)`` pairs to be sent. Instants
    are event loop times in seconds.
    """

    def __init__(self, radio: Radio, config: LinkConfig, receiver: AnyReceiver) -> None:
        self._radio = radio
        self._config = config
        self._receiver = receiver

    def _create_parameters(self, frequency: int) -> tuple[ModulationParams, PacketParams]:
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
            payload_length=None,
            crc_on=True,
            iq_inverted=False,
        )
        return mod_params, pkt_params

    async def _transmit_packet(self, frequency: int, data: bytes, transmit_power: int) -> None:
        mod_params, pkt_params = self._create_parameters(frequency)
        await self._radio.prepare_for_tx(mod_params, pkt_params, transmit_power, data)
        await self._radio.tx()

    async def _transmit_logged(
        self, frequency: int, data: bytes, transmit_power: int, timeout: float
    ) -> None:
        """Transmit once, logging failures and timeouts instead of raising them."""
        try:
            await asyncio.wait_for(
                self._transmit_packet(frequency, data, transmit_power), timeout
            )
        except asyncio.TimeoutError:
            log.error("Timed out while transmitting.")
        except RadioError as exc:
            log.error("Failed to transmit packet: %s", exc)

    async def run_downlink(self) -> None:
        """Send every downlink message received on its time slot's frequency. Never returns."""
        while True:
            time, message = await self._receiver.anyreceive()
            data = encode_downlink(message, time, self._config.hmac_key)
            frequency = self._config.frequency(time)
            await self._transmit_logged(
                frequency, data, DOWNLINK_TX_POWER, _DOWNLINK_TX_TIMEOUT_S
            )

    async def run_uplink(self, connection_receiver: AnyReceiver) -> None:
        """Send uplink messages, timed by the downlink connection when there is one.

        ``connection_receiver`` yields ``(instant, packet_time)`` of the latest
        downlink packet, or ``None`` once the connection is lost. Never returns.
        """
        connection: Optional[tuple[float, int]] = None
        message_task: Optional[asyncio.Future] = None
        connection_task: Optional[asyncio.Future] = None
        try:
            while True:
                if message_task is None:
                    message_task = asyncio.ensure_future(self._receiver.anyreceive())
                if connection_task is None:
                    connection_task = asyncio.ensure_future(connection_receiver.anyreceive())

                done, _ = await asyncio.wait(
                    {message_task, connection_task}, return_when=asyncio.FIRST_COMPLETED
                )
                if connection_task in done:
                    connection = connection_task.result()
                    connection_task = None
                if message_task not in done:
                    continue
                seq, message = message_task.result()
                message_task = None
                await self._send_uplink(seq, message, connection)
        finally:
            for task in (message_task, connection_task):
                if task is not None:
                    task.cancel()

    async def _send_uplink(
        self, seq: int, message, connection: Optional[tuple[float, int]]
    ) -> None:
        transmissions = 1 if isinstance(message, UplinkHeartbeat) else 3
        data = encode_uplink(message, seq, self._config.hmac_key)

        if connection is None:
            # Without a downlink connection, send on every uplink frequency.
            for frequency, enabled in zip(FREQUENCIES, self._config.frequency_mask):
                if enabled:
                    await self._transmit_logged(
                        frequency, data, UPLINK_TX_POWER, _UPLINK_TX_TIMEOUT_S
                    )
            return

        # The packet time a downlink packet arriving now would carry. Time on
        # air is not accounted for, so the margins below are generous.
        last_instant, last_t = connection
        elapsed_ms = int((_now() - last_instant) * 1000)
        current_t = (last_t + elapsed_ms) & 0xFFFF
        frequency = self._config.frequency(current_t)

        # Avoid being cut off by a hop at either end of the uplink slot.
        time_in_hop = current_t % UPLINK_HOP_INTERVAL_MS
        if UPLINK_HOP_INTERVAL_MS - time_in_hop < _HOP_END_MARGIN_MS:
            remaining = UPLINK_HOP_INTERVAL_MS - time_in_hop
            await asyncio.sleep((remaining + 10) / 1000.0)
        elif time_in_hop < _HOP_START_MARGIN_MS:
            await asyncio.sleep((_HOP_START_MARGIN_MS - time_in_hop) / 1000.0)

        for _ in range(transmissions):
            # Send right after a downlink packet, while the air is clear.
            time_in_downlink = current_t % DOWNLINK_MESSAGE_INTERVAL_MS
            if time_in_downlink > _DOWNLINK_SLOT_MARGIN_MS:
                remaining = DOWNLINK_MESSAGE_INTERVAL_MS - time_in_downlink
                await asyncio.sleep((remaining + 1) / 1000.0)
            await self._transmit_logged(frequency, data, UPLINK_TX_POWER, _UPLINK_TX_TIMEOUT_S)