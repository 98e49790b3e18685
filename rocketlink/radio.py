"""Interface to a LoRa transceiver and the parameters it is driven with."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from rocketlink.config import Bandwidth, CodingRate, SpreadingFactor


class RadioError(Exception):
    """The transceiver reported a failure."""


class IrqState(Enum):
    """Interrupt reported by the transceiver while receiving."""

    DONE = "done"
    PREAMBLE_RECEIVED = "preamble_received"


@dataclass(frozen=True)
class PacketStatus:
    """Signal quality of a received packet: RSSI in dBm and SNR in dB."""

    rssi: int
    snr: int


@dataclass(frozen=True)
class ModulationParams:
    """LoRa modulation on one carrier frequency."""

    spreading_factor: SpreadingFactor
    bandwidth: Bandwidth
    coding_rate: CodingRate
    frequency_hz: int

    def __post_init__(self) -> None:
        if self.frequency_hz <= 0:
            raise ValueError("frequency must be positive")

    @property
    def symbol_time_ms(self) -> float:
        """Duration of one LoRa symbol in milliseconds."""
        return (2**self.spreading_factor.value) / self.bandwidth.value * 1000.0


@dataclass(frozen=True)
class PacketParams:
    """Packet framing; ``payload_length`` is ``None`` for transmissions sized by their data."""

    modulation: ModulationParams
    preamble_length: int
    implicit_header: bool
    payload_length: Optional[int]
    crc_on: bool
    iq_inverted: bool

    def __post_init__(self) -> None:
        if self.preamble_length < 1:
            raise ValueError("preamble length must be at least 1")
        if self.payload_length is not None and not 0 <= self.payload_length <= 255:
            raise ValueError("payload length must be between 0 and 255")

    @property
    def time_on_air_ms(self) -> float:
        """Time on air of one packet in milliseconds."""
        if self.payload_length is None:
            raise ValueError("time on air needs a payload length")
        sf = self.modulation.spreading_factor.value
        symbol = self.modulation.symbol_time_ms
        preamble = (self.preamble_length + 4.25) * symbol
        blocks = math.ceil((8 * self.payload_length - 4 * sf + 24) / (4 * sf))
        n_payload = 8 + max(blocks * self.modulation.coding_rate.value, 0)
        return preamble + n_payload * symbol


class Radio(Protocol):
    """A LoRa transceiver. Every operation raises :class:`RadioError` on failure."""

    async def init(self) -> None: ...

    async def enter_standby(self) -> None: ...

    async def sleep(self, warm_start: bool) -> None: ...

    async def prepare_for_rx(
        self, mod_params: ModulationParams, pkt_params: PacketParams
    ) -> None:
        """Configure continuous reception."""
        ...

    async def start_rx(self) -> None: ...

    async def wait_for_irq(self) -> None: ...

    async def get_irq_state(self) -> Optional[IrqState]: ...

    async def clear_irq_status(self) -> None: ...

    async def get_rx_result(self, pkt_params: PacketParams) -> tuple[bytes, PacketStatus]:
        """The received bytes and their signal quality."""
        ...

    async def prepare_for_tx(
        self,
        mod_params: ModulationParams,
        pkt_params: PacketParams,
        output_power: int,
        data: bytes,
    ) -> None: ...

    async def tx(self) -> None: ...