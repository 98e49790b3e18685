"""Radio link configuration and the frequency hopping sequence."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from itertools import cycle, islice

from rocketlink.protocol import DOWNLINK_MESSAGE_INTERVAL_MS, UPLINK_HOP_INTERVAL_MS
from rocketlink.rng import ChaCha20Rng
from rocketlink.siphash import siphash24

FREQUENCIES: tuple[int, ...] = (
    863_250_000,
    863_750_000,
    864_250_000,
    864_750_000,
    865_250_000,
    865_750_000,
    866_250_000,
    866_750_000,
    867_250_000,
    867_750_000,
    868_250_000,
    868_750_000,
    869_250_000,
    869_750_000,
)
NUM_FREQUENCIES = len(FREQUENCIES)
SEQUENCE_LENGTH = 64

DOWNLINK_FREQUENCY_MASK: tuple[bool, ...] = (
    True, False, True, True, False, True, True, False, True, True, True, True, False, True,
)
UPLINK_FREQUENCY_MASK: tuple[bool, ...] = (
    False, True, False, False, True, False, False, True, False, False, False, False, True, False,
)


class SpreadingFactor(Enum):
    SF5 = 5
    SF6 = 6
    SF7 = 7
    SF8 = 8
    SF9 = 9
    SF10 = 10
    SF11 = 11
    SF12 = 12


class Bandwidth(Enum):
    """LoRa bandwidth; values are in Hz."""

    BW_7KHZ = 7_810
    BW_10KHZ = 10_420
    BW_15KHZ = 15_630
    BW_20KHZ = 20_830
    BW_31KHZ = 31_250
    BW_41KHZ = 41_670
    BW_62KHZ = 62_500
    BW_125KHZ = 125_000
    BW_250KHZ = 250_000
    BW_500KHZ = 500_000


class CodingRate(Enum):
    CR_4_5 = 5
    CR_4_6 = 6
    CR_4_7 = 7
    CR_4_8 = 8


@lru_cache(maxsize=32)
def _hop_sequence(mask: tuple[bool, ...], binding_phrase: str) -> tuple[int, ...]:
    seed = siphash24(bytes(16), binding_phrase.encode("utf-8"))
    active = [index for index, enabled in enumerate(mask) if enabled]
    sequence = list(islice(cycle(active), SEQUENCE_LENGTH))
    sequence += [0] * (SEQUENCE_LENGTH - len(sequence))
    ChaCha20Rng.seed_from_u64(seed).shuffle(sequence)
    return tuple(sequence)


@dataclass(frozen=True)
class LinkConfig:
    """Modulation, hopping and authentication settings of one radio link."""

    spreading_factor: SpreadingFactor = SpreadingFactor.SF7
    bandwidth: Bandwidth = Bandwidth.BW_500KHZ
    coding_rate: CodingRate = CodingRate.CR_4_5
    preamble_length: int = 8
    frequency_mask: tuple[bool, ...] = DOWNLINK_FREQUENCY_MASK
    binding_phrase: str = "schinken"
    hopping_interval: int = DOWNLINK_MESSAGE_INTERVAL_MS
    hmac_key: bytes = bytes([0x42] * 16)

    def __post_init__(self) -> None:
        mask = tuple(bool(enabled) for enabled in self.frequency_mask)
        if len(mask) != NUM_FREQUENCIES:
            raise ValueError(f"frequency mask must have {NUM_FREQUENCIES} entries")
        key = bytes(self.hmac_key)
        if len(key) != 16:
            raise ValueError("HMAC key must be 16 bytes")
        if self.hopping_interval <= 0:
            raise ValueError("hopping interval must be positive")
        object.__setattr__(self, "frequency_mask", mask)
        object.__setattr__(self, "hmac_key", key)

    def sequence(self) -> tuple[int, ...]:
        """Indices into ``FREQUENCIES`` for each slot of the hopping sequence."""
        return _hop_sequence(self.frequency_mask, self.binding_phrase)

    def frequency(self, t: int) -> int:
        """Frequency in Hz to use at packet time ``t`` (ms)."""
        slot = (t // self.hopping_interval) % SEQUENCE_LENGTH
        return FREQUENCIES[self.sequence()[slot]]


DEFAULT_DOWNLINK_CONFIG = LinkConfig(
    frequency_mask=DOWNLINK_FREQUENCY_MASK,
    hopping_interval=DOWNLINK_MESSAGE_INTERVAL_MS,
)
DEFAULT_UPLINK_CONFIG = LinkConfig(
    frequency_mask=UPLINK_FREQUENCY_MASK,
    hopping_interval=UPLINK_HOP_INTERVAL_MS,
)