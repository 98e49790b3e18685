"""Flight modes of the vehicle, ordered by mission progress."""

from __future__ import annotations

from enum import IntEnum


class FlightMode(IntEnum):
    """Flight mode of the vehicle.

    The values are ordered, so that modes compare by how far the mission has
    progressed (for example, every mode before ``ARMED`` is a ground mode).
    """

    IDLE = 0
    HARDWARE_ARMED = 1
    FILLING = 2
    VENTING = 3
    PRESSURIZING = 4
    HOLD = 5
    ARMED = 6
    IGNITION = 7
    BURN = 8
    COAST = 9
    RECOVERY_DROGUE = 10
    RECOVERY_MAIN = 11
    LANDED = 12