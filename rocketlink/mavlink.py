"""The MAVLink messages and enumerations exchanged over the telemetry link."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, IntFlag


class MavState(IntEnum):
    UNINIT = 0
    BOOT = 1
    CALIBRATING = 2
    STANDBY = 3
    ACTIVE = 4
    CRITICAL = 5
    EMERGENCY = 6
    POWEROFF = 7
    FLIGHT_TERMINATION = 8


class MavType(IntEnum):
    GENERIC = 0
    FIXED_WING = 1
    QUADROTOR = 2
    COAXIAL = 3
    HELICOPTER = 4
    ANTENNA_TRACKER = 5
    GCS = 6
    AIRSHIP = 7
    FREE_BALLOON = 8
    ROCKET = 9
    GROUND_ROVER = 10


class MavAutopilot(IntEnum):
    GENERIC = 0
    RESERVED = 1
    SLUGS = 2
    ARDUPILOTMEGA = 3
    OPENPILOT = 4
    GENERIC_WAYPOINTS_ONLY = 5
    GENERIC_WAYPOINTS_AND_SIMPLE_NAVIGATION_ONLY = 6
    GENERIC_MISSION_FULL = 7
    INVALID = 8
    PPZ = 9
    UDB = 10
    FP = 11
    PX4 = 12


class MavModeFlag(IntFlag):
    CUSTOM_MODE_ENABLED = 1
    TEST_ENABLED = 2
    AUTO_ENABLED = 4
    GUIDED_ENABLED = 8
    STABILIZE_ENABLED = 16
    HIL_ENABLED = 32
    MANUAL_INPUT_ENABLED = 64
    SAFETY_ARMED = 128


@dataclass
class Heartbeat:
    type_: MavType = MavType.GENERIC
    autopilot: MavAutopilot = MavAutopilot.GENERIC
    system_status: MavState = MavState.UNINIT
    base_mode: MavModeFlag = MavModeFlag(0)
    custom_mode: int = 0
    mavlink_version: int = 0


@dataclass
class LocalPositionNed:
    time_boot_ms: int = 0
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    vz: float = 0.0


@dataclass
class Attitude:
    time_boot_ms: int = 0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    rollspeed: float = 0.0
    pitchspeed: float = 0.0
    yawspeed: float = 0.0


@dataclass
class Altitude:
    time_usec: int = 0
    altitude_monotonic: float = 0.0
    altitude_amsl: float = 0.0
    altitude_local: float = 0.0
    altitude_relative: float = 0.0
    altitude_terrain: float = 0.0
    bottom_clearance: float = 0.0


@dataclass
class VfrHud:
    airspeed: float = 0.0
    groundspeed: float = 0.0
    heading: int = 0
    throttle: int = 0
    alt: float = 0.0
    climb: float = 0.0


@dataclass
class SysStatus:
    onboard_control_sensors_present: int = 0
    onboard_control_sensors_enabled: int = 0
    onboard_control_sensors_health: int = 0
    load: int = 0
    voltage_battery: int = 0
    current_battery: int = 0
    battery_remaining: int = 0
    drop_rate_comm: int = 0
    errors_comm: int = 0
    errors_count1: int = 0
    errors_count2: int = 0
    errors_count3: int = 0
    errors_count4: int = 0


@dataclass
class RadioStatus:
    rssi: int = 0
    remrssi: int = 0
    txbuf: int = 0
    noise: int = 0
    remnoise: int = 0
    rxerrors: int = 0
    fixed: int = 0


@dataclass
class SystemTime:
    time_unix_usec: int = 0
    time_boot_ms: int = 0