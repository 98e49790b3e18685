from dataclasses import replace

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


def test_mode_flags_from_value():
    flags = MavModeFlag(129)
    assert flags == MavModeFlag.SAFETY_ARMED | MavModeFlag.CUSTOM_MODE_ENABLED
    assert MavModeFlag.SAFETY_ARMED in flags
    assert MavModeFlag.HIL_ENABLED not in flags


def test_empty_mode_flags_have_no_armed_bit():
    assert MavModeFlag.SAFETY_ARMED not in Heartbeat().base_mode


def test_heartbeat_defaults_and_replace():
    heartbeat = replace(Heartbeat(), type_=MavType.ROCKET, system_status=MavState.ACTIVE)
    assert heartbeat.type_ is MavType.ROCKET
    assert heartbeat.autopilot is MavAutopilot.GENERIC
    assert heartbeat.system_status is MavState.ACTIVE
    assert heartbeat == Heartbeat(type_=MavType.ROCKET, system_status=MavState.ACTIVE)


def test_states_are_ordered():
    states = [
        MavState(state.value)
        for state in (
            MavState.UNINIT,
            MavState.BOOT,
            MavState.ACTIVE,
            MavState.FLIGHT_TERMINATION,
        )
    ]
    assert all(lower < higher for lower, higher in zip(states, states[1:]))


def test_message_defaults_are_zero():
    assert LocalPositionNed() == LocalPositionNed(0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
    assert Attitude().roll == 0.0
    assert Altitude().time_usec == 0
    assert VfrHud().throttle == 0
    assert SysStatus().load == 0
    assert RadioStatus() == RadioStatus(0, 0, 0, 0, 0, 0, 0)
    assert SystemTime().time_boot_ms == 0


def test_messages_are_mutable():
    position = LocalPositionNed()
    position.z = -12.5
    assert position.z == -12.5