"""Timing constants and errors of the telemetry protocol."""

from __future__ import annotations

DOWNLINK_MESSAGE_INTERVAL_MS = 32
"""Interval between downlink messages in ms; a power of two so the hopping
sequence lines up with overflows of the packet time."""

UPLINK_HOP_INTERVAL_MS = 128
"""Interval between uplink frequency hops in ms."""


class TelemetryError(Exception):
    """Base class for errors while encoding or decoding telemetry packets."""


class SerializationError(TelemetryError):
    """A payload could not be serialized or deserialized."""

    def __init__(self, reason: object) -> None:
        super().__init__(f"Serialization error: {reason}")
        self.reason = reason


class UnknownMessageIdError(TelemetryError):
    """A packet carried a message identifier that is not known."""

    def __init__(self, message_id: int) -> None:
        super().__init__(f"Unknown message id: {message_id}")
        self.message_id = message_id


class HmacMismatchError(TelemetryError):
    """The packet's HMAC did not match its contents."""

    def __init__(self) -> None:
        super().__init__("HMAC Mismatch")