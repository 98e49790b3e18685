# rocketlink

Flight state estimation and a compact, authenticated, frequency-hopping
telemetry protocol for rockets and other vehicles.

## What it contains

- **State estimation**: `rocketlink.estimator.StateEstimator` takes readings
  from a gyroscope, two accelerometers, a magnetometer, a barometer and GPS
  (`GpsDatum`). It runs a Mahony attitude filter
  (`rocketlink.filters.MahonyFilter`) and a nine-state Kalman filter
  (`rocketlink.filters.KalmanFilter`). From these it reports position,
  velocity, acceleration, altitude above sea level and above ground, maximum
  altitude, latitude and longitude, and Mach number. Its settings are held in
  `StateEstimatorSettings`. The attitude filter gains change with the current
  `rocketlink.modes.FlightMode`: during `BURN` and `COAST` the accelerometer
  is ignored for attitude, and during `BURN` the orientation is not updated at
  all. The estimator does not predict apogee: `apogee_asl()` and
  `apogee_agl()` always return `None`.
- **Link configuration**: `rocketlink.config.LinkConfig` holds the spreading
  factor, bandwidth, coding rate, preamble length, frequency mask, binding
  phrase, hopping interval and HMAC key of one link.
  `LinkConfig.sequence()` derives a 64-slot hopping sequence over the 14
  channels in `FREQUENCIES` (863.25–869.75 MHz). To build it, the binding
  phrase is hashed with SipHash-2-4 (`rocketlink.siphash.siphash24`) and the
  hash seeds a ChaCha20 generator (`rocketlink.rng.ChaCha20Rng`).
  `LinkConfig.frequency(t)` gives the frequency to use at packet time `t`.
  `DEFAULT_DOWNLINK_CONFIG` and `DEFAULT_UPLINK_CONFIG` are ready-made
  configurations.
- **Packets**: every packet is 16 bytes.
  - Downlink packets (`rocketlink.downlink`) carry the packet time, a 5-bit
    message id, a payload and a 16-bit SipHash HMAC. Two messages are
    defined: `HeartbeatMessage` and `StatusMessage`.
  - Uplink packets (`rocketlink.uplink`) carry an 11-bit sequence number, a
    message id and a 64-bit SipHash HMAC. The messages are `UplinkHeartbeat`
    and `SetFlightModeMessage`.

  Payloads are written in the postcard wire format by `rocketlink.postcard`.
  Decoding raises `HmacMismatchError` or `UnknownMessageIdError`, and payload
  problems raise `SerializationError`. All three are subclasses of
  `rocketlink.protocol.TelemetryError`.
- **MAVLink data**: `rocketlink.mavlink` defines the MAVLink messages and
  enumerations that are packed into packets and recovered from them. These
  include `Heartbeat`, `LocalPositionNed`, `Attitude`, `Altitude`, `VfrHud`,
  `SysStatus`, `RadioStatus` and `SystemTime`.
- **Radio tasks**: `rocketlink.receiver.HoppingReceiver` and
  `rocketlink.transmitter.HoppingTransmitter` are asyncio coroutines. They run
  against any object that implements the `rocketlink.radio.Radio` protocol.
  - The receiver's `run_downlink` sweeps the band until a vehicle is heard,
    then follows the vehicle's hops and passes on the recovered MAVLink
    messages.
  - The receiver's `run_uplink` listens for uplink commands in the slots that
    the downlink timing gives.
  - The transmitter's `run_downlink` sends each downlink message on the
    frequency of its time slot.
  - The transmitter's `run_uplink` times uplink packets around the downlink
    traffic. When there is no downlink connection, it sends on every uplink
    frequency instead.

  Values pass between tasks through `rocketlink.channels.QueueChannel` (a
  bounded queue) and `rocketlink.channels.Watch` (which keeps only the latest
  value).

## What it does not do

There is no driver for any actual LoRa transceiver: `rocketlink.radio.Radio`
is only an interface, and you supply the implementation. The package has no
command-line program, and it does not write logs or telemetry to storage.

## Installation

```
pip install .
```

## Example

State estimation:

```python
from rocketlink.estimator import StateEstimator, StateEstimatorSettings
from rocketlink.modes import FlightMode

estimator = StateEstimator(1000.0, StateEstimatorSettings())
estimator.update(
    0, FlightMode.ARMED,
    (0.1, -0.5, 0.3),          # gyroscope, deg/s
    (0.6, -3.1, -14.0),        # primary accelerometer, m/s^2
    (0.6, -3.1, -14.0),        # high-G accelerometer, m/s^2
    (50.0, -0.5, 0.1),         # magnetometer
    123.4,                     # barometric altitude, m
    None,                      # no GPS datum
)
print(estimator.altitude_asl(), estimator.vertical_speed())
```

Encoding and decoding a downlink packet:

```python
from rocketlink.config import DEFAULT_DOWNLINK_CONFIG
from rocketlink.downlink import HeartbeatMessage, decode_downlink, encode_downlink
from rocketlink.mavlink import Attitude, Heartbeat, LocalPositionNed

message = HeartbeatMessage.pack(
    Heartbeat(custom_mode=3), LocalPositionNed(z=-120.0), Attitude(roll=0.1)
)
hmac_key = DEFAULT_DOWNLINK_CONFIG.hmac_key
packet = encode_downlink(message, 4096, hmac_key)
time, decoded = decode_downlink(packet, hmac_key)
```

Only part of the time survives the trip. Bit 15 is dropped, and bits 0–4 are
not sent at all. Times that are multiples of 32 ms (the downlink message
interval) round-trip exactly.

A receiver is built from a radio, a link configuration, a sender for its
output and a decoder. Pass `decode_downlink` or `decode_uplink` as the
decoder:

```python
from rocketlink.channels import QueueChannel
from rocketlink.receiver import HoppingReceiver

receiver = HoppingReceiver(my_radio, DEFAULT_DOWNLINK_CONFIG, QueueChannel(64), decode_downlink)
```

Here `my_radio` is your own implementation of `rocketlink.radio.Radio`.

## Running the tests

```
pip install .[test]
pytest
```