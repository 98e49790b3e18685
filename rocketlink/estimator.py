"""State estimation combining attitude and Kalman filtering of sensor data."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from rocketlink.filters import KalmanFilter, MahonyFilter
from rocketlink.modes import FlightMode

GRAVITY = 9.80665
GPS_NO_FIX_STD_DEV = 999_999.0

_U32_MASK = 0xFFFF_FFFF
_METERS_PER_DEGREE = 111_111.0
_SPEED_OF_SOUND = 343.2
_HIGH_G_THRESHOLD = 14.0 * GRAVITY
_COVARIANCE_UPDATE_INTERVAL = 10

_ASCENT_MODES = frozenset({FlightMode.BURN, FlightMode.COAST})
_FLIGHT_MODES = frozenset(
    {
        FlightMode.BURN,
        FlightMode.COAST,
        FlightMode.RECOVERY_DROGUE,
        FlightMode.RECOVERY_MAIN,
    }
)


@dataclass
class GpsDatum:
    """A single GPS fix; ``hdop`` is horizontal dilution of precision times 100."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    hdop: int = 0


@dataclass
class StateEstimatorSettings:
    """Filter gains and standard deviations for the state estimator."""

    mahony_kp: float = 0.1
    mahony_ki: float = 0.0
    mahony_kp_ascent: float = 0.1
    mahony_ki_ascent: float = 0.0
    std_dev_accelerometer: float = 0.5
    std_dev_barometer: float = 10.0
    std_dev_barometer_transsonic: float = 5000.0
    std_dev_process: float = 0.5


def _optional_vector(value) -> Optional[np.ndarray]:
    if value is None:
        return None
    return np.asarray(value, dtype=float).reshape(3)


def _rotate(quat: np.ndarray, vector: np.ndarray) -> np.ndarray:
    """Rotate ``vector`` by the unit quaternion ``quat`` (``[w, x, y, z]``)."""
    w = quat[0]
    u = quat[1:]
    t = 2.0 * np.cross(u, vector)
    return vector + w * t + np.cross(u, t)


def _build_kalman(dt: float, settings: StateEstimatorSettings) -> KalmanFilter:
    transition = np.eye(9)
    process = np.zeros((9, 9))
    for axis in range(3):
        pos, vel, acc = axis, axis + 3, axis + 6
        transition[pos, vel] = dt
        transition[pos, acc] = 0.5 * dt * dt
        transition[vel, acc] = dt

        process[pos, pos] = 0.25 * dt**4
        process[pos, vel] = process[vel, pos] = 0.5 * dt**3
        process[pos, acc] = process[acc, pos] = 0.5 * dt**2
        process[vel, vel] = dt**2
        process[vel, acc] = process[acc, vel] = dt
        process[acc, acc] = 1.0

    measurement = np.zeros((6, 9))
    measurement[0, 2] = 1.0  # barometer measures Z position
    measurement[1, 6] = 1.0  # acceleration X
    measurement[2, 7] = 1.0  # acceleration Y
    measurement[3, 8] = 1.0  # acceleration Z
    measurement[4, 0] = 1.0  # GPS X position
    measurement[5, 1] = 1.0  # GPS Y position

    acc_var = settings.std_dev_accelerometer**2
    noise = np.diag(
        [
            settings.std_dev_barometer**2,
            acc_var,
            acc_var,
            acc_var,
            GPS_NO_FIX_STD_DEV**2,
            GPS_NO_FIX_STD_DEV**2,
        ]
    )

    return KalmanFilter(
        x=np.zeros(9),
        F=transition,
        H=measurement,
        P=np.eye(9) * 999.0,
        Q=process * settings.std_dev_process**2,
        R=noise,
    )


class StateEstimator:
    """Estimates orientation, position, velocity and acceleration of the vehicle.

    Times are millisecond counters that wrap around at 32 bits.
    """

    def __init__(
        self,
        main_loop_freq_hertz: float,
        settings: Optional[StateEstimatorSettings] = None,
        initial_orientation=None,
    ) -> None:
        self._settings = settings if settings is not None else StateEstimatorSettings()
        dt = 1.0 / main_loop_freq_hertz
        self._ahrs = MahonyFilter(
            dt, self._settings.mahony_kp, self._settings.mahony_ki, initial_orientation
        )
        self.kalman = _build_kalman(dt, self._settings)
        self._time = 0
        self._mode = FlightMode.IDLE
        self._mode_time = 0
        self._takeoff_time = 0
        self.orientation: Optional[np.ndarray] = None
        self._acceleration: Optional[np.ndarray] = None
        self._acceleration_world: Optional[np.ndarray] = None
        self.altitude_ground = 0.0
        self.altitude_max = -10_000.0
        self._gps_origin: Optional[np.ndarray] = None
        self._last_covariance_update = 0
        self.last_apogee_error = 0.0

    def _apply_measurements(
        self, altitude_baro: float, accel: np.ndarray, gps: Optional[GpsDatum]
    ) -> None:
        std_dev = self._hdop_to_std_dev(None if gps is None else gps.hdop)
        self.kalman.R[4, 4] = std_dev
        self.kalman.R[5, 5] = std_dev

        if gps is not None:
            global_pos = np.array(
                [gps.latitude or 0.0, gps.longitude or 0.0, gps.altitude or 0.0]
            )
            if self._gps_origin is None:
                self._gps_origin = global_pos
            pos = self._global_to_local(global_pos)
        else:
            pos = self.position_local()

        self.kalman.predict()
        z = np.array([altitude_baro, accel[0], accel[1], accel[2], pos[0], pos[1]])

        # Updating the state covariance is expensive, so it is only done
        # with GPS data or after a while.
        elapsed = (self._time - self._last_covariance_update) & _U32_MASK
        if gps is not None or elapsed > _COVARIANCE_UPDATE_INTERVAL:
            self.kalman.update(z)
            self._last_covariance_update = self._time
        else:
            self.kalman.update_steadystate(z)

    def update(
        self,
        time: int,
        mode: FlightMode,
        gyroscope=None,
        accelerometer1=None,
        accelerometer2=None,
        magnetometer=None,
        barometer: Optional[float] = None,
        gps_datum: Optional[GpsDatum] = None,
    ) -> None:
        """Feed one set of sensor readings taken at ``time`` in ``mode``."""
        self._time = time & _U32_MASK

        if mode != self._mode:
            if mode == FlightMode.BURN:
                self._takeoff_time = self._time
            self._mode = mode
            self._mode_time = self._time

            # In the free-fall modes the accelerometer is ignored for attitude.
            if self._mode in _ASCENT_MODES:
                self._ahrs.acc_gain = 0.0
                self._ahrs.kp = self._settings.mahony_kp_ascent
                self._ahrs.ki = self._settings.mahony_ki_ascent
            else:
                self._ahrs.acc_gain = 1.0
                self._ahrs.kp = self._settings.mahony_kp
                self._ahrs.ki = self._settings.mahony_ki

        acc1 = _optional_vector(accelerometer1)
        acc2 = _optional_vector(accelerometer2)
        # Prefer the less noisy primary unless both are near their range limit.
        if (
            acc1 is not None
            and acc2 is not None
            and np.max(np.abs(acc1)) > _HIGH_G_THRESHOLD
            and np.max(np.abs(acc2)) > _HIGH_G_THRESHOLD
        ):
            acc = acc2
        elif acc1 is not None:
            acc = acc1
        else:
            acc = acc2
        self._acceleration = None if acc is None else self._correct_orientation(acc)

        gyro = _optional_vector(gyroscope)
        mag = _optional_vector(magnetometer)
        if gyro is not None and self._acceleration is not None and mag is not None:
            gyro = self._correct_orientation(gyro)
            mag = self._correct_orientation(mag)

            # During burn the rocket is assumed to fly straight.
            if self._mode != FlightMode.BURN:
                try:
                    self.orientation = self._ahrs.update(
                        np.deg2rad(gyro), self._acceleration, mag
                    )
                except ValueError:
                    self.orientation = None

            if self.orientation is not None:
                self._acceleration_world = _rotate(
                    self.orientation, self._acceleration
                ) - np.array([0.0, 0.0, GRAVITY])
            else:
                self._acceleration_world = None
        else:
            self.orientation = None
            self._acceleration_world = None

        # Barometer readings become unreliable in the transsonic region.
        mach = self.mach() if self._mode in _ASCENT_MODES else 0.0
        f = (min(max(mach, 0.1), 1.0) - 0.1) / 0.9
        self.kalman.R[0, 0] = (
            self._settings.std_dev_barometer
            + f * self._settings.std_dev_barometer_transsonic
        )

        altitude_baro = None
        if barometer is not None and not math.isnan(barometer) and -100.0 < barometer < 12_000.0:
            altitude_baro = float(barometer)
        accel = self._acceleration_world
        if accel is not None and np.isnan(accel).any():
            accel = None
        gps = gps_datum if gps_datum is not None and self.gps_reliable(gps_datum) else None

        if accel is not None and altitude_baro is not None:
            self._apply_measurements(altitude_baro, accel, gps)
        elif accel is not None:
            # Inertial navigation on the predicted altitude.
            self._apply_measurements(self.altitude_asl(), accel, gps)
        elif altitude_baro is not None:
            self._apply_measurements(altitude_baro, np.zeros(3), gps)

        if mode < FlightMode.ARMED:
            self.altitude_ground = self.altitude_asl()

        if mode == FlightMode.LANDED:
            pass
        elif mode in _FLIGHT_MODES:
            self.altitude_max = max(self.altitude_max, self.altitude_asl())
        else:
            self.altitude_max = self.altitude_asl()

    def acceleration_vehicle(self) -> Optional[np.ndarray]:
        """Vehicle-frame acceleration after accelerometer switching."""
        return None if self._acceleration is None else self._acceleration.copy()

    def acceleration_world_raw(self) -> Optional[np.ndarray]:
        """World-frame acceleration from the latest sample, gravity removed."""
        return None if self._acceleration_world is None else self._acceleration_world.copy()

    def position_local(self) -> np.ndarray:
        return self.kalman.x[0:3].copy()

    def latitude(self) -> Optional[float]:
        if self._gps_origin is None:
            return None
        return float(self._local_to_global(self.position_local())[0])

    def longitude(self) -> Optional[float]:
        if self._gps_origin is None:
            return None
        return float(self._local_to_global(self.position_local())[1])

    def velocity(self) -> np.ndarray:
        return self.kalman.x[3:6].copy()

    def acceleration_world(self) -> np.ndarray:
        return self.kalman.x[6:9].copy()

    def altitude_asl(self) -> float:
        return float(self.kalman.x[2])

    def altitude_agl(self) -> float:
        return self.altitude_asl() - self.altitude_ground

    def apogee_asl(self) -> Optional[float]:
        """Predicted apogee above sea level; no prediction is made."""
        return None

    def apogee_agl(self) -> Optional[float]:
        apogee = self.apogee_asl()
        return None if apogee is None else apogee - self.altitude_ground

    def ground_speed(self) -> float:
        velocity = self.velocity()
        return float(math.hypot(velocity[0], velocity[1]))

    def vertical_speed(self) -> float:
        return float(self.kalman.x[5])

    def vertical_acceleration(self) -> float:
        return float(self.kalman.x[8])

    def mach(self) -> float:
        return float(np.linalg.norm(self.velocity()) / _SPEED_OF_SOUND)

    def time_since_takeoff(self) -> int:
        return (self._time - self._takeoff_time) & _U32_MASK

    def time_in_mode(self) -> int:
        return (self._time - self._mode_time) & _U32_MASK

    def gps_reliable(self, datum: GpsDatum) -> bool:
        return (
            datum.latitude is not None
            and datum.longitude is not None
            and datum.altitude is not None
            and 0 < datum.hdop < 300
        )

    @staticmethod
    def _correct_orientation(raw: np.ndarray) -> np.ndarray:
        return raw

    @staticmethod
    def _hdop_to_std_dev(hdop: Optional[int]) -> float:
        if hdop is None:
            return GPS_NO_FIX_STD_DEV
        return (hdop / 100.0) * 0.003

    def _origin(self) -> np.ndarray:
        return self._gps_origin if self._gps_origin is not None else np.zeros(3)

    def _global_to_local(self, global_pos: np.ndarray) -> np.ndarray:
        origin = self._origin()
        lat, lng = (global_pos - origin)[:2]
        return np.array(
            [
                lng * _METERS_PER_DEGREE * math.cos(math.radians(origin[0])),
                lat * _METERS_PER_DEGREE,
                global_pos[2],
            ]
        )

    def _local_to_global(self, local: np.ndarray) -> np.ndarray:
        origin = self._origin()
        offset = np.array(
            [
                local[1] / _METERS_PER_DEGREE,
                local[0] / (_METERS_PER_DEGREE * math.cos(math.radians(origin[0]))),
                local[2],
            ]
        )
        return origin + offset