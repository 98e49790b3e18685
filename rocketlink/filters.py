"""Linear Kalman filter and Mahony attitude filter."""

from __future__ import annotations

import numpy as np


def _quat_mul(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product of two quaternions stored as ``[w, x, y, z]``."""
    aw, ax, ay, az = a
    bw, bx, by, bz = b
    return np.array(
        [
            aw * bw - ax * bx - ay * by - az * bz,
            aw * bx + ax * bw + ay * bz - az * by,
            aw * by - ax * bz + ay * bw + az * bx,
            aw * bz + ax * by - ay * bx + az * bw,
        ]
    )


def _quat_conj(q: np.ndarray) -> np.ndarray:
    return np.array([q[0], -q[1], -q[2], -q[3]])


class KalmanFilter:
    """A linear Kalman filter without control input.

    ``x`` is the state, ``F`` the transition matrix, ``H`` the measurement
    matrix, ``P`` the state covariance, ``Q`` the process covariance and ``R``
    the measurement covariance. ``K`` holds the most recently computed gain,
    which :meth:`update_steadystate` reuses.
    """

    def __init__(self, x, F, H, P, Q, R, alpha_sq: float = 1.0) -> None:
        self.x = np.array(x, dtype=float)
        self.F = np.array(F, dtype=float)
        self.H = np.array(H, dtype=float)
        self.P = np.array(P, dtype=float)
        self.Q = np.array(Q, dtype=float)
        self.R = np.array(R, dtype=float)
        self.alpha_sq = alpha_sq
        self.K = np.zeros((self.x.shape[0], self.H.shape[0]))
        self.y = np.zeros(self.H.shape[0])

    def predict(self) -> None:
        """Project the state and covariance one step ahead."""
        self.x = self.F @ self.x
        self.P = self.alpha_sq * (self.F @ self.P @ self.F.T) + self.Q

    def update(self, z) -> None:
        """Correct the state with measurement ``z``, recomputing gain and covariance."""
        z = np.asarray(z, dtype=float)
        self.y = z - self.H @ self.x
        pht = self.P @ self.H.T
        s = self.H @ pht + self.R
        self.K = pht @ np.linalg.inv(s)
        self.x = self.x + self.K @ self.y
        i_kh = np.eye(self.x.shape[0]) - self.K @ self.H
        self.P = i_kh @ self.P @ i_kh.T + self.K @ self.R @ self.K.T

    def update_steadystate(self, z) -> None:
        """Correct the state with measurement ``z`` using the stored gain only."""
        z = np.asarray(z, dtype=float)
        self.y = z - self.H @ self.x
        self.x = self.x + self.K @ self.y


class MahonyFilter:
    """Mahony attitude estimator fusing gyroscope, accelerometer and magnetometer.

    The orientation ``quat`` is a unit quaternion ``[w, x, y, z]`` rotating
    vehicle-frame vectors into the world frame.
    """

    def __init__(
        self,
        sample_period: float,
        kp: float,
        ki: float,
        quat=None,
        acc_gain: float = 1.0,
        mag_gain: float = 1.0,
    ) -> None:
        self.sample_period = sample_period
        self.kp = kp
        self.ki = ki
        self.acc_gain = acc_gain
        self.mag_gain = mag_gain
        self.quat = (
            np.array([1.0, 0.0, 0.0, 0.0])
            if quat is None
            else np.array(quat, dtype=float)
        )
        self.e_int = np.zeros(3)

    def update(self, gyroscope, accelerometer, magnetometer) -> np.ndarray:
        """Integrate one sample and return the new orientation.

        ``gyroscope`` is in rad/s. Raises ``ValueError`` if the accelerometer
        or magnetometer reading has zero length.
        """
        q = self.quat
        gyro = np.asarray(gyroscope, dtype=float)
        acc = np.asarray(accelerometer, dtype=float)
        mag = np.asarray(magnetometer, dtype=float)

        acc_norm = np.linalg.norm(acc)
        if acc_norm == 0.0:
            raise ValueError("Accelerometer norm divided by zero.")
        acc = acc / acc_norm
        mag_norm = np.linalg.norm(mag)
        if mag_norm == 0.0:
            raise ValueError("Magnetometer norm divided by zero.")
        mag = mag / mag_norm

        # Reference direction of the magnetic field in the world frame.
        h = _quat_mul(q, _quat_mul(np.array([0.0, *mag]), _quat_conj(q)))
        bx = float(np.hypot(h[1], h[2]))
        bz = float(h[3])

        w, x, y, z = q
        v = np.array(
            [
                2.0 * (x * z - w * y),
                2.0 * (w * x + y * z),
                w * w - x * x - y * y + z * z,
            ]
        )
        m = np.array(
            [
                2.0 * bx * (0.5 - y * y - z * z) + 2.0 * bz * (x * z - w * y),
                2.0 * bx * (x * y - w * z) + 2.0 * bz * (w * x + y * z),
                2.0 * bx * (w * y + x * z) + 2.0 * bz * (0.5 - x * x - y * y),
            ]
        )

        e = self.acc_gain * np.cross(acc, v) + self.mag_gain * np.cross(mag, m)

        if self.ki > 0.0:
            self.e_int = self.e_int + e * self.sample_period
        else:
            self.e_int = np.zeros(3)

        corrected = gyro + e * self.kp + self.e_int * self.ki
        q_dot = _quat_mul(q, np.array([0.0, *corrected])) * 0.5
        integrated = q + q_dot * self.sample_period
        self.quat = integrated / np.linalg.norm(integrated)
        return self.quat.copy()