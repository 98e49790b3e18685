import math

import numpy as np
import pytest

from rocketlink.filters import KalmanFilter, MahonyFilter


def _scalar_filter():
    return KalmanFilter(
        x=[0.0], F=[[1.0]], H=[[1.0]], P=[[10.0]], Q=[[0.0]], R=[[1.0]]
    )


def _two_state_filter():
    return KalmanFilter(
        x=[0.0, 0.0],
        F=[[1.0, 0.1], [0.0, 1.0]],
        H=[[1.0, 0.0]],
        P=np.eye(2) * 5.0,
        Q=np.eye(2) * 0.01,
        R=[[0.5]],
    )


def _total_variance(matrix):
    return float(np.sum(np.diag(matrix)))


def test_predict_with_identity_keeps_state_and_covariance():
    kf = KalmanFilter(
        x=[1.0, -2.0], F=np.eye(2), H=[[1.0, 0.0]], P=np.eye(2), Q=np.zeros((2, 2)), R=[[1.0]]
    )
    kf.predict()
    np.testing.assert_allclose(kf.x, [1.0, -2.0])
    np.testing.assert_allclose(kf.P, np.eye(2))


def test_predict_applies_transition():
    kf = KalmanFilter(
        x=[0.0, 2.0],
        F=[[1.0, 1.0], [0.0, 1.0]],
        H=[[1.0, 0.0]],
        P=np.eye(2),
        Q=np.zeros((2, 2)),
        R=[[1.0]],
    )
    kf.predict()
    np.testing.assert_allclose(kf.x, [2.0, 2.0])


def test_update_converges_to_constant_measurement():
    kf = _scalar_filter()
    for _ in range(200):
        kf.predict()
        kf.update([5.0])
    assert kf.x[0] == pytest.approx(5.0, abs=1e-2)


def test_update_reduces_uncertainty():
    kf = _two_state_filter()
    kf.predict()
    before = _total_variance(kf.P)
    kf.update([1.0])
    assert _total_variance(kf.P) < before


def test_update_keeps_covariance_symmetric():
    kf = _two_state_filter()
    for z in (1.0, 1.2, 0.9, 1.4):
        kf.predict()
        kf.update([z])
    np.testing.assert_allclose(kf.P, kf.P.T, atol=1e-12)


def test_steadystate_with_zero_gain_keeps_state():
    kf = _two_state_filter()
    kf.update_steadystate([3.0])
    np.testing.assert_allclose(kf.x, [0.0, 0.0])


def test_steadystate_reuses_gain_of_full_update():
    full = _two_state_filter()
    steady = _two_state_filter()
    full.update([2.0])
    steady.K = full.K.copy()
    steady.update_steadystate([2.0])
    np.testing.assert_allclose(steady.x, full.x)


def test_update_with_singular_innovation_raises():
    kf = KalmanFilter(
        x=[0.0], F=[[1.0]], H=[[0.0]], P=[[1.0]], Q=[[0.0]], R=[[0.0]]
    )
    with pytest.raises(np.linalg.LinAlgError):
        kf.update([1.0])


def test_mahony_level_and_aligned_stays_identity():
    ahrs = MahonyFilter(0.001, 0.5, 0.0)
    for _ in range(100):
        q = ahrs.update([0.0, 0.0, 0.0], [0.0, 0.0, 9.81], [1.0, 0.0, 0.0])
    np.testing.assert_allclose(q, [1.0, 0.0, 0.0, 0.0], atol=1e-9)


def test_mahony_keeps_unit_norm():
    ahrs = MahonyFilter(0.01, 0.3, 0.05)
    for _ in range(300):
        q = ahrs.update([0.2, -0.1, 0.4], [0.5, -3.0, -14.0], [50.0, -0.5, 0.1])
    assert np.linalg.norm(q) == pytest.approx(1.0)


def test_mahony_integrates_gyro_without_feedback():
    ahrs = MahonyFilter(0.001, 0.0, 0.0)
    for _ in range(1000):
        q = ahrs.update([0.0, 0.0, 1.0], [0.0, 0.0, 1.0], [1.0, 0.0, 0.0])
    np.testing.assert_allclose(q, [math.cos(0.5), 0.0, 0.0, math.sin(0.5)], atol=1e-3)


def test_mahony_feedback_corrects_tilt():
    start = np.array([math.cos(0.15), math.sin(0.15), 0.0, 0.0])
    ahrs = MahonyFilter(0.01, 2.0, 0.0, quat=start)
    for _ in range(500):
        q = ahrs.update([0.0, 0.0, 0.0], [0.0, 0.0, 1.0], [1.0, 0.0, 0.0])
    assert abs(q[0]) > start[0]


def test_mahony_integral_term_stays_zero_without_ki():
    ahrs = MahonyFilter(0.01, 1.0, 0.0)
    ahrs.update([0.0, 0.0, 0.0], [0.0, 1.0, 1.0], [1.0, 0.0, 0.0])
    np.testing.assert_allclose(ahrs.e_int, np.zeros(3))


def test_mahony_zero_accelerometer_raises():
    ahrs = MahonyFilter(0.01, 1.0, 0.0)
    with pytest.raises(ValueError):
        ahrs.update([0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [1.0, 0.0, 0.0])


def test_mahony_zero_magnetometer_raises():
    ahrs = MahonyFilter(0.01, 1.0, 0.0)
    with pytest.raises(ValueError):
        ahrs.update([0.0, 0.0, 0.0], [0.0, 0.0, 1.0], [0.0, 0.0, 0.0])