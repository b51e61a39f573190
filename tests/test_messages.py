import math

import pytest

from lidarodom.geometry import quaternion_from_rpy
from lidarodom.messages import CloudInfo, Imu, Odometry, PoseStamped


def test_imu_identity_orientation_has_zero_rpy():
    assert Imu().rpy() == pytest.approx((0.0, 0.0, 0.0))


def test_imu_rpy_round_trip():
    imu = Imu(orientation=quaternion_from_rpy(0.1, -0.2, 0.3))
    assert imu.rpy() == pytest.approx((0.1, -0.2, 0.3))


def test_imu_rejects_wrong_vector_length():
    with pytest.raises(ValueError):
        Imu(angular_velocity=(1.0, 2.0))


@pytest.mark.parametrize(
    "value, expected", [(2.6, 3), (2.4, 2), (2.5, 3), (-1.5, -2), (0.0, 0)]
)
def test_odometry_reset_id_rounds_half_away_from_zero(value, expected):
    cov = [0.0] * 36
    cov[0] = value
    assert Odometry(covariance=cov).reset_id() == expected


def test_odometry_covariance_length_checked():
    with pytest.raises(ValueError):
        Odometry(covariance=[0.0] * 35)


def test_pose_stamped_stores_tuples():
    pose = PoseStamped(stamp=1.5, position=[1, 2, 3], orientation=[0, 0, 0, 1])
    assert pose.position == (1.0, 2.0, 3.0)
    assert pose.orientation[3] == 1.0


def test_cloud_info_lists_are_independent():
    a = CloudInfo()
    b = CloudInfo()
    a.point_range.append(5.0)
    assert b.point_range == []
    assert a.point_range == [5.0]


def test_imu_orientation_converted_to_floats():
    imu = Imu(orientation=[0, 0, 1, 0])
    assert imu.orientation == (0.0, 0.0, 1.0, 0.0)
    assert abs(imu.rpy()[2]) == pytest.approx(math.pi)