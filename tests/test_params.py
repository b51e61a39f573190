import math

import numpy as np
import pytest

from lidarodom.geometry import get_transformation
from lidarodom.messages import Imu
from lidarodom.params import FLT_MAX, Params


def test_empty_mapping_gives_defaults():
    params = Params.from_mapping({})
    assert params.n_scan == 16
    assert params.horizon_scan == 1800
    assert params.edge_threshold == pytest.approx(0.1)
    assert params.z_tollerance == FLT_MAX
    assert np.array_equal(params.ext_rot, np.eye(3))


def test_source_names_and_prefixes_are_understood():
    params = Params.from_mapping(
        {"sam/N_SCAN": 32, "edgeThreshold": 1.0, "/PROJECT_NAME": "lvi", "savePCD": True}
    )
    assert params.n_scan == 32
    assert params.edge_threshold == 1.0
    assert params.project_name == "lvi"
    assert params.save_pcd is True


def test_field_names_accepted_and_unknown_ignored():
    params = Params.from_mapping({"horizon_scan": "900", "somethingElse": 3})
    assert params.horizon_scan == 900


def test_extrinsics_parsed_row_major():
    params = Params.from_mapping(
        {"extrinsicRot": [0, -1, 0, 1, 0, 0, 0, 0, 1], "extrinsicTrans": [1, 2, 3]}
    )
    assert params.ext_rot[0, 1] == -1.0
    assert params.ext_rot[1, 0] == 1.0
    assert params.ext_trans.tolist() == [1.0, 2.0, 3.0]


def test_extrinsic_wrong_length_raises():
    with pytest.raises(ValueError):
        Params.from_mapping({"extrinsicRot": [1, 0, 0]})


def test_bool_setting_rejects_strings():
    with pytest.raises(TypeError):
        Params.from_mapping({"useGpsElevation": "yes"})


def test_identity_extrinsics_leave_imu_unchanged():
    imu = Imu(
        stamp=2.0,
        orientation=(0.0, 0.0, 0.0, 1.0),
        angular_velocity=(0.1, 0.2, 0.3),
        linear_acceleration=(1.0, 2.0, 9.8),
    )
    out = Params().imu_converter(imu)
    assert out.stamp == 2.0
    assert out.linear_acceleration == pytest.approx(imu.linear_acceleration)
    assert out.angular_velocity == pytest.approx(imu.angular_velocity)
    assert out.rpy() == pytest.approx((0.0, 0.0, 0.0))


def test_rotation_extrinsic_rotates_vectors():
    params = Params(ext_rot=get_transformation(0, 0, 0, 0, 0, math.pi / 2)[:3, :3])
    out = params.imu_converter(Imu(linear_acceleration=(1, 0, 0), angular_velocity=(0, 1, 0)))
    assert out.linear_acceleration == pytest.approx((0.0, 1.0, 0.0), abs=1e-12)
    assert out.angular_velocity == pytest.approx((-1.0, 0.0, 0.0), abs=1e-12)


def test_rpy_extrinsic_applied_to_orientation():
    params = Params(ext_rpy=get_transformation(0, 0, 0, 0, 0, math.pi / 2)[:3, :3])
    out = params.imu_converter(Imu())
    assert out.rpy()[2] == pytest.approx(math.pi / 2)


def test_zero_orientation_rejected():
    with pytest.raises(ValueError):
        Params().imu_converter(Imu(orientation=(0.0, 0.0, 0.0, 0.0)))