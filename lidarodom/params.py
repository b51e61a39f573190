"""Configuration for the lidar odometry pipeline and IMU frame conversion."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping

import numpy as np
from scipy.spatial.transform import Rotation

from lidarodom.geometry import quaternion_multiply
from lidarodom.messages import Imu

FLT_MAX = 3.4028234663852886e38

_SOURCE_NAMES = {
    "PROJECT_NAME": "project_name",
    "robot_id": "robot_id",
    "pointCloudTopic": "point_cloud_topic",
    "imuTopic": "imu_topic",
    "odomTopic": "odom_topic",
    "gpsTopic": "gps_topic",
    "useImuHeadingInitialization": "use_imu_heading_initialization",
    "useGpsElevation": "use_gps_elevation",
    "gpsCovThreshold": "gps_cov_threshold",
    "poseCovThreshold": "pose_cov_threshold",
    "savePCD": "save_pcd",
    "savePCDDirectory": "save_pcd_directory",
    "N_SCAN": "n_scan",
    "Horizon_SCAN": "horizon_scan",
    "timeField": "time_field",
    "downsampleRate": "downsample_rate",
    "imuAccNoise": "imu_acc_noise",
    "imuGyrNoise": "imu_gyr_noise",
    "imuAccBiasN": "imu_acc_bias_n",
    "imuGyrBiasN": "imu_gyr_bias_n",
    "imuGravity": "imu_gravity",
    "extrinsicRot": "ext_rot",
    "extrinsicRPY": "ext_rpy",
    "extrinsicTrans": "ext_trans",
    "edgeThreshold": "edge_threshold",
    "surfThreshold": "surf_threshold",
    "edgeFeatureMinValidNum": "edge_feature_min_valid_num",
    "surfFeatureMinValidNum": "surf_feature_min_valid_num",
    "odometrySurfLeafSize": "odometry_surf_leaf_size",
    "mappingCornerLeafSize": "mapping_corner_leaf_size",
    "mappingSurfLeafSize": "mapping_surf_leaf_size",
    "z_tollerance": "z_tollerance",
    "rotation_tollerance": "rotation_tollerance",
    "numberOfCores": "number_of_cores",
    "mappingProcessInterval": "mapping_process_interval",
    "surroundingkeyframeAddingDistThreshold": "surroundingkeyframe_adding_dist_threshold",
    "surroundingkeyframeAddingAngleThreshold": "surroundingkeyframe_adding_angle_threshold",
    "surroundingKeyframeDensity": "surrounding_keyframe_density",
    "surroundingKeyframeSearchRadius": "surrounding_keyframe_search_radius",
    "loopClosureEnableFlag": "loop_closure_enable_flag",
    "surroundingKeyframeSize": "surrounding_keyframe_size",
    "historyKeyframeSearchRadius": "history_keyframe_search_radius",
    "historyKeyframeSearchTimeDiff": "history_keyframe_search_time_diff",
    "historyKeyframeSearchNum": "history_keyframe_search_num",
    "historyKeyframeFitnessScore": "history_keyframe_fitness_score",
    "globalMapVisualizationSearchRadius": "global_map_visualization_search_radius",
    "globalMapVisualizationPoseDensity": "global_map_visualization_pose_density",
    "globalMapVisualizationLeafSize": "global_map_visualization_leaf_size",
}

_MATRIX_SHAPES = {"ext_rot": (3, 3), "ext_rpy": (3, 3), "ext_trans": (3,)}


def _matrix(value: Any, shape: tuple[int, ...], name: str) -> np.ndarray:
    arr = np.asarray(value, dtype=float)
    if arr.size != int(np.prod(shape)):
        raise ValueError(f"{name} needs {int(np.prod(shape))} values, got {arr.size}")
    return arr.reshape(shape)


@dataclass(eq=False)
class Params:
    """All tunable settings, with the pipeline's defaults."""

    project_name: str = "sam"
    robot_id: str = "roboat"
    point_cloud_topic: str = "points_raw"
    imu_topic: str = "imu_correct"
    odom_topic: str = "odometry/imu"
    gps_topic: str = "odometry/gps"

    use_imu_heading_initialization: bool = False
    use_gps_elevation: bool = False
    gps_cov_threshold: float = 2.0
    pose_cov_threshold: float = 25.0

    save_pcd: bool = False
    save_pcd_directory: str = "/tmp/loam/"

    n_scan: int = 16
    horizon_scan: int = 1800
    time_field: str = "time"
    downsample_rate: int = 1

    imu_acc_noise: float = 0.01
    imu_gyr_noise: float = 0.001
    imu_acc_bias_n: float = 0.0002
    imu_gyr_bias_n: float = 0.00003
    imu_gravity: float = 9.80511
    ext_rot: np.ndarray = field(default_factory=lambda: np.eye(3))
    ext_rpy: np.ndarray = field(default_factory=lambda: np.eye(3))
    ext_trans: np.ndarray = field(default_factory=lambda: np.zeros(3))

    edge_threshold: float = 0.1
    surf_threshold: float = 0.1
    edge_feature_min_valid_num: int = 10
    surf_feature_min_valid_num: int = 100

    odometry_surf_leaf_size: float = 0.2
    mapping_corner_leaf_size: float = 0.2
    mapping_surf_leaf_size: float = 0.2

    z_tollerance: float = FLT_MAX
    rotation_tollerance: float = FLT_MAX

    number_of_cores: int = 2
    mapping_process_interval: float = 0.15

    surroundingkeyframe_adding_dist_threshold: float = 1.0
    surroundingkeyframe_adding_angle_threshold: float = 0.2
    surrounding_keyframe_density: float = 1.0
    surrounding_keyframe_search_radius: float = 50.0

    loop_closure_enable_flag: bool = False
    surrounding_keyframe_size: int = 50
    history_keyframe_search_radius: float = 10.0
    history_keyframe_search_time_diff: float = 30.0
    history_keyframe_search_num: int = 25
    history_keyframe_fitness_score: float = 0.3

    global_map_visualization_search_radius: float = 1e3
    global_map_visualization_pose_density: float = 10.0
    global_map_visualization_leaf_size: float = 1.0

    def __post_init__(self) -> None:
        for name, shape in _MATRIX_SHAPES.items():
            setattr(self, name, _matrix(getattr(self, name), shape, name))

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "Params":
        """Build settings from a mapping of parameter names to values.

        Keys may be the configuration names (``N_SCAN``, ``edgeThreshold``...),
        optionally prefixed with a namespace such as ``sam/``, or the field names.
        Keys that name no setting are ignored.
        """
        defaults = cls()
        field_names = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in values.items():
            short = key.strip("/").rsplit("/", 1)[-1]
            name = _SOURCE_NAMES.get(short, short)
            if name not in field_names:
                continue
            if name in _MATRIX_SHAPES:
                kwargs[name] = _matrix(value, _MATRIX_SHAPES[name], key)
                continue
            current = getattr(defaults, name)
            if isinstance(current, bool):
                if not isinstance(value, bool):
                    raise TypeError(f"{key} must be a boolean, got {value!r}")
                kwargs[name] = value
            else:
                kwargs[name] = type(current)(value)
        return cls(**kwargs)

    @property
    def ext_q_rpy(self) -> tuple[float, float, float, float]:
        """The orientation extrinsic as an ``(x, y, z, w)`` quaternion."""
        x, y, z, w = Rotation.from_matrix(self.ext_rpy).as_quat()
        return float(x), float(y), float(z), float(w)

    def imu_converter(self, imu: Imu) -> Imu:
        """Rotate an IMU measurement's acceleration, rate and attitude into the lidar frame."""
        acc = self.ext_rot @ np.asarray(imu.linear_acceleration)
        gyr = self.ext_rot @ np.asarray(imu.angular_velocity)
        q_final = quaternion_multiply(imu.orientation, self.ext_q_rpy)
        if math.sqrt(sum(c * c for c in q_final)) < 0.1:
            raise ValueError("Invalid quaternion, please use a 9-axis IMU!")
        return replace(
            imu,
            linear_acceleration=tuple(float(v) for v in acc),
            angular_velocity=tuple(float(v) for v in gyr),
            orientation=q_final,
        )