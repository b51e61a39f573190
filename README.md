# lidarodom

Building blocks for lidar odometry on NumPy and SciPy. The package works on
range-image ordered point clouds, held as `(N, >=3)` NumPy arrays whose first
three columns are x, y and z (a fourth column is usually intensity):

- **Feature extraction**: per-point curvature along each scan ring, rejection
  of occluded and parallel-beam points, and selection of edge (corner) and
  planar (surface) features in six sectors per ring.
- **Scan-to-map matching**: point-to-line and point-to-plane residuals against
  local feature maps, solved by Gauss-Newton with degeneracy handling.
- **Geometry and poses**: homogeneous transforms, roll/pitch/yaw, quaternions,
  slerp, and a `Pose3` type with compose, inverse, `between`, retract and local.
- **Point cloud utilities**: voxel-grid down-sampling, radius and k-nearest
  search, and ASCII PCD writing.

## Modules

| Module | What it holds |
| --- | --- |
| `lidarodom.geometry` | `get_transformation`, `translation_and_euler`, `quaternion_from_rpy`, `rpy_from_quaternion`, `quaternion_multiply`, `slerp`, `point_distance`, `transform_points` |
| `lidarodom.poses` | `Pose3` |
| `lidarodom.messages` | `Imu`, `Odometry`, `PoseStamped`, `CloudInfo` records |
| `lidarodom.params` | `Params` with defaults, loaded from a mapping; IMU-to-lidar conversion |
| `lidarodom.cloud` | `voxel_downsample`, `radius_search`, `nearest_k`, `write_pcd` |
| `lidarodom.features` | `FeatureExtractor`, `FeatureResult`, `compute_curvature` |
| `lidarodom.scan_matching` | `ScanMatcher`, `MatchResult`, `corner_coefficients`, `surf_coefficients`, `constrain` |

## Usage

### Settings

Every setting has a default. `Params.from_mapping` overrides them from any
mapping, such as a parsed YAML or JSON file. Keys may be the configuration
names (`N_SCAN`, `edgeThreshold`, ...), optionally behind a namespace such as
`sam/`, or the field names (`n_scan`, `edge_threshold`, ...). Unknown keys are
ignored; a non-boolean value for a boolean setting raises `TypeError`.

```python
from lidarodom.params import Params

params = Params.from_mapping({
    "sam/N_SCAN": 16,
    "Horizon_SCAN": 1800,
    "edgeThreshold": 0.1,
    "surfThreshold": 0.1,
    "extrinsicRot": [1, 0, 0, 0, 1, 0, 0, 0, 1],
})
```

`params.imu_converter(imu)` rotates an `Imu` record's acceleration, angular
rate and orientation into the lidar frame using the `extrinsicRot` and
`extrinsicRPY` settings; it raises `ValueError` if the resulting orientation
quaternion is degenerate.

### Transforms and poses

Transforms are plain 4x4 arrays built from a translation and
roll/pitch/yaw (R = Rz(yaw) Ry(pitch) Rx(roll)):

```python
import numpy as np
from lidarodom.geometry import get_transformation, translation_and_euler, transform_points

matrix = get_transformation(1.0, 2.0, 0.0, 0.0, 0.0, 0.5)
x, y, z, roll, pitch, yaw = translation_and_euler(matrix)
moved = transform_points(matrix, np.array([[1.0, 0.0, 0.0, 7.0]]))  # intensity kept
```

```python
import numpy as np
from lidarodom.poses import Pose3

a = Pose3.from_rpy(0.0, 0.0, 0.1, 1.0, 0.0, 0.0)
b = Pose3.from_rpy(0.0, 0.0, 0.3, 2.0, 1.0, 0.0)
relative = a.between(b)
assert np.allclose(a.compose(relative).local(b), 0.0)
```

Tangent vectors for `retract` and `local` are ordered
`(wx, wy, wz, vx, vy, vz)`. `to_quaternion` returns `(w, x, y, z)`.

### Point clouds

```python
from lidarodom.cloud import voxel_downsample, radius_search, nearest_k, write_pcd

small = voxel_downsample(cloud, 0.2)            # mean of each voxel, all columns
idx, d2 = radius_search(cloud, (0, 0, 0), 5.0)  # nearest first
idx, d2 = nearest_k(cloud, queries, 5)          # shape (M, 5) each
write_pcd("cloud.pcd", small)                   # fields x y z intensity
```

### Feature extraction

A deskewed cloud comes with a `CloudInfo` holding per-ring start and end
indices, each point's column index and range:

```python
from lidarodom.features import FeatureExtractor

extractor = FeatureExtractor(params)
result = extractor.extract(cloud, info)
corners, surfaces = result.corners, result.surfaces
```

Each ring is split into six sectors; at most 20 edge points are taken per
sector, and the planar points of each ring are voxel down-sampled with
`odometrySurfLeafSize`. Inconsistent ring or range data raises `ValueError`.

### Scan-to-map matching

```python
from lidarodom.scan_matching import ScanMatcher

matcher = ScanMatcher(params)
match = matcher.match(guess, corners, surfaces, corner_map, surf_map)
roll, pitch, yaw, x, y, z = match.transform
```

`guess` is `(roll, pitch, yaw, x, y, z)`. The matcher runs up to 30
iterations, reports `converged`, `iterations` and `degenerate`, and clamps
roll, pitch and z to `rotation_tollerance` and `z_tollerance`. When the scan
has no more than `edgeFeatureMinValidNum` edge or `surfFeatureMinValidNum`
planar features, it logs a warning and returns the guess with
`optimized=False`.

## What the package does not do

The package offers the front-end pieces only. It has no pose-graph
optimisation, no loop-closure detection or ICP alignment, and no mapping back
end that keeps key frames, builds local maps for matching or assembles a
global map; callers supply the feature maps passed to `ScanMatcher.match`
themselves. It does not subscribe to or publish sensor streams and provides
no command-line program. `write_pcd` writes single clouds, but nothing saves a
whole trajectory or map for you.

## Requirements

Python 3.10 or later, NumPy and SciPy. The test suite uses pytest and is
available through the `test` extra.