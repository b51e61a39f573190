"""Edge and planar feature extraction from a range-ordered lidar scan."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from lidarodom.cloud import voxel_downsample
from lidarodom.messages import CloudInfo
from lidarodom.params import Params

_SEGMENTS = 6
_MAX_EDGES_PER_SEGMENT = 20
_NEIGHBOURS = 5
_COLUMN_GAP = 10


@dataclass
class FeatureResult:
    """Corner (edge) and surface (planar) points of one scan."""

    corners: np.ndarray
    surfaces: np.ndarray


def compute_curvature(ranges) -> np.ndarray:
    """Squared range difference against five neighbours on each side.

    The first and last five entries have no full window and are zero.
    """
    r = np.asarray(ranges, dtype=float).reshape(-1)
    out = np.zeros_like(r)
    if r.size < 2 * _NEIGHBOURS + 1:
        return out
    kernel = np.ones(2 * _NEIGHBOURS + 1)
    kernel[_NEIGHBOURS] = -2 * _NEIGHBOURS
    diff = np.convolve(r, kernel, mode="valid")
    out[_NEIGHBOURS : r.size - _NEIGHBOURS] = diff * diff
    return out


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // b
    return q if a >= 0 else -q


def _mark_occluded(ranges: np.ndarray, cols: np.ndarray, picked: np.ndarray) -> None:
    n = len(ranges)
    if n < 12:
        return
    i = np.arange(5, n - 6)
    d1, d2 = ranges[i], ranges[i + 1]
    close = np.abs(cols[i + 1] - cols[i]) < _COLUMN_GAP
    near = close & (d1 - d2 > 0.3)
    far = close & ~near & (d2 - d1 > 0.3)
    for offset in range(6):
        picked[i[near] - offset] = True
        picked[i[far] + 1 + offset] = True
    diff1 = np.abs(ranges[i - 1] - d1)
    diff2 = np.abs(ranges[i + 1] - d1)
    picked[i[(diff1 > 0.02 * d1) & (diff2 > 0.02 * d1)]] = True


def _suppress_neighbours(ind: int, cols: np.ndarray, picked: np.ndarray) -> None:
    picked[ind] = True
    n = len(cols)
    for step in (1, -1):
        for l in range(1, _NEIGHBOURS + 1):
            cur = ind + step * l
            prev = cur - step
            if not 0 <= cur < n or abs(int(cols[cur]) - int(cols[prev])) > _COLUMN_GAP:
                break
            picked[cur] = True


class FeatureExtractor:
    """Split a deskewed scan into edge and planar features, ring by ring."""

    def __init__(self, params: Params) -> None:
        self.params = params

    def extract(self, cloud, info: CloudInfo) -> FeatureResult:
        pts = np.asarray(cloud, dtype=float)
        if pts.size == 0:
            pts = np.empty((0, 4))
        if pts.ndim != 2 or pts.shape[1] < 3:
            raise ValueError(f"expected an (N, >=3) point array, got shape {pts.shape}")
        n = len(pts)
        if len(info.point_range) < n or len(info.point_col_ind) < n:
            raise ValueError("cloud info holds fewer ranges or columns than the cloud has points")
        n_scan = self.params.n_scan
        if len(info.start_ring_index) < n_scan or len(info.end_ring_index) < n_scan:
            raise ValueError(f"cloud info must hold ring indices for {n_scan} rings")

        ranges = np.asarray(info.point_range[:n], dtype=float)
        cols = np.asarray(info.point_col_ind[:n], dtype=np.int64)
        curvature = compute_curvature(ranges)

        picked = np.ones(n, dtype=bool)
        if n > 2 * _NEIGHBOURS:
            picked[_NEIGHBOURS : n - _NEIGHBOURS] = False
        label = np.zeros(n, dtype=int)
        _mark_occluded(ranges, cols, picked)

        smooth_value = curvature.copy()
        smooth_index = np.arange(n)

        corner_ids: list[int] = []
        surfaces: list[np.ndarray] = []
        edge_threshold = self.params.edge_threshold
        surf_threshold = self.params.surf_threshold

        for ring in range(n_scan):
            start = int(info.start_ring_index[ring])
            end = int(info.end_ring_index[ring])
            ring_surface: list[int] = []
            for j in range(_SEGMENTS):
                sp = _trunc_div(start * (6 - j) + end * j, 6)
                ep = _trunc_div(start * (5 - j) + end * (j + 1), 6) - 1
                if sp >= ep:
                    continue
                if sp < 0 or ep >= n:
                    raise ValueError(f"ring {ring} segment [{sp}, {ep}] lies outside the cloud")

                order = np.argsort(smooth_value[sp:ep], kind="stable")
                smooth_value[sp:ep] = smooth_value[sp:ep][order]
                smooth_index[sp:ep] = smooth_index[sp:ep][order]

                picked_count = 0
                for k in range(ep, sp - 1, -1):
                    ind = int(smooth_index[k])
                    if not picked[ind] and curvature[ind] > edge_threshold:
                        picked_count += 1
                        if picked_count > _MAX_EDGES_PER_SEGMENT:
                            break
                        label[ind] = 1
                        corner_ids.append(ind)
                        _suppress_neighbours(ind, cols, picked)

                for k in range(sp, ep + 1):
                    ind = int(smooth_index[k])
                    if not picked[ind] and curvature[ind] < surf_threshold:
                        label[ind] = -1
                        _suppress_neighbours(ind, cols, picked)

                ring_surface.extend(k for k in range(sp, ep + 1) if label[k] <= 0)

            if ring_surface:
                surfaces.append(
                    voxel_downsample(pts[ring_surface], self.params.odometry_surf_leaf_size)
                )

        width = pts.shape[1]
        corners = pts[corner_ids] if corner_ids else np.empty((0, width))
        surface = np.vstack(surfaces) if surfaces else np.empty((0, width))
        return FeatureResult(corners=corners, surfaces=surface)