"""Point cloud utilities: voxel downsampling, neighbour search and PCD output."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np
from scipy.spatial import cKDTree

DEFAULT_FIELDS = ("x", "y", "z", "intensity")


def _as_cloud(points) -> np.ndarray:
    pts = np.asarray(points, dtype=float)
    if pts.size == 0:
        width = pts.shape[1] if pts.ndim == 2 else 4
        return np.empty((0, width))
    if pts.ndim != 2 or pts.shape[1] < 3:
        raise ValueError(f"expected an (N, >=3) point array, got shape {pts.shape}")
    return pts


def voxel_downsample(points, leaf_size) -> np.ndarray:
    """Replace the points in each voxel by their mean, every column averaged.

    Output is ordered by voxel index, x varying fastest, then y, then z.
    """
    leaf = np.broadcast_to(np.asarray(leaf_size, dtype=float), (3,))
    if np.any(leaf <= 0):
        raise ValueError(f"leaf size must be positive, got {leaf_size!r}")
    pts = _as_cloud(points)
    pts = pts[np.all(np.isfinite(pts[:, :3]), axis=1)]
    if len(pts) == 0:
        return np.empty((0, pts.shape[1]))
    ijk = np.floor(pts[:, :3] * (1.0 / leaf)).astype(np.int64)
    rel = ijk - ijk.min(axis=0)
    dims = rel.max(axis=0) + 1
    linear = rel[:, 0] + rel[:, 1] * dims[0] + rel[:, 2] * dims[0] * dims[1]
    order = np.argsort(linear, kind="stable")
    sorted_linear = linear[order]
    starts = np.flatnonzero(np.r_[True, sorted_linear[1:] != sorted_linear[:-1]])
    sums = np.add.reduceat(pts[order], starts, axis=0)
    counts = np.diff(np.r_[starts, len(order)])
    return sums / counts[:, None]


def radius_search(points, center, radius: float) -> tuple[np.ndarray, np.ndarray]:
    """Return indices and squared distances of points strictly within ``radius``, nearest first."""
    pts = _as_cloud(points)
    if len(pts) == 0:
        return np.empty(0, dtype=int), np.empty(0)
    c = np.asarray(center, dtype=float)[:3]
    d2 = np.sum((pts[:, :3] - c) ** 2, axis=1)
    idx = np.flatnonzero(d2 < radius * radius)
    order = np.argsort(d2[idx], kind="stable")
    idx = idx[order]
    return idx, d2[idx]


def nearest_k(points, queries, k: int) -> tuple[np.ndarray, np.ndarray]:
    """Return the ``k`` nearest points to each query as ``(indices, squared distances)``.

    Both results have shape ``(M, k)``, sorted nearest first.
    """
    pts = _as_cloud(points)
    if k < 1:
        raise ValueError(f"k must be at least 1, got {k}")
    if len(pts) < k:
        raise ValueError(f"need at least {k} points, got {len(pts)}")
    q = np.atleast_2d(np.asarray(queries, dtype=float))
    if q.size == 0:
        return np.empty((0, k), dtype=int), np.empty((0, k))
    tree = cKDTree(pts[:, :3])
    dist, idx = tree.query(q[:, :3], k=k)
    dist = np.asarray(dist).reshape(len(q), k)
    idx = np.asarray(idx).reshape(len(q), k)
    return idx, dist * dist


def write_pcd(path, points, fields: Sequence[str] = DEFAULT_FIELDS) -> None:
    """Write an ASCII PCD file; a field named ``time`` is stored as a double."""
    names = list(fields)
    pts = np.asarray(points, dtype=float)
    if pts.size == 0:
        pts = np.empty((0, len(names)))
    if pts.ndim != 2 or pts.shape[1] != len(names):
        raise ValueError(f"points of shape {pts.shape} do not match {len(names)} fields")
    sizes = ["8" if name == "time" else "4" for name in names]
    n = len(pts)
    header = [
        "# .PCD v0.7 - Point Cloud Data file format",
        "VERSION 0.7",
        "FIELDS " + " ".join(names),
        "SIZE " + " ".join(sizes),
        "TYPE " + " ".join("F" for _ in names),
        "COUNT " + " ".join("1" for _ in names),
        f"WIDTH {n}",
        "HEIGHT 1",
        "VIEWPOINT 0 0 0 1 0 0 0",
        f"POINTS {n}",
        "DATA ascii",
    ]
    formats = ["{:.17g}" if size == "8" else "{:.8g}" for size in sizes]
    rows = [" ".join(fmt.format(v) for fmt, v in zip(formats, row)) for row in pts]
    Path(path).write_text("\n".join(header + rows) + "\n", encoding="ascii")