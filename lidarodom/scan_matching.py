"""Scan-to-map registration of edge and planar features by Gauss-Newton."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from lidarodom.cloud import nearest_k
from lidarodom.geometry import get_transformation, transform_points
from lidarodom.params import Params

logger = logging.getLogger(__name__)

_NEIGHBOURS = 5
_MAX_ITERATIONS = 30
_MIN_CORRESPONDENCES = 50
_EIGEN_THRESHOLD = 100.0


def _points(values) -> np.ndarray:
    pts = np.asarray(values, dtype=float)
    if pts.size == 0:
        width = pts.shape[1] if pts.ndim == 2 else 4
        return np.empty((0, width))
    if pts.ndim != 2 or pts.shape[1] < 3:
        raise ValueError(f"expected an (N, >=3) point array, got shape {pts.shape}")
    return pts


def _transform_vector(transform) -> np.ndarray:
    t = np.asarray(transform, dtype=float).reshape(-1)
    if t.shape != (6,):
        raise ValueError(f"transform must be (roll, pitch, yaw, x, y, z), got {t.shape[0]} values")
    return t


def _to_matrix(t: np.ndarray) -> np.ndarray:
    return get_transformation(t[3], t[4], t[5], t[0], t[1], t[2])


def _neighbourhoods(points, transform, feature_map):
    """Map points into the map frame and find their nearest map neighbours.

    Returns the points, their mapped positions, the neighbour coordinates and a mask
    of points whose farthest neighbour lies within one metre.
    """
    pts = _points(points)
    fmap = _points(feature_map)
    t = _transform_vector(transform)
    if len(pts) == 0 or len(fmap) < _NEIGHBOURS:
        return pts, None, None, np.zeros(len(pts), dtype=bool)
    sel = transform_points(_to_matrix(t), pts)[:, :3]
    idx, d2 = nearest_k(fmap, sel, _NEIGHBOURS)
    near = fmap[:, :3][idx]
    return pts, sel, near, d2[:, _NEIGHBOURS - 1] < 1.0


def _empty(pts: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    return np.empty((0, pts.shape[1])), np.empty((0, 4))


def corner_coefficients(points, transform, corner_map) -> tuple[np.ndarray, np.ndarray]:
    """Point-to-line residuals of edge points against a corner map.

    Returns the accepted points (in their own frame) and, for each, a row
    ``(nx, ny, nz, residual)``: the weighted direction away from the fitted line
    and the weighted distance to it.
    """
    pts, sel, near, valid = _neighbourhoods(points, transform, corner_map)
    if not valid.any():
        return _empty(pts)
    sel, near, keep_idx = sel[valid], near[valid], np.flatnonzero(valid)

    center = near.mean(axis=1)
    centered = near - center[:, None, :]
    cov = np.einsum("nki,nkj->nij", centered, centered) / _NEIGHBOURS
    values, vectors = np.linalg.eigh(cov)
    linear = values[:, 2] > 3 * values[:, 1]
    if not linear.any():
        return _empty(pts)
    sel, center, keep_idx = sel[linear], center[linear], keep_idx[linear]
    direction = vectors[linear][:, :, 2]

    x0, y0, z0 = sel.T
    x1, y1, z1 = (center + 0.1 * direction).T
    x2, y2, z2 = (center - 0.1 * direction).T

    cxy = (x0 - x1) * (y0 - y2) - (x0 - x2) * (y0 - y1)
    cxz = (x0 - x1) * (z0 - z2) - (x0 - x2) * (z0 - z1)
    cyz = (y0 - y1) * (z0 - z2) - (y0 - y2) * (z0 - z1)
    with np.errstate(divide="ignore", invalid="ignore"):
        a012 = np.sqrt(cxy * cxy + cxz * cxz + cyz * cyz)
        l12 = np.sqrt((x1 - x2) ** 2 + (y1 - y2) ** 2 + (z1 - z2) ** 2)
        la = ((y1 - y2) * cxy + (z1 - z2) * cxz) / a012 / l12
        lb = -((x1 - x2) * cxy - (z1 - z2) * cyz) / a012 / l12
        lc = -((x1 - x2) * cxz + (y1 - y2) * cyz) / a012 / l12
        ld2 = a012 / l12
    s = 1 - 0.9 * np.abs(ld2)
    coeff = np.column_stack([s * la, s * lb, s * lc, s * ld2])
    keep = (s > 0.1) & np.all(np.isfinite(coeff), axis=1)
    return pts[keep_idx[keep]], coeff[keep]


def surf_coefficients(points, transform, surf_map) -> tuple[np.ndarray, np.ndarray]:
    """Point-to-plane residuals of planar points against a surface map.

    Returns the accepted points (in their own frame) and, for each, a row
    ``(nx, ny, nz, residual)``: the weighted plane normal and the weighted
    signed distance to the plane.
    """
    pts, sel, near, valid = _neighbourhoods(points, transform, surf_map)
    if not valid.any():
        return _empty(pts)
    sel, near, keep_idx = sel[valid], near[valid], np.flatnonzero(valid)

    rhs = -np.ones((len(near), _NEIGHBOURS, 1))
    normal = (np.linalg.pinv(near) @ rhs)[:, :, 0]
    with np.errstate(divide="ignore", invalid="ignore"):
        ps = np.linalg.norm(normal, axis=1)
        normal = normal / ps[:, None]
        pd = 1.0 / ps
        fit = np.abs(np.einsum("nkj,nj->nk", near, normal) + pd[:, None])
        planar = np.all(fit <= 0.2, axis=1)
        pd2 = np.einsum("nj,nj->n", normal, sel) + pd
        s = 1 - 0.9 * np.abs(pd2) / np.sqrt(np.linalg.norm(sel, axis=1))
    coeff = np.column_stack([s[:, None] * normal, s * pd2])
    keep = planar & (s > 0.1) & np.all(np.isfinite(coeff), axis=1)
    return pts[keep_idx[keep]], coeff[keep]


def constrain(value: float, limit: float) -> float:
    """Clamp ``value`` to ``[-limit, limit]``."""
    if value < -limit:
        value = -limit
    if value > limit:
        value = limit
    return value


@dataclass
class MatchResult:
    """Outcome of one scan-to-map registration.

    ``transform`` is ``(roll, pitch, yaw, x, y, z)``; ``optimized`` is false when
    the scan had too few features and the guess was returned unchanged.
    """

    transform: np.ndarray
    iterations: int
    converged: bool
    degenerate: bool
    optimized: bool


class ScanMatcher:
    """Registers edge and planar features of a scan against local feature maps.

    Degeneracy found on the first iteration of a match carries over to later
    iterations, and to later matches whose first iteration has too few
    correspondences to judge it.
    """

    def __init__(self, params: Params) -> None:
        self.params = params
        self._degenerate = False
        self._projection = np.zeros((6, 6))

    def _step(self, t: np.ndarray, points: np.ndarray, coeffs: np.ndarray, iteration: int) -> bool:
        if len(points) < _MIN_CORRESPONDENCES:
            return False
        srx, crx = math.sin(t[1]), math.cos(t[1])
        sry, cry = math.sin(t[2]), math.cos(t[2])
        srz, crz = math.sin(t[0]), math.cos(t[0])

        px, py, pz = points[:, 1], points[:, 2], points[:, 0]
        cx, cy, cz = coeffs[:, 1], coeffs[:, 2], coeffs[:, 0]

        arx = (
            (crx * sry * srz * px + crx * crz * sry * py - srx * sry * pz) * cx
            + (-srx * srz * px - crz * srx * py - crx * pz) * cy
            + (crx * cry * srz * px + crx * cry * crz * py - cry * srx * pz) * cz
        )
        ary = (
            (
                (cry * srx * srz - crz * sry) * px
                + (sry * srz + cry * crz * srx) * py
                + crx * cry * pz
            )
            * cx
            + (
                (-cry * crz - srx * sry * srz) * px
                + (cry * srz - crz * srx * sry) * py
                - crx * sry * pz
            )
            * cz
        )
        arz = (
            ((crz * srx * sry - cry * srz) * px + (-cry * crz - srx * sry * srz) * py) * cx
            + (crx * crz * px - crx * srz * py) * cy
            + ((sry * srz + cry * crz * srx) * px + (crz * sry - cry * srx * srz) * py) * cz
        )

        a = np.column_stack([arz, arx, ary, cz, cx, cy])
        b = -coeffs[:, 3]
        ata = a.T @ a
        atb = a.T @ b
        x = np.linalg.lstsq(ata, atb, rcond=None)[0]

        if iteration == 0:
            values, vectors = np.linalg.eigh(ata)
            eigenvalues = values[::-1]
            basis = vectors[:, ::-1].T
            kept = basis.copy()
            self._degenerate = False
            for i in range(5, -1, -1):
                if eigenvalues[i] < _EIGEN_THRESHOLD:
                    kept[i] = 0.0
                    self._degenerate = True
                else:
                    break
            self._projection = np.linalg.inv(basis) @ kept

        if self._degenerate:
            x = self._projection @ x

        t += x
        delta_r = float(np.linalg.norm(np.degrees(x[:3])))
        delta_t = float(np.linalg.norm(x[3:] * 100))
        return delta_r < 0.05 and delta_t < 0.05

    def match(self, transform, corners, surfs, corner_map, surf_map) -> MatchResult:
        """Refine ``transform`` so the scan's features fit the maps.

        The result's roll, pitch and z are held within the configured limits.
        """
        t = _transform_vector(transform).copy()
        corners = _points(corners)
        surfs = _points(surfs)
        params = self.params
        if not (
            len(corners) > params.edge_feature_min_valid_num
            and len(surfs) > params.surf_feature_min_valid_num
        ):
            logger.warning(
                "Not enough features! Only %d edge and %d planar features available.",
                len(corners),
                len(surfs),
            )
            return MatchResult(t, 0, False, self._degenerate, False)

        corner_map = _points(corner_map)
        surf_map = _points(surf_map)
        converged = False
        iterations = 0
        for iteration in range(_MAX_ITERATIONS):
            iterations = iteration + 1
            corner_pts, corner_coeff = corner_coefficients(corners, t, corner_map)
            surf_pts, surf_coeff = surf_coefficients(surfs, t, surf_map)
            points = np.vstack([corner_pts[:, :3], surf_pts[:, :3]])
            coeffs = np.vstack([corner_coeff, surf_coeff])
            if self._step(t, points, coeffs, iteration):
                converged = True
                break

        t[0] = constrain(t[0], params.rotation_tollerance)
        t[1] = constrain(t[1], params.rotation_tollerance)
        t[5] = constrain(t[5], params.z_tollerance)
        return MatchResult(t, iterations, converged, self._degenerate, True)