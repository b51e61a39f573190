import numpy as np
import pytest

from lidarodom.geometry import get_transformation, transform_points
from lidarodom.params import Params
from lidarodom.scan_matching import (
    MatchResult,
    ScanMatcher,
    constrain,
    corner_coefficients,
    surf_coefficients,
)

IDENTITY = np.zeros(6)


def _with_intensity(xyz):
    xyz = np.asarray(xyz, dtype=float)
    return np.column_stack([xyz, np.zeros(len(xyz))])


def _surface_map():
    grid = np.arange(-5.0, 5.01, 0.5)
    heights = np.arange(-1.5, 2.01, 0.5)
    ground = [(x, y, -1.5) for x in grid for y in grid]
    wall_x = [(6.0, y, z) for y in grid for z in heights]
    wall_y = [(x, 6.0, z) for x in grid for z in heights]
    return _with_intensity(ground + wall_x + wall_y)


def _corner_map(poles):
    zs = np.arange(-1.5, 2.01, 0.1)
    return _with_intensity([(px, py, z) for px, py in poles for z in zs])


def test_constrain_clamps_to_limits():
    assert constrain(5.0, 2.0) == 2.0
    assert constrain(-5.0, 2.0) == -2.0
    assert constrain(1.0, 2.0) == 1.0


def test_corner_coefficient_points_away_from_line():
    line = _with_intensity([(x, 0.0, 0.0) for x in (-0.2, -0.1, 0.0, 0.1, 0.2)])
    pts, coeff = corner_coefficients(_with_intensity([(0.0, 0.5, 0.0)]), IDENTITY, line)
    assert len(pts) == 1 and coeff.shape == (1, 4)
    assert coeff[0, 0] == pytest.approx(0.0, abs=1e-9)
    assert coeff[0, 2] == pytest.approx(0.0, abs=1e-9)
    assert coeff[0, 1] > 0
    assert coeff[0, 3] / np.linalg.norm(coeff[0, :3]) == pytest.approx(0.5)


def test_corner_far_from_map_is_rejected():
    line = _with_intensity([(x, 0.0, 0.0) for x in (-0.2, -0.1, 0.0, 0.1, 0.2)])
    pts, coeff = corner_coefficients(_with_intensity([(0.0, 3.0, 0.0)]), IDENTITY, line)
    assert len(pts) == 0 and coeff.shape == (0, 4)


def test_corner_needs_five_map_points():
    line = _with_intensity([(0.0, 0.0, 0.0), (0.1, 0.0, 0.0)])
    pts, _ = corner_coefficients(_with_intensity([(0.0, 0.2, 0.0)]), IDENTITY, line)
    assert len(pts) == 0


def test_surf_coefficient_is_plane_normal():
    plane = _with_intensity([(x, y, 1.0) for x, y in [(0, 0), (0.2, 0), (0, 0.2), (-0.2, 0), (0, -0.2)]])
    pts, coeff = surf_coefficients(_with_intensity([(0.0, 0.0, 1.5)]), IDENTITY, plane)
    assert len(pts) == 1
    assert coeff[0, 0] == pytest.approx(0.0, abs=1e-9)
    assert coeff[0, 1] == pytest.approx(0.0, abs=1e-9)
    assert coeff[0, 3] / coeff[0, 2] == pytest.approx(0.5)


def test_surf_rejects_non_planar_neighbours():
    bumpy = _with_intensity(
        [(5, 5, 5), (5.8, 5, 5), (5, 5.8, 5), (5.8, 5.8, 5.6), (5.4, 5.4, 4.2)]
    )
    pts, coeff = surf_coefficients(_with_intensity([(5.4, 5.4, 5.0)]), IDENTITY, bumpy)
    assert len(pts) == 0 and coeff.shape == (0, 4)


def test_transform_must_have_six_values():
    with pytest.raises(ValueError):
        corner_coefficients(_with_intensity([(0, 0, 0)]), [0, 0, 0], _corner_map([(0, 0)]))


def test_too_few_features_leaves_guess_unchanged():
    guess = np.array([0.1, 0.0, 0.0, 1.0, 2.0, 3.0])
    result = ScanMatcher(Params()).match(
        guess, _corner_map([(0, 0)])[:5], _surface_map()[:20], _corner_map([(0, 0)]), _surface_map()
    )
    assert isinstance(result, MatchResult)
    assert not result.optimized
    assert np.array_equal(result.transform, guess)
    assert result.iterations == 0


def _scene(truth):
    corner_map = _corner_map([(2, 2), (-2, 3), (3, -2), (-3, -3)])
    surf_map = _surface_map()
    inverse = np.linalg.inv(get_transformation(truth[3], truth[4], truth[5], truth[0], truth[1], truth[2]))
    return transform_points(inverse, corner_map), transform_points(inverse, surf_map), corner_map, surf_map


def test_match_recovers_pose():
    truth = np.array([0.02, -0.01, 0.03, 0.1, -0.05, 0.05])
    corners, surfs, corner_map, surf_map = _scene(truth)
    result = ScanMatcher(Params()).match(IDENTITY, corners, surfs, corner_map, surf_map)
    assert result.optimized
    assert 1 <= result.iterations <= 30
    assert np.allclose(result.transform, truth, atol=1e-2)


def test_match_applies_rotation_limit():
    truth = np.array([0.02, -0.01, 0.03, 0.1, -0.05, 0.05])
    corners, surfs, corner_map, surf_map = _scene(truth)
    params = Params(rotation_tollerance=0.01)
    result = ScanMatcher(params).match(IDENTITY, corners, surfs, corner_map, surf_map)
    assert result.transform[0] == pytest.approx(0.01)
    assert result.transform[1] == pytest.approx(-0.01, abs=1e-3)


def test_pole_at_origin_over_ground_is_degenerate():
    grid = np.arange(-5.0, 5.01, 0.5)
    ground = _with_intensity([(x, y, -1.5) for x in grid for y in grid])
    pole = _corner_map([(0, 0)])
    result = ScanMatcher(Params()).match(IDENTITY, pole, ground, pole, ground)
    assert result.optimized
    assert result.degenerate
    assert result.transform[5] == pytest.approx(0.0, abs=1e-6)
    assert result.transform[0] == pytest.approx(0.0, abs=1e-6)