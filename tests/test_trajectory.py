"""Tests for trajectory - keypoint parameterization and spline resampling."""

import math
import pytest
import numpy as np

from camera import Camera
from trajectory import (
    trajectory_keypoints, catmull_rom_tangents, CatmullRomSpline, interpolate_camera_trajectory,
)


def line_cameras():
    return [Camera([x, 0, 1.5], [0, 1, 0], [0, 0, 1], 0.5, 0.4, near=0.02, far=50.0, value=x)
            for x in (0.0, 1.0, 2.0, 4.0)]


class TestKeypoints:

    def test_parameter_is_distance_plus_angle(self):
        cams = [
            Camera([0, 0, 0], [1, 0, 0], [0, 0, 1], 0.5, 0.4),
            Camera([2, 0, 0], [1, 0, 0], [0, 0, 1], 0.5, 0.4),
            Camera([2, 0, 0], [0, 1, 0], [0, 0, 1], 0.5, 0.4),
        ]
        u, V, T, U = trajectory_keypoints(cams)
        assert u == pytest.approx([0.0, 2.0, 2.0 + math.pi / 2])
        assert V.shape == T.shape == U.shape == (3, 3)

    def test_tangents(self):
        u = np.array([0.0, 1.0, 3.0])
        P = np.array([[0.0], [1.0], [5.0]])
        M = catmull_rom_tangents(u, P)
        assert M[:, 0] == pytest.approx([1.0, 5.0 / 3.0, 2.0])


class TestCatmullRomSpline:

    def test_passes_through_keypoints(self):
        u = np.array([0.0, 1.0, 2.5, 3.0])
        P = np.array([[0, 0, 0], [1, 2, 0], [3, 1, 1], [4, 0, 0]], float)
        spline = CatmullRomSpline(P, u)
        assert np.allclose(spline(u), P)
        assert (spline.start_parameter, spline.end_parameter) == (0.0, 3.0)

    def test_single_point(self):
        spline = CatmullRomSpline(np.array([[1.0, 2.0, 3.0]]), np.array([0.0]))
        assert np.allclose(spline(np.array([0.0, 0.5])), [[1, 2, 3], [1, 2, 3]])


class TestInterpolateCameraTrajectory:

    def test_sample_count_and_names(self):
        traj = interpolate_camera_trajectory(line_cameras(), step=0.5)
        assert len(traj) == int(4.0 / 0.5) + 1
        assert traj[0].name == "T0.000000"
        assert traj[-1].name == "T4.000000"

    def test_passes_through_keypoints(self):
        cams = line_cameras()
        traj = interpolate_camera_trajectory(cams, step=0.5)
        by_name = {c.name: c for c in traj}
        for cam in cams:
            hit = by_name[f"T{cam.origin[0]:f}"]
            assert np.allclose(hit.origin, cam.origin, atol=1e-9)
            assert np.allclose(hit.towards, cam.towards, atol=1e-9)

    def test_intrinsics_copied_from_first_camera(self):
        traj = interpolate_camera_trajectory(line_cameras(), step=1.0)
        for c in traj:
            assert (c.xfov, c.yfov, c.near, c.far) == (0.5, 0.4, 0.02, 50.0)
            assert c.value == 0.0

    def test_frames_stay_orthonormal_through_rotation(self):
        cams = [
            Camera([0, 0, 0], [1, 0, 0], [0, 0, 1], 0.5, 0.4),
            Camera([0, 0, 0], [0, 1, -0.2], [0, 0, 1], 0.5, 0.4),
            Camera([1, 1, 0], [-1, 0, 0], [0, 0, 1], 0.5, 0.4),
        ]
        traj = interpolate_camera_trajectory(cams, step=0.1)
        assert len(traj) > 10
        for c in traj:
            assert np.linalg.norm(c.towards) == pytest.approx(1.0)
            assert np.dot(c.towards, c.up) == pytest.approx(0.0, abs=1e-9)

    def test_rotation_in_place_advances(self):
        cams = [
            Camera([0, 0, 0], [1, 0, 0], [0, 0, 1], 0.5, 0.4),
            Camera([0, 0, 0], [0, 1, 0], [0, 0, 1], 0.5, 0.4),
        ]
        traj = interpolate_camera_trajectory(cams, step=0.1)
        assert len(traj) == int(math.floor((math.pi / 2) / 0.1)) + 1

    def test_single_camera(self):
        traj = interpolate_camera_trajectory(line_cameras()[:1], step=0.1)
        assert len(traj) == 1
        assert np.allclose(traj[0].origin, [0, 0, 1.5])

    def test_duplicate_keypoints(self):
        cams = line_cameras()
        traj = interpolate_camera_trajectory([cams[0], cams[0], cams[1]], step=0.25)
        assert len(traj) == 5

    def test_errors(self):
        with pytest.raises(ValueError):
            interpolate_camera_trajectory([])
        with pytest.raises(ValueError):
            interpolate_camera_trajectory(line_cameras(), step=0.0)
