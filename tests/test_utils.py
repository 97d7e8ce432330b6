"""Tests for utils - config folding, camera frames and ray generation."""

import math
import os
import pytest
import numpy as np

from utils import (
    CameraParams, load_cfg, params_from_cfg, orthonormal_frame,
    pinhole_intrinsics, rays_from_camera, triangle_areas, interior_angle,
    rotate_z, bbox_intersects, build_raycasting_scene, cast_rays,
)
from scene_model import box_mesh

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class TestCameraParams:

    def test_defaults(self):
        p = CameraParams()
        assert (p.width, p.height) == (640, 480)
        assert p.xfov == 0.5
        assert p.angle_sampling is None
        assert p.renderer == "raycast"

    def test_yfov_follows_aspect(self):
        p = CameraParams(width=640, height=480, xfov=0.5)
        assert p.yfov == pytest.approx(math.atan(0.75 * math.tan(0.5)))

    def test_nested_camera_section(self):
        p = params_from_cfg({"scene_path": "x.yaml", "camera": {"width": 32, "height": 24}})
        assert (p.width, p.height) == (32, 24)

    def test_overrides_win_and_none_is_ignored(self):
        p = params_from_cfg({"width": 32}, width=64, height=None)
        assert p.width == 64
        assert p.height == 480

    def test_unknown_key_raises(self):
        with pytest.raises(ValueError, match="Unknown config keys"):
            params_from_cfg({"widht": 32})

    def test_bad_values_raise(self):
        with pytest.raises(ValueError):
            params_from_cfg({"width": 0})
        with pytest.raises(ValueError):
            params_from_cfg({"position_sampling": 0})
        with pytest.raises(ValueError):
            params_from_cfg({"angle_sampling": -1.0})

    def test_load_cfg(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("camera:\n  width: 100\n  renderer: raster\n")
        p = params_from_cfg(load_cfg(str(path)))
        assert p.width == 100
        assert p.renderer == "raster"

    def test_shipped_config_loads(self):
        path = os.path.join(REPO_ROOT, "configs", "scn2cam.yaml")
        cfg = load_cfg(path)
        assert "camera" in cfg
        p = params_from_cfg(cfg)
        assert (p.width, p.height) == (640, 480)
        assert p.renderer == "raycast"

    def test_nested_section_overrides_top_level(self):
        p = params_from_cfg({"width": 10, "camera": {"width": 20}})
        assert p.width == 20

    def test_load_empty_cfg(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_cfg(str(path)) == {}


class TestFrames:

    def test_orthonormal_frame(self):
        t, u, r = orthonormal_frame([1.0, 2.0, -0.5], [0, 0, 1])
        for v in (t, u, r):
            assert np.linalg.norm(v) == pytest.approx(1.0)
        assert np.dot(t, u) == pytest.approx(0.0, abs=1e-9)
        assert np.allclose(r, np.cross(t, u))

    def test_parallel_up_falls_back(self):
        t, u, r = orthonormal_frame([0, 0, -1], [0, 0, 1])
        assert np.dot(t, u) == pytest.approx(0.0, abs=1e-9)
        assert np.linalg.norm(r) == pytest.approx(1.0)

    def test_zero_towards_raises(self):
        with pytest.raises(ValueError):
            orthonormal_frame([0, 0, 0])

    def test_intrinsics(self):
        K = pinhole_intrinsics(640, 480, 0.5, 0.4)
        assert K["fx"] == pytest.approx(320 / math.tan(0.5))
        assert K["fy"] == pytest.approx(240 / math.tan(0.4))
        assert (K["cx"], K["cy"]) == (320, 240)


class TestMath:

    def test_interior_angle(self):
        assert interior_angle([1, 0, 0], [0, 1, 0]) == pytest.approx(math.pi / 2)
        assert interior_angle([1, 0, 0], [1, 0, 0]) == pytest.approx(0.0, abs=1e-6)

    def test_rotate_z(self):
        assert np.allclose(rotate_z(np.array([1.0, 0.0, 0.5]), math.pi / 2), [0, 1, 0.5])

    def test_bbox_intersects(self):
        assert bbox_intersects([0, 0, 0], [1, 1, 1], [1, 1, 1], [2, 2, 2])
        assert not bbox_intersects([0, 0, 0], [1, 1, 1], [1.5, 0, 0], [2, 1, 1])

    def test_triangle_areas(self):
        V = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], float)
        assert triangle_areas(V, np.array([[0, 1, 2]])) == pytest.approx([0.5])
        assert triangle_areas(np.zeros((0, 3)), np.zeros((0, 3), int)).size == 0


class TestRays:

    def test_shape_and_centre_ray(self):
        rays = rays_from_camera([0, 0, 0], [1, 0, 0], [0, 0, 1], [0, -1, 0], 0.5, 0.4, 5, 3)
        assert rays.shape == (15, 6)
        centre = rays[1 * 5 + 2]
        assert np.allclose(centre[3:], [1, 0, 0], atol=1e-6)

    def test_top_left_ray_points_up_and_left(self):
        rays = rays_from_camera([0, 0, 0], [1, 0, 0], [0, 0, 1], [0, -1, 0], 0.5, 0.4, 5, 3)
        d = rays[0, 3:]
        assert d[2] > 0      # up
        assert d[1] > 0      # left = -right

    def test_cast_rays_maps_geometry_to_node(self):
        V, F = box_mesh([1, -1, -1], [2, 1, 1])
        scene, id_to_node = build_raycasting_scene([(7, V, F)])
        rays = np.array([[0, 0, 0, 1, 0, 0], [0, 0, 0, -1, 0, 0]], np.float32)
        node_ids, t_hit = cast_rays(scene, id_to_node, rays)
        assert list(node_ids) == [7, -1]
        assert t_hit[0] == pytest.approx(1.0, abs=1e-5)
        assert np.isinf(t_hit[1])
