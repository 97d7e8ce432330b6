"""Tests for camera - frame invariants, extrinsics and deterministic sorting."""

import pytest
import numpy as np

from camera import Camera, sort_cameras


def assert_orthonormal(cam):
    assert np.linalg.norm(cam.towards) == pytest.approx(1.0)
    assert np.linalg.norm(cam.up) == pytest.approx(1.0)
    assert np.dot(cam.towards, cam.up) == pytest.approx(0.0, abs=1e-9)
    assert np.allclose(cam.right, np.cross(cam.towards, cam.up))


class TestCamera:

    def test_frame_is_orthonormal(self):
        cam = Camera([1, 2, 3], [1, 1, -0.2], [0, 0, 1], 0.5, 0.4)
        assert_orthonormal(cam)

    def test_frame_survives_value_and_name_changes(self):
        cam = Camera([0, 0, 0], [3, 0, 1], [0, 0, 1], 0.5, 0.4)
        cam.value = 12.5
        cam.name = "Room#1_0"
        assert_orthonormal(cam)

    def test_accessors_return_copies(self):
        cam = Camera([0, 0, 0], [1, 0, 0], [0, 0, 1], 0.5, 0.4)
        cam.towards[0] = 5.0
        cam.origin[0] = 5.0
        assert np.allclose(cam.towards, [1, 0, 0])
        assert np.allclose(cam.origin, [0, 0, 0])

    def test_zero_towards_raises(self):
        with pytest.raises(ValueError):
            Camera([0, 0, 0], [0, 0, 0], [0, 0, 1], 0.5, 0.4)

    def test_world_to_camera(self):
        cam = Camera([1, 0, 0], [0, 1, 0], [0, 0, 1], 0.5, 0.4)
        E = cam.world_to_camera()
        assert E.shape == (3, 4)
        assert np.allclose(E @ np.array([1, 0, 0, 1.0]), 0)
        # points in front of the camera have negative camera-space z
        p = E @ np.array([1, 3, 0, 1.0])
        assert p[2] == pytest.approx(-3.0)


class TestSortCameras:

    def test_descending_value_then_name(self):
        cams = [
            Camera([0, 0, 0], [1, 0, 0], [0, 0, 1], 0.5, 0.4, value=1.0, name="b"),
            Camera([0, 0, 0], [1, 0, 0], [0, 0, 1], 0.5, 0.4, value=3.0, name="c"),
            Camera([0, 0, 0], [1, 0, 0], [0, 0, 1], 0.5, 0.4, value=1.0, name="a"),
        ]
        assert [c.name for c in sort_cameras(cams)] == ["c", "a", "b"]

    def test_order_independent_of_input_order(self):
        cams = [Camera([x, 0, 0], [1, 0, 0], [0, 0, 1], 0.5, 0.4, value=1.0) for x in (3, 1, 2)]
        a = [c.origin[0] for c in sort_cameras(cams)]
        b = [c.origin[0] for c in sort_cameras(list(reversed(cams)))]
        assert a == b == [1, 2, 3]

    def test_empty(self):
        assert sort_cameras([]) == []
