"""Tests for camera_gen - sampling helpers and the three candidate generators."""

import math
import pytest
import numpy as np

from camera_gen import (
    clip_distances, azimuth_buckets, wall_sample_offsets, wall_positions, wall_view_angles,
    room_wall_segments, grid_sample_count, object_viewpoint,
    create_object_cameras, create_wall_cameras, create_room_cameras,
)
from coverage import ObjectCoverageScorer, SceneCoverageScorer, SurfaceSampleCache
from scene_model import Scene, SceneNode, quad_mesh
from utils import CameraParams, random_generator
from visibility import RayCastRenderer
from scene_fixtures import make_room_scene, ROOM_SIZE


def small_params(**kw):
    values = dict(width=32, height=24, min_visible_objects=0)
    values.update(kw)
    return CameraParams(**values)


class TestSamplingHelpers:

    def test_azimuth_buckets(self):
        assert azimuth_buckets(math.pi / 2) == (4, pytest.approx(math.pi / 2))
        assert azimuth_buckets(math.pi / 6)[0] == 12
        assert azimuth_buckets(10.0)[0] == 1

    def test_wall_of_length_one_has_two_buckets(self):
        offsets = wall_sample_offsets(1.0, 0.5)
        assert np.allclose(offsets, [0.25, 0.75])

    def test_wall_spacing_divides_length(self):
        offsets = wall_sample_offsets(1.1, 0.5)
        assert len(offsets) == 3
        assert np.allclose(np.diff(offsets), 1.1 / 3)
        assert len(wall_sample_offsets(0.0, 0.5)) == 0

    def test_wall_positions_offset_into_room(self):
        params = small_params(position_sampling=0.5, min_distance_from_obstacle=0.1)
        out = wall_positions([0, 0], [1, 0], 0.1, params, [0, 0, 0], [1, 1, 2])
        assert len(out) == 2
        for position, normal in out:
            assert np.allclose(normal, [0, 1])
            assert position[1] == pytest.approx(0.2)

    def test_wall_positions_outside_room_rejected(self):
        params = small_params(position_sampling=0.5)
        assert wall_positions([0, 0], [1, 0], 0.1, params, [0, 0.5, 0], [1, 1, 2]) == []

    def test_wall_view_angles_keep_fov_inside(self):
        params = small_params(xfov=0.5)
        angles = wall_view_angles(params, random_generator(0))
        assert len(angles) == int((math.pi - 1.0) / (math.pi / 3) + 0.5)
        assert np.all(angles >= 0.5) and np.all(angles <= math.pi - 0.5)

    def test_wall_view_angles_empty_for_wide_fov(self):
        assert len(wall_view_angles(small_params(xfov=1.6), random_generator(0))) == 0

    def test_room_wall_segments(self):
        scene = make_room_scene()
        room = scene.find("Room#1")
        assert len(room_wall_segments(room)) == 4
        room.data.pop("walls")
        segs = room_wall_segments(room)
        assert len(segs) == 4
        assert all(t == 0.0 for _, _, t in segs)

    def test_grid_sample_count(self):
        assert grid_sample_count(0.0, 1.0, 0.25) == 5
        assert grid_sample_count(0.0, 0.9, 0.25) == 4

    def test_clip_distances(self):
        near, far = clip_distances(make_room_scene())
        assert near > 0 and far / near == pytest.approx(1e4)


class TestObjectCameras:

    def setup_method(self):
        self.scene = make_room_scene()
        self.params = small_params()
        self.rng = random_generator(0)

    def test_viewpoint_pulled_in_front_of_wall(self):
        table = self.scene.find("table")
        # looking along -x: the unobstructed viewpoint would sit inside the +x wall
        vp = object_viewpoint(self.scene, table, np.array([-1.0, 0.0, 0.0]), self.params, self.rng)
        assert table.bbox()[1][0] < vp[0] < ROOM_SIZE - 0.1
        assert table.bbox()[1][2] < vp[2] < self.params.eye_height + self.params.eye_height_radius

    def test_viewpoint_at_eye_height_when_unobstructed(self):
        params = small_params(xfov=1.2)
        table = self.scene.find("table")
        vp = object_viewpoint(self.scene, table, np.array([-1.0, 0.0, 0.0]), params, self.rng)
        assert vp[2] == pytest.approx(params.eye_height, abs=params.eye_height_radius)

    def test_one_camera_per_object(self):
        scorer = ObjectCoverageScorer(self.scene, SurfaceSampleCache(self.rng))
        cams = create_object_cameras(self.scene, self.params, scorer, self.rng)
        assert [c.name for c in cams] == ["table"]
        cam = cams[0]
        assert 0 < cam.value <= 1
        to_centroid = self.scene.find("table").centroid() - cam.origin
        assert np.allclose(cam.towards, to_centroid / np.linalg.norm(to_centroid), atol=1e-6)

    def test_min_score_filters(self):
        params = small_params(min_score=1.1)
        scorer = ObjectCoverageScorer(self.scene, SurfaceSampleCache(self.rng))
        assert create_object_cameras(self.scene, params, scorer, self.rng) == []


class TestWallCameras:

    def test_best_camera_per_wall(self):
        scene = make_room_scene()
        params = small_params()
        scorer = SceneCoverageScorer(scene, RayCastRenderer(params.width, params.height), params)
        cams = create_wall_cameras(scene, params, scorer, random_generator(0))
        assert 1 <= len(cams) <= 4
        assert len({c.name for c in cams}) == len(cams)
        for c in cams:
            assert c.name.startswith("Room#1_")
            assert c.value > 0
            assert 0 <= c.origin[0] <= ROOM_SIZE and 0 <= c.origin[1] <= ROOM_SIZE

    def test_malformed_room_is_skipped(self):
        root = SceneNode("Project#1")
        room = root.add_child(SceneNode("Room#1"))
        room.add_child(SceneNode("Floors#1", *quad_mesh(0, 0, 4, 4, 0)))
        scene = Scene(root)
        params = small_params()
        scorer = SceneCoverageScorer(scene, RayCastRenderer(params.width, params.height), params)
        assert create_wall_cameras(scene, params, scorer, random_generator(0)) == []


class TestRoomCameras:

    def setup_method(self):
        self.scene = make_room_scene()
        self.params = small_params(position_sampling=0.25, angle_sampling=math.pi / 2)
        self.scorer = SceneCoverageScorer(
            self.scene, RayCastRenderer(self.params.width, self.params.height), self.params)

    def test_one_camera_per_azimuth_bucket(self):
        masks = {}
        cams = create_room_cameras(self.scene, self.params, self.scorer, random_generator(0), masks)
        assert len(cams) == 4
        assert sorted(c.name for c in cams) == [f"Room#1_{j}" for j in range(4)]
        assert set(masks["Room#1"]) == {"floor", "free", "mask"}
        for j, c in enumerate(sorted(cams, key=lambda c: c.name)):
            azimuth = math.atan2(c.towards[1], c.towards[0]) % (2 * math.pi)
            assert j * math.pi / 2 - 1e-6 <= azimuth <= (j + 1) * math.pi / 2 + 1e-6
            assert masks["Room#1"]["mask"].world_value(c.origin[0], c.origin[1]) == 1
            assert c.towards[2] < 0

    def test_same_seed_same_cameras(self):
        a = create_room_cameras(self.scene, self.params, self.scorer, random_generator(7))
        b = create_room_cameras(self.scene, self.params, self.scorer, random_generator(7))
        assert [(c.name, tuple(c.origin), c.value) for c in a] == [(c.name, tuple(c.origin), c.value) for c in b]

    def test_eye_height_above_ceiling_skips_room(self):
        params = small_params(eye_height=3.0, angle_sampling=math.pi / 2)
        assert create_room_cameras(self.scene, params, self.scorer, random_generator(0)) == []

    def test_empty_room_yields_nothing(self):
        scene = make_room_scene(with_object=False)
        scorer = SceneCoverageScorer(scene, RayCastRenderer(self.params.width, self.params.height), self.params)
        assert create_room_cameras(scene, self.params, scorer, random_generator(0)) == []
