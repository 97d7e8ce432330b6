# coverage.py — camera scoring
#   ObjectCoverageScorer : fraction of an object's sampled surface points seen unoccluded
#   SceneCoverageScorer  : breadth of visible objects in a full node-identity image

from __future__ import annotations
from typing import Dict, Optional
import logging
import numpy as np

from camera import Camera
from scene_model import STRUCTURAL_ROLES, Scene, SceneNode
from utils import CameraParams, triangle_areas, random_generator
from visibility import VisibilityRenderer

log = logging.getLogger(__name__)

TARGET_SURFACE_POINTS = 512
MAX_SURFACE_POINTS = 1024
VISIBILITY_TOLERANCE = 0.01


def is_object(node: SceneNode) -> bool:
    """Leaf nodes that are not walls, floors, ceilings, doors or windows."""
    return node.is_leaf and node.role not in STRUCTURAL_ROLES

# -------------------- surface sampling --------------------

def sample_surface_points(node: SceneNode, rng: np.random.Generator,
                          target_points: int = TARGET_SURFACE_POINTS,
                          max_points: int = MAX_SURFACE_POINTS) -> np.ndarray:
    """
    Area-weighted random points on the node's own triangles, world coordinates.
    Each triangle gets target*area/total samples; the fractional part is a
    Bernoulli draw so the expected count matches the area fraction.
    """
    V = node.world_vertices(); F = node.triangles
    tri_area = triangle_areas(V, F)
    total_area = float(tri_area.sum())
    if total_area <= 1e-12:
        return np.zeros((0, 3))

    real = target_points * tri_area / total_area
    counts = np.floor(real).astype(np.int64)
    counts += (rng.random(len(F)) < (real - counts)).astype(np.int64)
    face_idx = np.repeat(np.arange(len(F)), counts)[:max_points]
    n = len(face_idx)
    if n == 0:
        return np.zeros((0, 3))

    u = np.sqrt(rng.random(n)); v = rng.random(n)
    Aa = V[F[face_idx, 0]]; Bb = V[F[face_idx, 1]]; Cc = V[F[face_idx, 2]]
    return (1 - u)[:, None] * Aa + (u * (1 - v))[:, None] * Bb + (u * v)[:, None] * Cc


class SurfaceSampleCache:
    """
    Surface samples keyed by node index, owned by whoever drives scoring.
    Not thread-safe: give each worker its own cache (or none).
    """

    def __init__(self, rng: Optional[np.random.Generator] = None,
                 target_points: int = TARGET_SURFACE_POINTS,
                 max_points: int = MAX_SURFACE_POINTS):
        self.rng = rng if rng is not None else random_generator()
        self.target_points = int(target_points)
        self.max_points = int(max_points)
        self._points: Dict[int, np.ndarray] = {}

    def points(self, node: SceneNode) -> np.ndarray:
        if node.index not in self._points:
            self._points[node.index] = sample_surface_points(
                node, self.rng, self.target_points, self.max_points)
        return self._points[node.index]

    def __len__(self):
        return len(self._points)

    def clear(self) -> None:
        self._points.clear()


class ObjectCoverageScorer:
    def __init__(self, scene: Scene, cache: Optional[SurfaceSampleCache] = None,
                 tolerance: float = VISIBILITY_TOLERANCE, method: int = 0):
        if method != 0:
            raise ValueError(f"Unknown object scoring method {method}")
        self.scene = scene
        self.cache = cache if cache is not None else SurfaceSampleCache()
        self.tolerance = float(tolerance)

    def score(self, camera: Camera, node: SceneNode) -> float:
        """Fraction in [0, 1] of the node's surface samples visible from the camera."""
        P = self.cache.points(node)
        if len(P) == 0:
            return 0.0

        C = camera.origin
        vec = P - C[None, :]
        dist = np.linalg.norm(vec, axis=1)
        ok = dist > 1e-9
        dirs = vec / np.maximum(dist, 1e-9)[:, None]
        node_ids, t_hit = self.scene.cast_rays(np.broadcast_to(C, P.shape), dirs,
                                               t_min=0.0, t_max=dist + self.tolerance)
        # first hit must be this node, at the sample itself
        visible = ok & (node_ids == node.index) & (np.abs(t_hit - dist) <= self.tolerance)
        return float(visible.sum()) / float(len(P))

# -------------------- scene coverage --------------------

def node_pixel_counts(image: np.ndarray, n_nodes: int) -> np.ndarray:
    values = np.asarray(image).ravel()
    values = values[(values >= 0) & (values < n_nodes)].astype(np.int64)
    return np.bincount(values, minlength=n_nodes)

def aggregate_scene_score(counts: np.ndarray, object_mask: np.ndarray, total_pixels: int,
                          min_visible_fraction: float, min_visible_objects: float,
                          method: int = 0) -> float:
    """
    method 0: (#objects x #object pixels) / #image pixels
    method 1: sum over objects of ln(pixels / per-object pixel threshold)
    Objects count only above the threshold; the total must exceed min_visible_objects.
    """
    if total_pixels <= 0:
        return 0.0
    min_pixels = int(min_visible_fraction * total_pixels)
    if min_pixels == 0:
        return 0.0

    counts = np.asarray(counts)
    qualifying = np.asarray(object_mask, dtype=bool) & (counts > min_pixels)
    node_count = int(qualifying.sum())
    if method == 0:
        pixel_count = int(counts[qualifying].sum())
        if node_count > min_visible_objects:
            return node_count * pixel_count / float(total_pixels)
        return 0.0
    if method == 1:
        # counts > min_pixels, so every term is strictly positive
        total = float(np.sum(np.log(counts[qualifying] / float(min_pixels))))
        if node_count > min_visible_objects:
            return total
        return 0.0
    raise ValueError(f"Unknown scene scoring method {method}")


class SceneCoverageScorer:
    def __init__(self, scene: Scene, renderer: VisibilityRenderer, params: CameraParams):
        if params.scene_scoring_method not in (0, 1):
            raise ValueError(f"Unknown scene scoring method {params.scene_scoring_method}")
        self.scene = scene
        self.renderer = renderer
        self.params = params
        self.object_mask = np.array([is_object(n) for n in scene.nodes], dtype=bool)

    def pixel_counts(self, camera: Camera) -> np.ndarray:
        image = self.renderer.render(camera, self.scene, self.scene.root)
        return node_pixel_counts(image, self.scene.n_nodes)

    def score(self, camera: Camera, room: Optional[SceneNode] = None) -> float:
        """
        Whole-scene render, so geometry outside ``room`` still occludes;
        ``room`` only labels the debug trace.
        """
        total_pixels = self.renderer.width * self.renderer.height
        if total_pixels == 0 or int(self.params.min_visible_fraction * total_pixels) == 0:
            return 0.0
        counts = self.pixel_counts(camera)
        value = aggregate_scene_score(counts, self.object_mask, total_pixels,
                                      self.params.min_visible_fraction,
                                      self.params.min_visible_objects,
                                      self.params.scene_scoring_method)
        if log.isEnabledFor(logging.DEBUG) and value > 0:
            log.debug("[coverage] %s score=%.4f objects=%d",
                      room.name if room is not None else "scene", value,
                      int((self.object_mask & (counts > 0)).sum()))
        return value


__all__ = [
    "TARGET_SURFACE_POINTS", "MAX_SURFACE_POINTS", "VISIBILITY_TOLERANCE",
    "is_object", "sample_surface_points", "SurfaceSampleCache", "ObjectCoverageScorer",
    "node_pixel_counts", "aggregate_scene_score", "SceneCoverageScorer",
]
