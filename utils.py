# utils.py — shared helpers for scn2cam
# Right-handed camera frame: towards (forward), up, right = towards x up.
# Pixel rows run top to bottom, columns left to right, for every renderer.

from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Dict, Iterable, Optional, Tuple
import math
import numpy as np
import open3d as o3d
import yaml

WORLD_UP = np.array([0.0, 0.0, 1.0])

# -------------------------
# Config / I/O
# -------------------------


def load_cfg(path: str) -> Dict:
    with open(path, "r") as f:
        cfg = yaml.safe_load(f)
    return cfg or {}


@dataclass
class CameraParams:
    """Every tunable the camera generators, scorers and renderers consume."""
    width: int = 640
    height: int = 480
    xfov: float = 0.5                     # half-angle, radians
    eye_height: float = 1.55
    eye_height_radius: float = 0.05
    position_sampling: float = 0.25
    angle_sampling: Optional[float] = None  # None -> per-generator default
    interpolation_step: float = 0.1
    scene_scoring_method: int = 0
    object_scoring_method: int = 0
    min_visible_objects: float = 3
    min_visible_fraction: float = 0.01
    min_distance_from_obstacle: float = 0.1
    min_score: float = 0.0
    renderer: str = "raycast"
    seed: int = 0

    @property
    def aspect(self) -> float:
        return float(self.height) / float(self.width)

    @property
    def yfov(self) -> float:
        return math.atan(self.aspect * math.tan(self.xfov))


def params_from_cfg(cfg: Optional[Dict], **overrides) -> CameraParams:
    """Fold a YAML dict (flat, or nested under ``camera``) plus overrides into CameraParams."""
    cfg = dict(cfg or {})
    if isinstance(cfg.get("camera"), dict):
        section = cfg.pop("camera")
        cfg = {**cfg, **section}
    known = {f.name for f in fields(CameraParams)}
    unknown = sorted(k for k in cfg if k not in known and k != "scene_path")
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
    values = {k: v for k, v in cfg.items() if k in known}
    values.update({k: v for k, v in overrides.items() if v is not None})
    params = CameraParams(**values)
    if params.width <= 0 or params.height <= 0:
        raise ValueError(f"Image size must be positive, got {params.width}x{params.height}")
    if params.position_sampling <= 0:
        raise ValueError("position_sampling must be positive")
    if params.angle_sampling is not None and params.angle_sampling <= 0:
        raise ValueError("angle_sampling must be positive")
    return params

# -------------------------
# Math helpers
# -------------------------

def _normalize(v: np.ndarray) -> np.ndarray:
    n = np.linalg.norm(v)
    return v / n if n > 1e-12 else v

def interior_angle(a: np.ndarray, b: np.ndarray) -> float:
    """Unsigned angle between two vectors, radians."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    # atan2 form: exactly 0 for parallel vectors
    return float(math.atan2(np.linalg.norm(np.cross(a, b)), np.dot(a, b)))

def transform_points(T: np.ndarray, P: np.ndarray) -> np.ndarray:
    P = np.asarray(P, dtype=float).reshape(-1, 3)
    return P @ T[:3, :3].T + T[:3, 3]

def bbox_intersects(lo_a, hi_a, lo_b, hi_b) -> bool:
    return bool(np.all(np.asarray(lo_a) <= np.asarray(hi_b)) and np.all(np.asarray(lo_b) <= np.asarray(hi_a)))

def rotate_z(v: np.ndarray, angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.array([v[0] * c - v[1] * s, v[0] * s + v[1] * c, v[2]], dtype=float)

# -------------------------
# Camera frame / intrinsics
# -------------------------

def orthonormal_frame(towards, up=WORLD_UP) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Return unit (towards, up, right) with right = towards x up and
    up re-derived as right x towards. Falls back to +Y / +Z when towards
    is parallel to the requested up.
    """
    towards = np.asarray(towards, dtype=float)
    if np.linalg.norm(towards) < 1e-12:
        raise ValueError("Camera towards vector has zero length.")
    t = _normalize(towards)
    u = np.asarray(up, dtype=float)
    if np.linalg.norm(np.cross(t, u)) < 1e-6 * max(np.linalg.norm(u), 1e-12):
        u = np.array([0, 1, 0], float) if abs(t[2]) > 0.9 else np.array([0, 0, 1], float)
    r = _normalize(np.cross(t, u))
    u = _normalize(np.cross(r, t))
    return t, u, r

def pinhole_intrinsics(width: int, height: int, xfov: float, yfov: float) -> Dict[str, float]:
    fx = 0.5 * width / np.tan(xfov)
    fy = 0.5 * height / np.tan(yfov)
    return dict(width=width, height=height, fx=fx, fy=fy, cx=width / 2, cy=height / 2)

# -------------------------
# Raycasting
# -------------------------

def rays_from_camera(origin, towards, up, right, xfov: float, yfov: float,
                     width: int, height: int) -> np.ndarray:
    """One ray per pixel centre, row-major from the top-left pixel, as (H*W, 6) float32."""
    i, j = np.meshgrid(np.arange(width), np.arange(height))
    x = (2.0 * (i + 0.5) / width - 1.0) * math.tan(xfov)
    y = (1.0 - 2.0 * (j + 0.5) / height) * math.tan(yfov)
    dirs = (np.asarray(towards, float)[None, None, :]
            + x[..., None] * np.asarray(right, float)[None, None, :]
            + y[..., None] * np.asarray(up, float)[None, None, :])
    dirs /= (np.linalg.norm(dirs, axis=-1, keepdims=True) + 1e-12)
    orig = np.broadcast_to(np.asarray(origin, float), dirs.shape)
    return np.concatenate([orig, dirs], axis=-1).astype(np.float32).reshape(-1, 6)

def build_raycasting_scene(meshes: Iterable[Tuple[int, np.ndarray, np.ndarray]]
                           ) -> Tuple[o3d.t.geometry.RaycastingScene, Dict[int, int]]:
    """
    Add each (node_index, world vertices, triangles) to one RaycastingScene.
    Returns the scene and the geometry-id -> node-index map.
    """
    scene = o3d.t.geometry.RaycastingScene()
    id_to_node: Dict[int, int] = {}
    for node_index, V, F in meshes:
        if V.size == 0 or F.size == 0:
            continue
        tmesh = o3d.t.geometry.TriangleMesh(
            vertex_positions=o3d.core.Tensor(np.ascontiguousarray(V, dtype=np.float32)),
            triangle_indices=o3d.core.Tensor(np.ascontiguousarray(F, dtype=np.int32))
        )
        gid = scene.add_triangles(tmesh)
        id_to_node[int(gid)] = int(node_index)
    return scene, id_to_node

def cast_rays(scene: o3d.t.geometry.RaycastingScene, id_to_node: Dict[int, int],
              rays: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return per-ray (node index or -1, t_hit or inf)."""
    rays = np.ascontiguousarray(rays, dtype=np.float32).reshape(-1, 6)
    if len(rays) == 0:
        return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=float)
    out = scene.cast_rays(o3d.core.Tensor(rays))
    t_hit = out["t_hit"].numpy().astype(float)
    gids = out["geometry_ids"].numpy().astype(np.int64)
    lut_keys = np.array(sorted(id_to_node), dtype=np.int64)
    node_ids = np.full(len(rays), -1, dtype=np.int64)
    hit = np.isfinite(t_hit)
    if len(lut_keys):
        pos = np.searchsorted(lut_keys, gids)
        pos = np.clip(pos, 0, len(lut_keys) - 1)
        known = hit & (lut_keys[pos] == gids)
        lut_vals = np.array([id_to_node[k] for k in lut_keys], dtype=np.int64)
        node_ids[known] = lut_vals[pos[known]]
        t_hit[hit & ~known] = np.inf
    else:
        t_hit[:] = np.inf
    return node_ids, t_hit

def triangle_areas(V: np.ndarray, F: np.ndarray) -> np.ndarray:
    if V.size == 0 or F.size == 0:
        return np.zeros(0, dtype=float)
    a = V[F[:, 0]]; b = V[F[:, 1]]; c = V[F[:, 2]]
    return 0.5 * np.linalg.norm(np.cross(b - a, c - a), axis=1)

def random_generator(seed: Optional[int] = None) -> np.random.Generator:
    return np.random.default_rng(seed)

# -------------------------
# Exported names
# -------------------------

__all__ = [
    # config / io
    "load_cfg", "CameraParams", "params_from_cfg",
    # math
    "_normalize", "interior_angle", "transform_points",
    "bbox_intersects", "rotate_z", "WORLD_UP",
    # camera
    "orthonormal_frame", "pinhole_intrinsics",
    # raycasting
    "rays_from_camera", "build_raycasting_scene", "cast_rays",
    "triangle_areas", "random_generator",
]
