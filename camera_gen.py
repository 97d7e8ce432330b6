# camera_gen.py — candidate camera generators
#   object-centric : orbit every object, score by surface coverage of that object
#   wall-centric   : walk along each wall of each room, look into the room
#   room-centric   : grid positions inside the room's viewpoint mask, one camera per azimuth bucket
# Each generator keeps the single best camera per outer bucket (object / wall / room azimuth).

from __future__ import annotations
from typing import Dict, List, Optional, Tuple
import logging
import math
import time
import numpy as np

from camera import Camera
from coverage import ObjectCoverageScorer, SceneCoverageScorer, is_object
from scene_model import NodeRole, Scene, SceneNode, room_parts
from utils import CameraParams, WORLD_UP, rotate_z
from viewpoint_mask import XYGrid, compute_viewpoint_mask

log = logging.getLogger(__name__)

OBJECT_ANGLE_SAMPLING = math.pi / 6.0
WALL_ANGLE_SAMPLING = math.pi / 3.0
ROOM_ANGLE_SAMPLING = math.pi / 2.0
DOWNWARD_PITCH = -0.2   # z component of the un-normalised towards vector


def clip_distances(scene: Scene) -> Tuple[float, float]:
    r = scene.diagonal_radius()
    if r <= 0:
        r = 1.0
    return 0.01 * r, 100.0 * r

def azimuth_buckets(angle_sampling: float) -> Tuple[int, float]:
    """Number of buckets covering 2*pi and their width."""
    n = max(1, int(2.0 * math.pi / angle_sampling + 0.5))
    return n, 2.0 * math.pi / n

def _jittered_eye_height(base_z: float, params: CameraParams, rng: np.random.Generator) -> float:
    return base_z + params.eye_height + 2.0 * (rng.random() - 0.5) * params.eye_height_radius

def _accept(camera: Camera, params: CameraParams) -> bool:
    return camera.value > 0 and camera.value >= params.min_score

# -------------------- object-centric --------------------

def object_viewpoint(scene: Scene, node: SceneNode, view_direction: np.ndarray,
                     params: CameraParams, rng: np.random.Generator) -> Optional[np.ndarray]:
    """Viewpoint looking along ``view_direction`` at the node's centroid, pulled in front of occluders."""
    centroid = node.centroid()
    if centroid is None:
        return None
    radius = node.diagonal_radius()
    margin = params.min_distance_from_obstacle
    min_distance = max(radius, margin)
    max_distance = max(1.5 * radius / math.tan(params.xfov), margin)
    viewpoint = centroid - max_distance * view_direction

    # objects standing in a room are viewed from eye height
    parent = node.parent
    if parent is not None and parent.role in (NodeRole.ROOM, NodeRole.FLOOR):
        parent_bbox = parent.bbox()
        if parent_bbox is not None:
            viewpoint[2] = _jittered_eye_height(parent_bbox[0][2], params, rng)

    back = viewpoint - centroid
    distance = float(np.linalg.norm(back))
    if distance < 1e-9:
        return None
    back = back / distance
    # the eye-height snap can lengthen the segment, so test all of it
    hit, _, hit_t = scene.intersects(centroid, back, t_min=min_distance,
                                     t_max=max(max_distance, distance))
    if hit:
        viewpoint = centroid + (hit_t - margin) * back
    return viewpoint


def create_object_cameras(scene: Scene, params: CameraParams, scorer: ObjectCoverageScorer,
                          rng: np.random.Generator) -> List[Camera]:
    start = time.time()
    near, far = clip_distances(scene)
    nangles, angle_spacing = azimuth_buckets(params.angle_sampling or OBJECT_ANGLE_SAMPLING)

    cameras = []
    for node in scene.nodes:
        if not is_object(node):
            continue
        centroid = node.centroid()
        if centroid is None:
            continue
        best = None
        for j in range(nangles):
            view_direction = rotate_z(np.array([-1.0, 0.0, 0.0]), (j + rng.random()) * angle_spacing)
            viewpoint = object_viewpoint(scene, node, view_direction, params, rng)
            if viewpoint is None:
                continue
            towards = centroid - viewpoint
            if np.linalg.norm(towards) < 1e-9:
                continue
            camera = Camera(viewpoint, towards, WORLD_UP, params.xfov, params.yfov, near, far)
            camera.value = scorer.score(camera, node)
            if not _accept(camera, params):
                continue
            if best is None or camera.value > best.value:
                best = camera
        if best is not None:
            best.name = node.name
            log.debug("OBJECT %s %g", node.name or "-", best.value)
            cameras.append(best)

    log.info("[camera_gen] Created object cameras ... %.2f s, %d cameras",
             time.time() - start, len(cameras))
    return cameras

# -------------------- wall-centric --------------------

def room_wall_segments(room: SceneNode) -> List[Tuple[np.ndarray, np.ndarray, float]]:
    """(p1, p2, thickness) in world XY; the room's bounding rectangle when no walls are recorded."""
    walls = room.data.get("walls")
    if walls:
        return [(np.asarray(w["p1"], dtype=float)[:2], np.asarray(w["p2"], dtype=float)[:2],
                 float(w.get("thickness", 0.0))) for w in walls]
    b = room.bbox()
    if b is None:
        return []
    (x0, y0), (x1, y1) = b[0][:2], b[1][:2]
    corners = [np.array(c, dtype=float) for c in ((x0, y0), (x1, y0), (x1, y1), (x0, y1))]
    return [(corners[k], corners[(k + 1) % 4], 0.0) for k in range(4)]


def wall_sample_offsets(length: float, position_sampling: float) -> np.ndarray:
    """Bucket centres along a segment, spaced length / ceil(length / position_sampling)."""
    if length <= 0:
        return np.zeros(0)
    n = max(1, int(math.ceil(length / position_sampling - 1e-9)))
    spacing = length / n
    return (np.arange(n) + 0.5) * spacing


def wall_positions(p1, p2, thickness: float, params: CameraParams,
                   room_lo, room_hi) -> List[Tuple[np.ndarray, np.ndarray]]:
    """(position, inward normal) pairs offset off the wall, inside the room rectangle."""
    p1 = np.asarray(p1, dtype=float); p2 = np.asarray(p2, dtype=float)
    room_lo = np.asarray(room_lo, dtype=float)[:2]; room_hi = np.asarray(room_hi, dtype=float)[:2]
    length = float(np.linalg.norm(p2 - p1))
    if length <= 0:
        return []
    direction = (p2 - p1) / length
    normal = np.array([-direction[1], direction[0]])
    center = 0.5 * (room_lo + room_hi)

    out = []
    for t in wall_sample_offsets(length, params.position_sampling):
        position = p1 + t * direction
        n = normal if np.dot(center - position, normal) >= 0 else -normal
        position = position + (thickness + params.min_distance_from_obstacle) * n
        if np.any(position < room_lo) or np.any(position > room_hi):
            continue
        out.append((position, n))
    return out


def wall_view_angles(params: CameraParams, rng: np.random.Generator) -> np.ndarray:
    """Angles from the wall direction keeping the whole horizontal FOV inside the room half-plane."""
    angle_range = math.pi - 2.0 * params.xfov
    if angle_range <= 0:
        return np.zeros(0)
    n = max(1, int(angle_range / (params.angle_sampling or WALL_ANGLE_SAMPLING) + 0.5))
    spacing = angle_range / n
    return params.xfov + (np.arange(n) + rng.random(n)) * spacing


def create_wall_cameras(scene: Scene, params: CameraParams, scorer: SceneCoverageScorer,
                        rng: np.random.Generator) -> List[Camera]:
    start = time.time()
    near, far = clip_distances(scene)

    cameras = []
    for room in scene.rooms():
        if room_parts(room) is None:
            continue
        room_bbox = room.bbox()
        if room_bbox is None:
            continue
        for k, (p1, p2, thickness) in enumerate(room_wall_segments(room)):
            best = None
            for position, normal in wall_positions(p1, p2, thickness, params, room_bbox[0], room_bbox[1]):
                for a in wall_view_angles(params, rng):
                    d = rotate_z(np.array([normal[0], normal[1], 0.0]), a - 0.5 * math.pi)
                    z = _jittered_eye_height(room_bbox[0][2], params, rng)
                    camera = Camera((position[0], position[1], z), (d[0], d[1], DOWNWARD_PITCH),
                                    WORLD_UP, params.xfov, params.yfov, near, far)
                    camera.value = scorer.score(camera, room)
                    if not _accept(camera, params):
                        continue
                    if best is None or camera.value > best.value:
                        best = camera
            if best is not None:
                best.name = f"{room.name}_{k}"
                log.debug("WALL %s %d %g", room.name, k, best.value)
                cameras.append(best)

    log.info("[camera_gen] Created wall cameras ... %.2f s, %d cameras",
             time.time() - start, len(cameras))
    return cameras

# -------------------- room-centric --------------------

def grid_sample_count(lo: float, hi: float, spacing: float) -> int:
    return int(math.floor((hi - lo) / spacing + 1e-9)) + 1


def create_room_cameras(scene: Scene, params: CameraParams, scorer: SceneCoverageScorer,
                        rng: np.random.Generator,
                        mask_sink: Optional[Dict[str, Dict[str, XYGrid]]] = None) -> List[Camera]:
    start = time.time()
    near, far = clip_distances(scene)
    nangles, angle_spacing = azimuth_buckets(params.angle_sampling or ROOM_ANGLE_SAMPLING)
    ps = params.position_sampling

    cameras = []
    for room in scene.rooms():
        room_bbox = room.bbox()
        if room_bbox is None:
            continue
        z = _jittered_eye_height(room_bbox[0][2], params, rng)
        if z > room_bbox[1][2]:
            continue

        layers: Dict[str, XYGrid] = {}
        mask = compute_viewpoint_mask(room, params.min_distance_from_obstacle, layers)
        if mask is None:
            log.debug("[camera_gen] %s: no viewpoint mask, skipped", room.name)
            continue
        if mask_sink is not None:
            mask_sink[room.name or str(room.index)] = {**layers, "mask": mask}

        (xmin, ymin), (xmax, ymax) = room_bbox[0][:2], room_bbox[1][:2]
        nx = grid_sample_count(xmin, xmax, ps)
        ny = grid_sample_count(ymin, ymax, ps)
        for j in range(nangles):
            best = None
            for iy in range(ny):
                for ix in range(nx):
                    x = xmin + ix * ps + ps * rng.random()
                    y = ymin + iy * ps + ps * rng.random()
                    if mask.world_value(x, y) < 0.5:
                        continue
                    angle = (j + rng.random()) * angle_spacing
                    camera = Camera((x, y, z), (math.cos(angle), math.sin(angle), DOWNWARD_PITCH),
                                    WORLD_UP, params.xfov, params.yfov, near, far)
                    camera.value = scorer.score(camera, room)
                    if not _accept(camera, params):
                        continue
                    if best is None or camera.value > best.value:
                        best = camera
            if best is not None:
                best.name = f"{room.name}_{j}"
                log.debug("ROOM %s %d : %g", room.name, j, best.value)
                cameras.append(best)

    log.info("[camera_gen] Created room cameras ... %.2f s, %d cameras",
             time.time() - start, len(cameras))
    return cameras


__all__ = [
    "OBJECT_ANGLE_SAMPLING", "WALL_ANGLE_SAMPLING", "ROOM_ANGLE_SAMPLING",
    "clip_distances", "azimuth_buckets", "object_viewpoint", "create_object_cameras",
    "room_wall_segments", "wall_sample_offsets", "wall_positions", "wall_view_angles",
    "create_wall_cameras", "grid_sample_count", "create_room_cameras",
]
