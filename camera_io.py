# camera_io.py — camera list text I/O plus write-only side channels
# Camera record: vx vy vz  tx ty tz  ux uy uz  xfov yfov  value

from __future__ import annotations
from typing import List
import logging
import math
import time

from camera import Camera
from scene_model import Scene
from utils import pinhole_intrinsics

log = logging.getLogger(__name__)

FIELDS_PER_CAMERA = 12


def read_cameras(path: str, width: int = 640, height: int = 480,
                 near: float = 0.01, far: float = 100.0) -> List[Camera]:
    start = time.time()
    try:
        with open(path, "r") as f:
            tokens = f.read().split()
    except OSError as exc:
        raise FileNotFoundError(f"Unable to open cameras file {path}") from exc

    cameras = []
    for k in range(len(tokens) // FIELDS_PER_CAMERA):
        chunk = tokens[k * FIELDS_PER_CAMERA:(k + 1) * FIELDS_PER_CAMERA]
        try:
            v = [float(x) for x in chunk]
        except ValueError:
            log.warning("[camera_io] Stopping at malformed record %d in %s", k, path)
            break
        xfov = v[9]
        yfov = v[10] if v[10] > 0 else math.atan(height / width * math.tan(xfov))
        cameras.append(Camera(v[0:3], v[3:6], v[6:9], xfov, yfov, near, far, value=v[11]))

    log.info("[camera_io] Read cameras from %s ... %.2f s, %d cameras",
             path, time.time() - start, len(cameras))
    return cameras


def write_cameras(path: str, cameras: List[Camera]) -> None:
    with open(path, "w") as f:
        for cam in cameras:
            e, t, u = cam.origin, cam.towards, cam.up
            f.write(f"{e[0]:.12g} {e[1]:.12g} {e[2]:.12g}  "
                    f"{t[0]:.12g} {t[1]:.12g} {t[2]:.12g}  "
                    f"{u[0]:.12g} {u[1]:.12g} {u[2]:.12g}  "
                    f"{cam.xfov:.12g} {cam.yfov:.12g}  {cam.value:.12g}\n")
    log.info("[camera_io] Wrote cameras to %s ... %d cameras", path, len(cameras))


def write_camera_extrinsics(path: str, cameras: List[Camera]) -> None:
    with open(path, "w") as f:
        for cam in cameras:
            E = cam.world_to_camera()
            rows = ["  ".join(f"{x:.12g}" for x in E[r]) for r in range(3)]
            f.write("   ".join(rows) + "\n")
    log.info("[camera_io] Wrote camera extrinsics to %s ... %d cameras", path, len(cameras))


def write_camera_intrinsics(path: str, cameras: List[Camera], width: int, height: int) -> None:
    with open(path, "w") as f:
        for cam in cameras:
            K = pinhole_intrinsics(width, height, cam.xfov, cam.yfov)
            f.write(f"{K['fx']:.12g} 0 {K['cx']:.12g}   0 {K['fy']:.12g} {K['cy']:.12g}  0 0 1\n")
    log.info("[camera_io] Wrote camera intrinsics to %s", path)


def write_camera_names(path: str, cameras: List[Camera]) -> None:
    with open(path, "w") as f:
        for cam in cameras:
            f.write(f"{cam.name if cam.name else '-'}\n")
    log.info("[camera_io] Wrote camera names to %s", path)


def write_node_names(path: str, scene: Scene) -> None:
    with open(path, "w") as f:
        for node in scene.nodes:
            f.write(f"{node.index + 1} {node.name if node.name else '-'}\n")
    log.info("[camera_io] Wrote node names to %s ... %d nodes", path, scene.n_nodes)


__all__ = [
    "read_cameras", "write_cameras", "write_camera_extrinsics",
    "write_camera_intrinsics", "write_camera_names", "write_node_names",
]
