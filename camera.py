# camera.py — candidate camera with an always-orthonormal frame + deterministic sorting

from __future__ import annotations
from typing import List, Optional
import logging
import numpy as np

from utils import orthonormal_frame

log = logging.getLogger(__name__)


class Camera:
    """
    Viewpoint, unit towards/up (orthogonal) and derived right = towards x up.
    Geometry is fixed at construction; only ``value`` and ``name`` change later.
    """

    __slots__ = ("_origin", "_towards", "_up", "_right",
                 "xfov", "yfov", "near", "far", "value", "name")

    def __init__(self, origin, towards, up, xfov: float, yfov: float,
                 near: float = 0.01, far: float = 100.0,
                 value: float = 0.0, name: Optional[str] = None):
        t, u, r = orthonormal_frame(towards, up)
        self._origin = np.array(origin, dtype=float).reshape(3)
        self._towards = t
        self._up = u
        self._right = r
        self.xfov = float(xfov)
        self.yfov = float(yfov)
        self.near = float(near)
        self.far = float(far)
        self.value = float(value)
        self.name = name

    @property
    def origin(self) -> np.ndarray:
        return self._origin.copy()

    @property
    def towards(self) -> np.ndarray:
        return self._towards.copy()

    @property
    def up(self) -> np.ndarray:
        return self._up.copy()

    @property
    def right(self) -> np.ndarray:
        return self._right.copy()

    def world_to_camera(self) -> np.ndarray:
        """3x4 extrinsic matrix; camera axes are right, up, back (-towards)."""
        R = np.stack([self._right, self._up, -self._towards], axis=0)
        E = np.zeros((3, 4))
        E[:, :3] = R
        E[:, 3] = -R @ self._origin
        return E

    def __repr__(self):
        o = self._origin
        return f"Camera(name={self.name!r}, origin=({o[0]:.3f}, {o[1]:.3f}, {o[2]:.3f}), value={self.value:.4g})"


def _sort_key(camera: Camera):
    o = camera._origin; t = camera._towards
    return (-camera.value, camera.name or "",
            float(o[0]), float(o[1]), float(o[2]),
            float(t[0]), float(t[1]), float(t[2]))

def sort_cameras(cameras: List[Camera]) -> List[Camera]:
    """Best score first; ties broken by name, then viewpoint, then direction."""
    ordered = sorted(cameras, key=_sort_key)
    log.info("[camera] Sorted cameras ... %d cameras", len(ordered))
    return ordered


__all__ = ["Camera", "sort_cameras"]
