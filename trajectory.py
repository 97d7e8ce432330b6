# trajectory.py — smooth camera path through an ordered camera list
# Keypoint parameter = cumulative (viewpoint distance + angle between towards vectors),
# so a pure rotation in place still advances along the path.

from __future__ import annotations
from typing import List, Tuple
import logging
import math
import time
import numpy as np
from scipy.interpolate import CubicHermiteSpline

from camera import Camera
from utils import interior_angle

log = logging.getLogger(__name__)


def trajectory_keypoints(cameras: List[Camera]) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """(parameters, viewpoints, towards-as-points, ups-as-points) for every camera."""
    n = len(cameras)
    u = np.zeros(n)
    V = np.array([c.origin for c in cameras], dtype=float).reshape(n, 3)
    T = np.array([c.towards for c in cameras], dtype=float).reshape(n, 3)
    U = np.array([c.up for c in cameras], dtype=float).reshape(n, 3)
    for i in range(1, n):
        u[i] = u[i - 1] + float(np.linalg.norm(V[i] - V[i - 1])) + interior_angle(T[i], T[i - 1])
    return u, V, T, U


def catmull_rom_tangents(u: np.ndarray, P: np.ndarray) -> np.ndarray:
    """Centred finite differences over the (non-uniform) parameters, one-sided at the ends."""
    n = len(u)
    M = np.zeros_like(P)
    if n < 2:
        return M
    M[0] = (P[1] - P[0]) / (u[1] - u[0])
    M[-1] = (P[-1] - P[-2]) / (u[-1] - u[-2])
    if n > 2:
        M[1:-1] = (P[2:] - P[:-2]) / (u[2:] - u[:-2])[:, None]
    return M


class CatmullRomSpline:
    """C1 interpolating cubic through every keypoint, shaped by its neighbours."""

    def __init__(self, points: np.ndarray, parameters: np.ndarray):
        self.points = np.asarray(points, dtype=float)
        self.parameters = np.asarray(parameters, dtype=float)
        if len(self.points) > 1:
            self._spline = CubicHermiteSpline(self.parameters, self.points,
                                              catmull_rom_tangents(self.parameters, self.points), axis=0)
        else:
            self._spline = None

    @property
    def start_parameter(self) -> float:
        return float(self.parameters[0])

    @property
    def end_parameter(self) -> float:
        return float(self.parameters[-1])

    def __call__(self, u) -> np.ndarray:
        if self._spline is None:
            return np.broadcast_to(self.points[0], np.shape(u) + (self.points.shape[1],)).copy()
        return self._spline(u)


def interpolate_camera_trajectory(cameras: List[Camera], step: float = 0.1) -> List[Camera]:
    """
    Resample the path through ``cameras`` every ``step`` units of parameter.
    Intrinsics and clip distances come from the first camera.
    """
    if not cameras:
        raise ValueError("Cannot interpolate a trajectory through zero cameras.")
    if step <= 0:
        raise ValueError(f"Trajectory step must be positive, got {step}")
    start = time.time()
    first = cameras[0]

    u, V, T, U = trajectory_keypoints(cameras)
    # coincident consecutive keypoints add nothing and would break strict monotonicity
    keep = np.concatenate([[True], np.diff(u) > 1e-12])
    u, V, T, U = u[keep], V[keep], T[keep], U[keep]

    viewpoint_spline = CatmullRomSpline(V, u)
    towards_spline = CatmullRomSpline(T, u)
    up_spline = CatmullRomSpline(U, u)

    u0, u1 = viewpoint_spline.start_parameter, viewpoint_spline.end_parameter
    nsamples = int(math.floor((u1 - u0) / step + 1e-9)) + 1
    samples = u0 + step * np.arange(nsamples)
    viewpoints = viewpoint_spline(samples)
    towards = towards_spline(samples)
    ups = up_spline(samples)

    trajectory = []
    last_towards = first.towards
    for k, s in enumerate(samples):
        t = towards[k]
        if np.linalg.norm(t) < 1e-9:
            t = last_towards
        last_towards = t
        trajectory.append(Camera(viewpoints[k], t, ups[k], first.xfov, first.yfov,
                                 first.near, first.far, name=f"T{s:f}"))

    log.info("[trajectory] Interpolated camera trajectory ... %.2f s, %d cameras",
             time.time() - start, len(trajectory))
    return trajectory


__all__ = [
    "trajectory_keypoints", "catmull_rom_tangents", "CatmullRomSpline",
    "interpolate_camera_trajectory",
]
