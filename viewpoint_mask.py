# viewpoint_mask.py — top-down rasters of where a camera may stand inside a room
#   floor mask    : rasterized floor, eroded away from its boundary
#   free mask     : rasterized obstacles between floor and ceiling, inverted, eroded
#   viewpoint mask: floor * free

from __future__ import annotations
from typing import Dict, Optional, Tuple
import logging
import numpy as np
from scipy import ndimage

from scene_model import SceneNode, room_parts
from utils import bbox_intersects

log = logging.getLogger(__name__)

GRID_SAMPLING_FACTOR = 2
MAX_GRID_SPACING = 0.1
BAND_EPSILON = 1e-6


class XYGrid:
    """
    Scalar raster over a world XY box. Cell (iy, ix) covers
    [xmin + ix*dx, xmin + (ix+1)*dx) x [ymin + iy*dy, ymin + (iy+1)*dy).
    """

    def __init__(self, xres: int, yres: int, xmin: float, ymin: float, xmax: float, ymax: float):
        self.xres, self.yres = int(xres), int(yres)
        self.xmin, self.ymin = float(xmin), float(ymin)
        self.xmax, self.ymax = float(xmax), float(ymax)
        self.dx = (self.xmax - self.xmin) / self.xres
        self.dy = (self.ymax - self.ymin) / self.yres
        self.values = np.zeros((self.yres, self.xres), dtype=float)

    def copy(self) -> "XYGrid":
        g = XYGrid(self.xres, self.yres, self.xmin, self.ymin, self.xmax, self.ymax)
        g.values = self.values.copy()
        return g

    def contains(self, x: float, y: float) -> bool:
        return self.xmin <= x <= self.xmax and self.ymin <= y <= self.ymax

    def world_to_cell(self, x, y) -> Tuple[np.ndarray, np.ndarray]:
        ix = np.floor((np.asarray(x, dtype=float) - self.xmin) / self.dx).astype(np.int64)
        iy = np.floor((np.asarray(y, dtype=float) - self.ymin) / self.dy).astype(np.int64)
        return np.clip(ix, 0, self.xres - 1), np.clip(iy, 0, self.yres - 1)

    def world_value(self, x: float, y: float) -> float:
        if not self.contains(x, y):
            return 0.0
        ix, iy = self.world_to_cell(x, y)
        return float(self.values[iy, ix])

    def _mark_points(self, P: np.ndarray, value: float) -> None:
        inside = ((P[:, 0] >= self.xmin) & (P[:, 0] <= self.xmax)
                  & (P[:, 1] >= self.ymin) & (P[:, 1] <= self.ymax))
        if not inside.any():
            return
        ix, iy = self.world_to_cell(P[inside, 0], P[inside, 1])
        self.values[iy, ix] = value

    def rasterize_triangle(self, p0, p1, p2, value: float = 1.0) -> None:
        """Cells whose centres fall inside the triangle, plus every cell its edges cross."""
        T = np.array([p0, p1, p2], dtype=float)[:, :2]

        # edges, so triangles seen edge-on (walls) still mark their footprint
        step = 0.5 * min(self.dx, self.dy)
        for a, b in ((T[0], T[1]), (T[1], T[2]), (T[2], T[0])):
            n = max(1, int(np.ceil(np.linalg.norm(b - a) / step)))
            s = np.linspace(0.0, 1.0, n + 1)[:, None]
            self._mark_points(a + s * (b - a), value)

        lo = T.min(axis=0); hi = T.max(axis=0)
        ix0 = max(0, int(np.floor((lo[0] - self.xmin) / self.dx - 0.5)))
        ix1 = min(self.xres - 1, int(np.ceil((hi[0] - self.xmin) / self.dx - 0.5)))
        iy0 = max(0, int(np.floor((lo[1] - self.ymin) / self.dy - 0.5)))
        iy1 = min(self.yres - 1, int(np.ceil((hi[1] - self.ymin) / self.dy - 0.5)))
        if ix0 > ix1 or iy0 > iy1:
            return
        xs = self.xmin + (np.arange(ix0, ix1 + 1) + 0.5) * self.dx
        ys = self.ymin + (np.arange(iy0, iy1 + 1) + 0.5) * self.dy
        X, Y = np.meshgrid(xs, ys)

        (x0, y0), (x1, y1), (x2, y2) = T
        det = (y1 - y2) * (x0 - x2) + (x2 - x1) * (y0 - y2)
        if abs(det) < 1e-15:
            return
        l0 = ((y1 - y2) * (X - x2) + (x2 - x1) * (Y - y2)) / det
        l1 = ((y2 - y0) * (X - x2) + (x0 - x2) * (Y - y2)) / det
        l2 = 1.0 - l0 - l1
        eps = -1e-9
        inside = (l0 >= eps) & (l1 >= eps) & (l2 >= eps)
        block = self.values[iy0:iy1 + 1, ix0:ix1 + 1]
        block[inside] = value

    def threshold(self, level: float, low: float, high: float) -> None:
        """Values <= level become low, the rest high."""
        self.values = np.where(self.values <= level, low, high).astype(float)

    def erode(self, distance: float, border_value: int = 0) -> None:
        """Zero every cell within ``distance`` cells of a zero cell."""
        r = int(np.floor(distance))
        if r <= 0:
            return
        oy, ox = np.mgrid[-r:r + 1, -r:r + 1]
        disk = (ox * ox + oy * oy) <= distance * distance
        eroded = ndimage.binary_erosion(self.values > 0.5, structure=disk, border_value=border_value)
        self.values = eroded.astype(float)

    def mask(self, other: "XYGrid") -> None:
        self.values = self.values * other.values

    def cell_count(self) -> int:
        return int((self.values > 0.5).sum())


def rasterize_into_xy_grid(grid: XYGrid, node: SceneNode, band_lo: np.ndarray, band_hi: np.ndarray) -> None:
    """Project every triangle of the subtree touching the 3D band onto the grid."""
    node_bbox = node.bbox()
    if node_bbox is None or not bbox_intersects(node_bbox[0], node_bbox[1], band_lo, band_hi):
        return
    if node.triangles.size > 0:
        V = node.world_vertices()
        tri = V[node.triangles]                          # (M, 3, 3)
        tlo = tri.min(axis=1); thi = tri.max(axis=1)
        keep = np.all(tlo <= band_hi, axis=1) & np.all(band_lo <= thi, axis=1)
        for t in tri[keep]:
            grid.rasterize_triangle(t[0], t[1], t[2], 1.0)
    for child in node.children:
        rasterize_into_xy_grid(grid, child, band_lo, band_hi)


def compute_viewpoint_mask(room: SceneNode, min_distance_from_obstacle: float,
                           layers: Optional[Dict[str, XYGrid]] = None) -> Optional[XYGrid]:
    """
    Binary mask of standing positions at least ``min_distance_from_obstacle``
    from obstacles and inside the floor. None for malformed or tiny rooms.
    If ``layers`` is given it receives the intermediate 'floor' and 'free' grids.
    """
    parts = room_parts(room)
    if parts is None:
        return None
    _, floor_node, ceiling_node = parts
    room_bbox = room.bbox()
    floor_bbox = floor_node.bbox()
    ceiling_bbox = ceiling_node.bbox()
    if room_bbox is None or floor_bbox is None or ceiling_bbox is None:
        return None

    spacing = min_distance_from_obstacle / GRID_SAMPLING_FACTOR
    if spacing <= 0:
        spacing = MAX_GRID_SPACING
    spacing = min(spacing, MAX_GRID_SPACING)
    xmin, ymin = room_bbox[0][:2]
    xmax, ymax = room_bbox[1][:2]
    xres = int((xmax - xmin) / spacing)
    yres = int((ymax - ymin) / spacing)
    if xres < 3 or yres < 3:
        log.debug("[viewpoint_mask] %s: grid %dx%d too small", room.name, xres, yres)
        return None

    floor_mask = XYGrid(xres, yres, xmin, ymin, xmax, ymax)
    rasterize_into_xy_grid(floor_mask, floor_node, floor_bbox[0], floor_bbox[1])
    floor_mask.threshold(0.5, 0, 1)
    floor_mask.erode(GRID_SAMPLING_FACTOR)

    free_mask = XYGrid(xres, yres, xmin, ymin, xmax, ymax)
    band_lo = room_bbox[0].copy(); band_hi = room_bbox[1].copy()
    band_lo[2] = floor_bbox[1][2] + BAND_EPSILON
    band_hi[2] = ceiling_bbox[0][2] - BAND_EPSILON
    if band_lo[2] <= band_hi[2]:
        for child in room.children:
            if child is floor_node or child is ceiling_node:
                continue
            rasterize_into_xy_grid(free_mask, child, band_lo, band_hi)
        if room.parent is not None:
            for other in room.parent.children:
                if other.is_leaf:
                    rasterize_into_xy_grid(free_mask, other, band_lo, band_hi)
    free_mask.threshold(0.5, 1, 0)
    free_mask.erode(GRID_SAMPLING_FACTOR, border_value=1)

    mask = floor_mask.copy()
    mask.mask(free_mask)
    if layers is not None:
        layers["floor"] = floor_mask
        layers["free"] = free_mask
    log.debug("[viewpoint_mask] %s: %dx%d grid, %d valid cells",
              room.name, xres, yres, mask.cell_count())
    return mask


__all__ = [
    "GRID_SAMPLING_FACTOR", "XYGrid", "rasterize_into_xy_grid", "compute_viewpoint_mask",
]
