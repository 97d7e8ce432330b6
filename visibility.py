# visibility.py — node-identity images from a camera, two interchangeable backends
#   RayCastRenderer : CPU, one open3d ray per pixel centre
#   RasterRenderer  : OpenGL via pyrender, flat per-node colour = (index + 1) packed in 24 bits
# Both return an (H, W) int64 grid holding the frontmost node index or UNKNOWN.

from __future__ import annotations
from typing import Dict, Optional, Tuple
import logging
import os
import numpy as np

from camera import Camera
from scene_model import Scene, SceneNode
from utils import CameraParams, rays_from_camera

log = logging.getLogger(__name__)

UNKNOWN = -1


def encode_node_color(node_index: int) -> Tuple[int, int, int]:
    value = int(node_index) + 1
    if value > 0xFFFFFF:
        raise ValueError(f"Node index {node_index} does not fit in 24 bits")
    return (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF

def decode_node_colors(rgb: np.ndarray) -> np.ndarray:
    rgb = np.asarray(rgb).astype(np.int64)
    value = (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]
    return np.where(value == 0, UNKNOWN, value - 1)


class VisibilityRenderer:
    """Render(camera, scene, root, node_filter) -> node-identity image."""

    name = "base"

    def __init__(self, width: int, height: int):
        self.width = int(width)
        self.height = int(height)

    def render(self, camera: Camera, scene: Scene,
               root: Optional[SceneNode] = None,
               node_filter: Optional[SceneNode] = None) -> np.ndarray:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class RayCastRenderer(VisibilityRenderer):
    name = "raycast"

    def render(self, camera, scene, root=None, node_filter=None):
        root = root if root is not None else scene.root
        rays = rays_from_camera(camera.origin, camera.towards, camera.up, camera.right,
                                camera.xfov, camera.yfov, self.width, self.height)
        dirs = rays[:, 3:].astype(float)
        dirs /= np.linalg.norm(dirs, axis=1, keepdims=True)
        # clip planes are perpendicular to the view direction
        cos_theta = np.clip(dirs @ camera.towards, 1e-6, None)
        node_ids, _ = scene.cast_rays(rays[:, :3], dirs,
                                      t_min=camera.near / cos_theta,
                                      t_max=camera.far / cos_theta,
                                      subtree_root=root)
        if node_filter is not None:
            node_ids[node_ids != node_filter.index] = UNKNOWN
        return node_ids.reshape(self.height, self.width)


def _load_pyrender():
    os.environ.setdefault("PYOPENGL_PLATFORM", "egl")
    import pyrender
    import trimesh
    return pyrender, trimesh


class RasterRenderer(VisibilityRenderer):
    """
    Depth-tested flat-colour rasterization. With a node filter every other node
    is drawn black, so it still occludes but reads back as background.
    """

    name = "raster"

    def __init__(self, width: int, height: int):
        super().__init__(width, height)
        self._pyrender, self._trimesh = _load_pyrender()
        self._renderer = self._pyrender.OffscreenRenderer(self.width, self.height)
        self._scene: Optional[Scene] = None
        self._scenes: Dict[int, Tuple] = {}

    def _build(self, scene: Scene, root: SceneNode):
        # cached pyrender scenes belong to one Scene, keyed by subtree root
        if scene is not self._scene:
            self._scenes.clear()
            self._scene = scene
        key = root.index
        if key not in self._scenes:
            pr, tm = self._pyrender, self._trimesh
            pscene = pr.Scene(bg_color=[0.0, 0.0, 0.0, 1.0])
            owners = {}
            for node in root.iter_subtree():
                if node.triangles.size == 0:
                    continue
                mesh = tm.Trimesh(vertices=node.world_vertices(), faces=node.triangles, process=False)
                pnode = pscene.add(pr.Mesh.from_trimesh(mesh, smooth=False))
                owners[pnode] = node
            self._scenes[key] = (pscene, owners)
        return self._scenes[key]

    def render(self, camera, scene, root=None, node_filter=None):
        pr = self._pyrender
        root = root if root is not None else scene.root
        pscene, owners = self._build(scene, root)

        seg_node_map = {}
        for pnode, node in owners.items():
            if node_filter is None or node is node_filter:
                seg_node_map[pnode] = encode_node_color(node.index)
            else:
                seg_node_map[pnode] = (0, 0, 0)

        pose = np.eye(4)
        pose[:3, 0] = camera.right
        pose[:3, 1] = camera.up
        pose[:3, 2] = -camera.towards
        pose[:3, 3] = camera.origin
        pcam = pr.PerspectiveCamera(yfov=2.0 * camera.yfov,
                                    aspectRatio=float(self.width) / float(self.height),
                                    znear=camera.near, zfar=camera.far)
        cam_node = pscene.add(pcam, pose=pose)
        try:
            flags = pr.RenderFlags.SEG | pr.RenderFlags.SKIP_CULL_FACES
            color, _ = self._renderer.render(pscene, flags=flags, seg_node_map=seg_node_map)
        finally:
            pscene.remove_node(cam_node)
        return decode_node_colors(color[..., :3])

    def close(self):
        if self._renderer is not None:
            self._renderer.delete()
            self._renderer = None
        self._scenes.clear()
        self._scene = None


RENDERERS = {
    RayCastRenderer.name: RayCastRenderer,
    RasterRenderer.name: RasterRenderer,
}

def make_renderer(params: CameraParams) -> VisibilityRenderer:
    try:
        cls = RENDERERS[params.renderer]
    except KeyError:
        raise ValueError(f"Unknown renderer '{params.renderer}' (expected one of {sorted(RENDERERS)})") from None
    log.info("[visibility] Using %s renderer at %dx%d", cls.name, params.width, params.height)
    return cls(params.width, params.height)


__all__ = [
    "UNKNOWN", "encode_node_color", "decode_node_colors",
    "VisibilityRenderer", "RayCastRenderer", "RasterRenderer", "make_renderer",
]
