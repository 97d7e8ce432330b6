# scene_model.py — hierarchical scene graph consumed read-only by scn2cam
# Nodes are owned top-down by their parent; node.parent is only used for
# upward lookups (ancestor transforms, room membership).
#
# Scene description (YAML):
#   root:
#     name: Project#1
#     children:
#       - name: Room#1
#         walls: [{p1: [0, 0], p2: [4, 0], thickness: 0.1}, ...]
#         children:
#           - {name: Walls#1, box: {min: [...], max: [...]}}
#           - {name: Floors#1, vertices: [...], triangles: [...]}
#           - {name: Ceilings#1, mesh: ceiling.ply, transform: [[...4x4...]]}
#           - {name: chair, role: object, mesh: chair.obj, translate: [1, 2, 0]}

from __future__ import annotations
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple
import logging
import time
import numpy as np
import open3d as o3d
import yaml

from utils import (
    transform_points, triangle_areas, build_raycasting_scene, cast_rays,
)

log = logging.getLogger(__name__)


class NodeRole(Enum):
    OBJECT = "object"
    PROJECT = "project"
    ROOM = "room"
    WALL = "wall"
    FLOOR = "floor"
    CEILING = "ceiling"
    DOOR = "door"
    WINDOW = "window"

    @classmethod
    def from_name(cls, name: Optional[str]) -> "NodeRole":
        """Role implied by the Planner5D-style naming convention."""
        if not name:
            return cls.OBJECT
        if name.startswith("Project#"):
            return cls.PROJECT
        if name.startswith("Room#"):
            return cls.ROOM
        if name.startswith("Walls#"):
            return cls.WALL
        if name.startswith("Floors#"):
            return cls.FLOOR
        if name.startswith("Ceilings#"):
            return cls.CEILING
        if "Door" in name:
            return cls.DOOR
        if "Window" in name:
            return cls.WINDOW
        return cls.OBJECT


STRUCTURAL_ROLES = frozenset({NodeRole.WALL, NodeRole.FLOOR, NodeRole.CEILING,
                              NodeRole.DOOR, NodeRole.WINDOW})


class SceneNode:
    def __init__(self, name: Optional[str] = None,
                 vertices=None, triangles=None,
                 transform=None,
                 role: Optional[NodeRole] = None,
                 data: Optional[Dict] = None):
        self.index = -1
        self.name = name
        self.role = role if role is not None else NodeRole.from_name(name)
        self.transform = np.eye(4) if transform is None else np.asarray(transform, dtype=float).reshape(4, 4)
        self.vertices = np.zeros((0, 3)) if vertices is None else np.asarray(vertices, dtype=float).reshape(-1, 3)
        self.triangles = np.zeros((0, 3), dtype=np.int64) if triangles is None else np.asarray(triangles, dtype=np.int64).reshape(-1, 3)
        self.children: List[SceneNode] = []
        self.parent: Optional[SceneNode] = None
        self.data: Dict = dict(data or {})
        self._bbox = None

    def __repr__(self):
        return f"SceneNode({self.index}, {self.name!r}, {self.role.value})"

    def add_child(self, child: "SceneNode") -> "SceneNode":
        child.parent = self
        self.children.append(child)
        return child

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def iter_subtree(self) -> Iterator["SceneNode"]:
        yield self
        for child in self.children:
            yield from child.iter_subtree()

    def ancestor_transform(self) -> np.ndarray:
        """Composition of every ancestor's transform, root applied last."""
        T = np.eye(4)
        ancestor = self.parent
        while ancestor is not None:
            T = ancestor.transform @ T
            ancestor = ancestor.parent
        return T

    def world_transform(self) -> np.ndarray:
        return self.ancestor_transform() @ self.transform

    def world_vertices(self) -> np.ndarray:
        if self.vertices.size == 0:
            return np.zeros((0, 3))
        return transform_points(self.world_transform(), self.vertices)

    def surface_area(self) -> float:
        return float(triangle_areas(self.world_vertices(), self.triangles).sum())

    def own_bbox(self) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        V = self.world_vertices()
        if len(V) == 0:
            return None
        return V.min(axis=0), V.max(axis=0)

    def bbox(self) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """World-space AABB of this node's subtree, or None if it holds no geometry."""
        if self._bbox is None:
            boxes = [b for b in (n.own_bbox() for n in self.iter_subtree()) if b is not None]
            if not boxes:
                return None
            lo = np.min([b[0] for b in boxes], axis=0)
            hi = np.max([b[1] for b in boxes], axis=0)
            self._bbox = (lo, hi)
        return self._bbox

    def centroid(self) -> Optional[np.ndarray]:
        b = self.bbox()
        return None if b is None else 0.5 * (b[0] + b[1])

    def diagonal_radius(self) -> float:
        b = self.bbox()
        return 0.0 if b is None else 0.5 * float(np.linalg.norm(b[1] - b[0]))


class Scene:
    """
    Indexed node tree plus intersection queries backed by open3d raycasting.
    Raycasting scenes are built lazily per subtree and cached; the graph must
    not be edited once a query has been made.
    """

    def __init__(self, root: SceneNode):
        self.root = root
        self.nodes: List[SceneNode] = []
        for node in root.iter_subtree():
            node.index = len(self.nodes)
            self.nodes.append(node)
            for child in node.children:
                child.parent = node
        self._raycasters: Dict[Tuple[str, int], Tuple] = {}

    def node(self, i: int) -> SceneNode:
        return self.nodes[i]

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    def bbox(self) -> Tuple[np.ndarray, np.ndarray]:
        b = self.root.bbox()
        if b is None:
            return np.zeros(3), np.zeros(3)
        return b

    def diagonal_radius(self) -> float:
        return self.root.diagonal_radius()

    def rooms(self) -> List[SceneNode]:
        return [n for n in self.nodes if n.role is NodeRole.ROOM]

    def find(self, name: str) -> Optional[SceneNode]:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    # ---- intersection queries ----

    def raycasting_scene(self, subtree_root: Optional[SceneNode] = None, only_node: Optional[SceneNode] = None):
        if only_node is not None:
            key = ("node", only_node.index)
            members = [only_node]
        else:
            sub = subtree_root if subtree_root is not None else self.root
            key = ("tree", sub.index)
            members = list(sub.iter_subtree())
        if key not in self._raycasters:
            self._raycasters[key] = build_raycasting_scene(
                (n.index, n.world_vertices(), n.triangles) for n in members)
        return self._raycasters[key]

    def cast_rays(self, origins, directions, t_min: float = 0.0, t_max: float = np.inf,
                  subtree_root: Optional[SceneNode] = None,
                  node_filter: Optional[SceneNode] = None) -> Tuple[np.ndarray, np.ndarray]:
        """
        First hit per ray within [t_min, t_max] (scalars or per-ray arrays).
        Directions must be unit length. Returns (node index or -1, t or inf).
        """
        origins = np.asarray(origins, dtype=float).reshape(-1, 3)
        directions = np.asarray(directions, dtype=float).reshape(-1, 3)
        rscene, id_to_node = self.raycasting_scene(subtree_root, node_filter)
        t_min = np.broadcast_to(np.asarray(t_min, dtype=float), (len(origins),))
        t_max = np.broadcast_to(np.asarray(t_max, dtype=float), (len(origins),))
        rays = np.concatenate([origins + t_min[:, None] * directions, directions], axis=1)
        node_ids, t_hit = cast_rays(rscene, id_to_node, rays)
        t_hit = t_hit + t_min
        beyond = ~(t_hit <= t_max)
        node_ids[beyond] = -1
        t_hit[beyond] = np.inf
        return node_ids, t_hit

    def intersects(self, origin, direction, node_filter: Optional[SceneNode] = None,
                   t_min: float = 0.0, t_max: float = np.inf):
        """Single-ray query: (hit, node, t)."""
        d = np.asarray(direction, dtype=float)
        d = d / (np.linalg.norm(d) + 1e-12)
        node_ids, t_hit = self.cast_rays(origin, d, t_min, t_max, node_filter=node_filter)
        if node_ids[0] < 0:
            return False, None, float("inf")
        return True, self.nodes[int(node_ids[0])], float(t_hit[0])


def room_parts(room: Optional[SceneNode]) -> Optional[Tuple[SceneNode, SceneNode, SceneNode]]:
    """(walls, floor, ceiling) children of a well-formed room, else None."""
    if room is None or room.role is not NodeRole.ROOM:
        return None
    if len(room.children) < 3:
        return None
    walls, floor, ceiling = room.children[:3]
    if walls.role is not NodeRole.WALL:
        return None
    if floor.role is not NodeRole.FLOOR:
        return None
    if ceiling.role is not NodeRole.CEILING:
        return None
    return walls, floor, ceiling

# -------------------------
# Primitive geometry
# -------------------------

_BOX_FACES = np.array([
    [0, 2, 1], [0, 3, 2],   # -z
    [4, 5, 6], [4, 6, 7],   # +z
    [0, 1, 5], [0, 5, 4],   # -y
    [3, 7, 6], [3, 6, 2],   # +y
    [0, 4, 7], [0, 7, 3],   # -x
    [1, 2, 6], [1, 6, 5],   # +x
], dtype=np.int64)

def box_mesh(lo, hi) -> Tuple[np.ndarray, np.ndarray]:
    lo = np.asarray(lo, dtype=float); hi = np.asarray(hi, dtype=float)
    V = np.array([
        [lo[0], lo[1], lo[2]], [hi[0], lo[1], lo[2]], [hi[0], hi[1], lo[2]], [lo[0], hi[1], lo[2]],
        [lo[0], lo[1], hi[2]], [hi[0], lo[1], hi[2]], [hi[0], hi[1], hi[2]], [lo[0], hi[1], hi[2]],
    ])
    return V, _BOX_FACES.copy()

def quad_mesh(xmin, ymin, xmax, ymax, z) -> Tuple[np.ndarray, np.ndarray]:
    V = np.array([[xmin, ymin, z], [xmax, ymin, z], [xmax, ymax, z], [xmin, ymax, z]], dtype=float)
    F = np.array([[0, 1, 2], [0, 2, 3]], dtype=np.int64)
    return V, F

# -------------------------
# Loading
# -------------------------

def _read_mesh(path: Path) -> Tuple[np.ndarray, np.ndarray]:
    if not path.is_file():
        raise FileNotFoundError(f"Mesh file not found: {path}")
    mesh = o3d.io.read_triangle_mesh(str(path))
    if mesh.is_empty():
        raise ValueError(f"Failed to load mesh: {path}")
    return np.asarray(mesh.vertices, dtype=float), np.asarray(mesh.triangles, dtype=np.int64)

def _node_transform(entry: Dict) -> np.ndarray:
    T = np.eye(4)
    if "transform" in entry:
        T = np.asarray(entry["transform"], dtype=float).reshape(4, 4)
    if "scale" in entry:
        S = np.eye(4); S[:3, :3] *= float(entry["scale"])
        T = T @ S
    if "translate" in entry:
        M = np.eye(4); M[:3, 3] = np.asarray(entry["translate"], dtype=float)
        T = M @ T
    return T

def _build_node(entry: Dict, base_dir: Path) -> SceneNode:
    if not isinstance(entry, dict):
        raise ValueError(f"Scene node must be a mapping, got {type(entry).__name__}")
    V = F = None
    if "mesh" in entry:
        V, F = _read_mesh(base_dir / entry["mesh"])
    elif "box" in entry:
        V, F = box_mesh(entry["box"]["min"], entry["box"]["max"])
    elif "vertices" in entry:
        V = np.asarray(entry["vertices"], dtype=float)
        F = np.asarray(entry.get("triangles", []), dtype=np.int64)
    role = NodeRole(entry["role"]) if "role" in entry else None
    data = dict(entry.get("data") or {})
    if "walls" in entry:
        data["walls"] = entry["walls"]
    node = SceneNode(entry.get("name"), V, F, _node_transform(entry), role=role, data=data)
    for child_entry in entry.get("children") or []:
        node.add_child(_build_node(child_entry, base_dir))
    return node

def load_scene(path: str) -> Scene:
    start = time.time()
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Scene file not found: {path}")
    if path.suffix.lower() in (".yaml", ".yml"):
        with open(path, "r") as f:
            desc = yaml.safe_load(f)
        if not isinstance(desc, dict) or "root" not in desc:
            raise ValueError(f"Scene description {path} has no 'root' entry")
        root = _build_node(desc["root"], path.parent)
    else:
        V, F = _read_mesh(path)
        root = SceneNode("Scene")
        root.add_child(SceneNode(path.stem, V, F))
    scene = Scene(root)
    log.info("[scene] Read scene from %s ... %.2f s, %d nodes",
             path, time.time() - start, scene.n_nodes)
    return scene


__all__ = [
    "NodeRole", "STRUCTURAL_ROLES", "SceneNode", "Scene", "room_parts",
    "box_mesh", "quad_mesh", "load_scene",
]
