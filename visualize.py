# visualize.py — debug artifacts for scn2cam runs
#   node-index images (colorised PNG) per kept camera + manifest.csv
#   floor / free / combined viewpoint masks per room (PNG)
#   top-down plot of kept cameras over the room masks (matplotlib)

import csv
import os
import re
import numpy as np
import imageio.v2 as imageio
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from coverage import node_pixel_counts

# --- Local helpers ---

def ensure_dir(p):
    os.makedirs(p, exist_ok=True)
    return p

def _slug(name):
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", name or "-")

def colorize_node_image(image):
    """Stable pseudo-random colour per node index; background stays black."""
    image = np.asarray(image)
    idx = np.where(image >= 0, image + 1, 0).astype(np.uint64)
    h = (idx * np.uint64(2654435761)) & np.uint64(0xFFFFFF)
    rgb = np.stack([(h >> np.uint64(16)) & np.uint64(0xFF),
                    (h >> np.uint64(8)) & np.uint64(0xFF),
                    h & np.uint64(0xFF)], axis=-1).astype(np.uint8)
    rgb[image < 0] = 0
    return rgb

def mask_to_image(grid):
    # row 0 of the grid is ymin; flip so +y points up in the PNG
    return (255.0 * np.clip(grid.values[::-1], 0.0, 1.0)).astype(np.uint8)

# --- Writers ---

def save_mask_layers(out_dir, masks):
    """masks: {room name: {'floor': XYGrid, 'free': XYGrid, 'mask': XYGrid}}"""
    ensure_dir(out_dir)
    for room_name, layers in masks.items():
        for layer, grid in layers.items():
            imageio.imwrite(os.path.join(out_dir, f"{_slug(room_name)}_{layer}.png"), mask_to_image(grid))

def save_camera_views(out_dir, cameras, scene, renderer, max_views=32):
    ensure_dir(out_dir)
    rows = []
    for k, cam in enumerate(cameras[:max_views]):
        image = renderer.render(cam, scene, scene.root)
        counts = node_pixel_counts(image, scene.n_nodes)
        path = os.path.join(out_dir, f"view_{k:03d}_{_slug(cam.name)}.png")
        imageio.imwrite(path, colorize_node_image(image))
        o = cam.origin
        rows.append([k, cam.name or "-", path, cam.value, int((counts > 0).sum()),
                     int(counts.sum()), o[0], o[1], o[2]])

    manifest_csv = os.path.join(out_dir, "manifest.csv")
    with open(manifest_csv, "w", newline="") as f:
        w = csv.writer(f)
        w.writerow(["idx", "name", "image_png", "value", "visible_nodes", "hit_px", "cam_x", "cam_y", "cam_z"])
        w.writerows(rows)
    return manifest_csv

def plot_cameras_topdown(path, cameras, masks=None, title="scn2cam cameras"):
    fig, ax = plt.subplots(figsize=(8, 8))
    for layers in (masks or {}).values():
        grid = layers["mask"]
        ax.imshow(grid.values, origin="lower", cmap="Greys", vmin=0, vmax=1, alpha=0.5,
                  extent=(grid.xmin, grid.xmax, grid.ymin, grid.ymax))
    if cameras:
        P = np.array([c.origin for c in cameras])
        D = np.array([c.towards for c in cameras])
        vals = np.array([c.value for c in cameras])
        sc = ax.scatter(P[:, 0], P[:, 1], c=vals, cmap="viridis", s=18, zorder=3)
        ax.quiver(P[:, 0], P[:, 1], D[:, 0], D[:, 1], angles="xy", scale_units="xy",
                  scale=4.0, width=0.003, color="tab:red", zorder=4)
        fig.colorbar(sc, ax=ax, label="score")
    ax.set_aspect("equal")
    ax.set_xlabel("x"); ax.set_ylabel("y")
    ax.set_title(title)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)

def write_debug_artifacts(out_dir, scene, cameras, renderer, masks=None, max_views=32):
    ensure_dir(out_dir)
    if masks:
        save_mask_layers(os.path.join(out_dir, "masks"), masks)
    save_camera_views(os.path.join(out_dir, "views"), cameras, scene, renderer, max_views=max_views)
    plot_cameras_topdown(os.path.join(out_dir, "cameras_topdown.png"), cameras, masks)
