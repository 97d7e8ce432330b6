# scn2cam.py — synthesize and score camera viewpoints for an indoor scene
# Pipeline: load scene -> (input cameras) + object / wall / room generators
#           -> trajectory interpolation or deterministic sort -> write outputs

import argparse, logging, os, time
from typing import Dict, List, Optional

from camera import Camera, sort_cameras
from camera_gen import (
    clip_distances, create_object_cameras, create_room_cameras, create_wall_cameras,
)
from camera_io import (
    read_cameras, write_cameras, write_camera_extrinsics, write_camera_intrinsics,
    write_camera_names, write_node_names,
)
from coverage import ObjectCoverageScorer, SceneCoverageScorer, SurfaceSampleCache
from scene_model import Scene, load_scene
from trajectory import interpolate_camera_trajectory
from utils import CameraParams, load_cfg, params_from_cfg, random_generator
from visibility import make_renderer
from visualize import write_debug_artifacts

log = logging.getLogger("scn2cam")


def create_cameras(scene: Scene, params: CameraParams,
                   input_cameras: Optional[List[Camera]] = None,
                   object_cameras=False, wall_cameras=False, room_cameras=False,
                   trajectory=False, renderer=None,
                   mask_sink: Optional[Dict] = None) -> List[Camera]:
    """
    Run the requested generators and return the final camera list.
    With no generator and no input cameras, room cameras are created.
    ``renderer`` is borrowed if given, otherwise built from ``params`` and closed here.
    """
    cameras = list(input_cameras or [])
    if not (object_cameras or wall_cameras or room_cameras) and not cameras:
        room_cameras = True

    rng = random_generator(params.seed)
    own_renderer = renderer is None and (wall_cameras or room_cameras)
    if own_renderer:
        renderer = make_renderer(params)
    try:
        if object_cameras:
            scorer = ObjectCoverageScorer(scene, SurfaceSampleCache(rng),
                                          method=params.object_scoring_method)
            cameras += create_object_cameras(scene, params, scorer, rng)
        if wall_cameras or room_cameras:
            scene_scorer = SceneCoverageScorer(scene, renderer, params)
            if wall_cameras:
                cameras += create_wall_cameras(scene, params, scene_scorer, rng)
            if room_cameras:
                cameras += create_room_cameras(scene, params, scene_scorer, rng, mask_sink)
    finally:
        if own_renderer:
            renderer.close()

    if trajectory:
        if not cameras:
            raise ValueError("No cameras to interpolate a trajectory through.")
        return interpolate_camera_trajectory(cameras, params.interpolation_step)
    return sort_cameras(cameras)


def main(scene_path,
         output_cameras=None,
         cfg_path=None,
         input_cameras_path=None,
         output_camera_extrinsics=None,
         output_camera_intrinsics=None,
         output_camera_names=None,
         output_nodes=None,
         object_cameras=False,
         wall_cameras=False,
         room_cameras=False,
         trajectory=False,
         debug_dir=None,
         **overrides):
    start = time.time()
    cfg = load_cfg(cfg_path) if cfg_path else {}
    params = params_from_cfg(cfg, **overrides)
    scene_path = scene_path or cfg.get("scene_path")
    if not scene_path:
        raise ValueError("No scene given (positional argument or 'scene_path' in the config).")

    scene = load_scene(scene_path)

    input_cameras = []
    if input_cameras_path:
        near, far = clip_distances(scene)
        input_cameras = read_cameras(input_cameras_path, params.width, params.height, near, far)

    masks = {} if debug_dir else None
    # room generation is the default when nothing else is asked for
    renders = (wall_cameras or room_cameras or debug_dir
               or not (object_cameras or input_cameras))
    renderer = make_renderer(params) if renders else None
    try:
        cameras = create_cameras(scene, params, input_cameras,
                                 object_cameras=object_cameras,
                                 wall_cameras=wall_cameras,
                                 room_cameras=room_cameras,
                                 trajectory=trajectory,
                                 renderer=renderer,
                                 mask_sink=masks)

        if output_cameras:
            write_cameras(output_cameras, cameras)
        if output_camera_extrinsics:
            write_camera_extrinsics(output_camera_extrinsics, cameras)
        if output_camera_intrinsics:
            write_camera_intrinsics(output_camera_intrinsics, cameras, params.width, params.height)
        if output_camera_names:
            write_camera_names(output_camera_names, cameras)
        if output_nodes:
            write_node_names(output_nodes, scene)

        if debug_dir:
            write_debug_artifacts(debug_dir, scene, cameras, renderer, masks)
            log.info("[scn2cam] Wrote debug artifacts to %s", os.path.abspath(debug_dir))
    finally:
        if renderer is not None:
            renderer.close()

    log.info("[scn2cam] Done ... %.2f s, %d cameras", time.time() - start, len(cameras))
    return cameras


if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Create and score camera viewpoints for a 3D indoor scene.")
    ap.add_argument("scene", nargs="?", default=None, help="scene description (.yaml) or mesh file")
    ap.add_argument("output_cameras", nargs="?", default=None, help="output camera file")
    ap.add_argument("--cfg", default=None, help="configs/scn2cam.yaml")

    ap.add_argument("--input_cameras", default=None)
    ap.add_argument("--output_camera_extrinsics", default=None)
    ap.add_argument("--output_camera_intrinsics", default=None)
    ap.add_argument("--output_camera_names", default=None)
    ap.add_argument("--output_nodes", default=None)

    ap.add_argument("--create_object_cameras", action="store_true")
    ap.add_argument("--create_wall_cameras", action="store_true")
    ap.add_argument("--create_room_cameras", action="store_true")
    ap.add_argument("--interpolate_camera_trajectory", action="store_true")

    backend = ap.add_mutually_exclusive_group()
    backend.add_argument("--raycast", dest="renderer", action="store_const", const="raycast")
    backend.add_argument("--raster", dest="renderer", action="store_const", const="raster")

    ap.add_argument("--width", type=int, default=None)
    ap.add_argument("--height", type=int, default=None)
    ap.add_argument("--xfov", type=float, default=None, help="horizontal half-angle, radians")
    ap.add_argument("--eye_height", type=float, default=None)
    ap.add_argument("--eye_height_radius", type=float, default=None)
    ap.add_argument("--position_sampling", type=float, default=None)
    ap.add_argument("--angle_sampling", type=float, default=None)
    ap.add_argument("--interpolation_step", type=float, default=None)
    ap.add_argument("--scene_scoring_method", type=int, choices=[0, 1], default=None)
    ap.add_argument("--object_scoring_method", type=int, choices=[0], default=None)
    ap.add_argument("--min_visible_objects", type=float, default=None)
    ap.add_argument("--min_visible_fraction", type=float, default=None)
    ap.add_argument("--min_distance_from_obstacle", type=float, default=None)
    ap.add_argument("--min_score", type=float, default=None)
    ap.add_argument("--seed", type=int, default=None)

    ap.add_argument("-v", "--verbose", action="store_true")
    ap.add_argument("--debug", action="store_true", help="per-candidate score traces")
    ap.add_argument("--debug_dir", default=None, help="write mask / view / plot PNGs here")

    args = ap.parse_args()

    level = logging.DEBUG if args.debug else logging.INFO if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")

    main(args.scene, args.output_cameras,
         cfg_path=args.cfg,
         input_cameras_path=args.input_cameras,
         output_camera_extrinsics=args.output_camera_extrinsics,
         output_camera_intrinsics=args.output_camera_intrinsics,
         output_camera_names=args.output_camera_names,
         output_nodes=args.output_nodes,
         object_cameras=args.create_object_cameras,
         wall_cameras=args.create_wall_cameras,
         room_cameras=args.create_room_cameras,
         trajectory=args.interpolate_camera_trajectory,
         debug_dir=args.debug_dir,
         renderer=args.renderer,
         width=args.width, height=args.height, xfov=args.xfov,
         eye_height=args.eye_height, eye_height_radius=args.eye_height_radius,
         position_sampling=args.position_sampling, angle_sampling=args.angle_sampling,
         interpolation_step=args.interpolation_step,
         scene_scoring_method=args.scene_scoring_method,
         object_scoring_method=args.object_scoring_method,
         min_visible_objects=args.min_visible_objects,
         min_visible_fraction=args.min_visible_fraction,
         min_distance_from_obstacle=args.min_distance_from_obstacle,
         min_score=args.min_score,
         seed=args.seed)
