#!/usr/bin/env python3
# example_fusion.py

import os
import argparse
import time
import yaml
import logging
import cv2

from lidar_fusion.camera import CameraModel
from lidar_fusion.detection import parse_detections
from lidar_fusion.transforms import TransformBuffer
from lidar_fusion.types import RigidTransform
from lidar_fusion.utils.visualization import FusionVisualizer
from fusion_pipeline.data_sources import RecordingSource
from fusion_pipeline.fusion_pipeline import FusionPipeline
from fusion_pipeline.synchronizer import MessageSynchronizer

logger = logging.getLogger(__name__)

DETECTIONS, IMAGE, CLOUD = 0, 1, 2


def load_configs(config_path):
    """Load configuration from YAML file."""
    with open(config_path, "r") as f:
        return yaml.safe_load(f) or {}


def pipeline_config(config):
    """Flatten the YAML sections into the pipeline's config keys."""
    flat = {}
    flat.update(config.get("filter", {}))
    flat.update(config.get("frames", {}))
    if "timeout" in config.get("transforms", {}):
        flat["transform_timeout"] = config["transforms"]["timeout"]
    return flat


def create_transform_buffer(config, static_override=None):
    """Create a transform buffer seeded with the static lidar -> camera extrinsics."""
    transform_config = config.get("transforms", {})
    frames = config.get("frames", {})
    buffer = TransformBuffer(config={"cache_time": transform_config.get("cache_time", 10.0)})

    static = transform_config.get("static")
    if static_override is not None:
        static = {"translation": static_override[:3], "rotation": static_override[3:]}

    if static:
        buffer.set_transform(
            RigidTransform.from_quaternion(
                static.get("translation", [0.0, 0.0, 0.0]),
                static.get("rotation", [0.0, 0.0, 0.0, 1.0]),
                source_frame=frames.get("lidar_frame", "lidar_frame"),
                target_frame=frames.get("camera_frame", "camera_frame"),
            ),
            static=True,
        )
    else:
        logger.warning("No static extrinsics configured; lookups will wait for dynamic transforms")

    return buffer


def create_fusion_pipeline(config, transform_buffer, image_sink=None):
    """Create fusion pipeline from configuration."""

    def log_poses(poses):
        for pose in poses.poses:
            x, y, z = pose.position
            logger.info(f"  object {pose.detection_id}: ({x:.2f}, {y:.2f}, {z:.2f}) in {poses.frame_id}")

    return FusionPipeline(
        camera_model=CameraModel(),
        transform_provider=transform_buffer,
        config=pipeline_config(config),
        pose_sink=log_poses,
        image_sink=image_sink,
    )


def run_on_recording(pipeline, source, config, output_dir=None, show_display=True):
    """Replay a recording through the synchronizer and the fusion pipeline."""

    k, width, height = source.camera_info()
    pipeline.on_camera_info(k, width, height)

    sync_config = config.get("synchronizer", {})
    synchronizer = MessageSynchronizer(
        num_streams=3,
        queue_size=sync_config.get("queue_size", 10),
        max_interval=sync_config.get("max_interval"),
    )
    visualizer = FusionVisualizer(config.get("visualization"))
    show_detections = config.get("visualization", {}).get("show_detections", True)

    if output_dir and not os.path.exists(output_dir):
        os.makedirs(output_dir)

    results = []

    def on_triple(detections, image, cloud):
        result = pipeline.process(detections, image, cloud)
        if result is None:
            return

        results.append(result)
        vis_frame = result.annotated_image.copy()
        if show_detections:
            visualizer.draw_detections(vis_frame, parse_detections(detections), result.poses)

        if output_dir:
            output_path = os.path.join(output_dir, f"{result.frame_index:06d}.png")
            if not cv2.imwrite(output_path, vis_frame):
                logger.error(f"Failed to write {output_path}")

        if show_display:
            cv2.imshow("Fusion", vis_frame)
            cv2.waitKey(1)

    synchronizer.register_callback(on_triple)

    start_time = time.time()
    frame_idx = 0
    with source:
        for detections, image, cloud in source:
            synchronizer.add(DETECTIONS, cloud.stamp, detections)
            synchronizer.add(IMAGE, image.stamp, image)
            synchronizer.add(CLOUD, cloud.stamp, cloud)

            if frame_idx % 10 == 0:
                logger.info(f"Processing frame {frame_idx}")
            frame_idx += 1

    if show_display:
        cv2.destroyAllWindows()

    elapsed = time.time() - start_time
    logger.info(f"Replayed {frame_idx} frames in {elapsed:.2f} seconds, {len(results)} fused")
    logger.info(f"Performance: {pipeline.report_performance()}")
    return results


def main():
    """Main function."""

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler()]
    )

    parser = argparse.ArgumentParser(description="LiDAR/Camera Fusion Example")
    parser.add_argument("--config", type=str, default="config/fusion_config.yaml",
                        help="Path to configuration file")
    parser.add_argument("--recording", type=str, required=True,
                        help="Path to recording directory")
    parser.add_argument("--output", type=str, default=None,
                        help="Directory for annotated images")
    parser.add_argument("--static-transform", type=float, nargs=7, default=None,
                        metavar=("TX", "TY", "TZ", "QX", "QY", "QZ", "QW"),
                        help="Override the lidar -> camera extrinsics")
    parser.add_argument("--no-display", action="store_true",
                        help="Disable visualization window")

    args = parser.parse_args()

    try:
        config = load_configs(args.config)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load configuration: {e}")
        return 1

    transform_buffer = create_transform_buffer(config, args.static_transform)
    pipeline = create_fusion_pipeline(config, transform_buffer)
    source = RecordingSource(args.recording, config=config.get("frames", {}))

    try:
        run_on_recording(pipeline, source, config, args.output, not args.no_display)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Failed to replay recording: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
