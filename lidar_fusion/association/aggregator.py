# lidar_fusion/association/aggregator.py

import logging
from typing import List, Tuple

import numpy as np

from lidar_fusion.association.associator import AssociationResult
from lidar_fusion.types import ObjectCloud, ObjectPose, PoseArray, ProjectedPoints

logger = logging.getLogger(__name__)


def aggregate(association: AssociationResult, projected: ProjectedPoints,
              camera_frame: str, cloud_stamp: float,
              pose_stamp: float) -> Tuple[PoseArray, List[ObjectCloud]]:
    """
    Reduce per-box accumulators to object centroids and object clouds.

    Boxes without any associated point produce neither a pose nor a cloud,
    so the output can be shorter than the detection list. Every pose and
    cloud carries its detection id for that reason.

    Args:
        association: Accumulators for the frame
        projected: Projected points the accumulators index into
        camera_frame: Frame the centroids and clouds are expressed in
        cloud_stamp: Point cloud stamp, used for the object clouds
        pose_stamp: Stamp for the pose array

    Returns:
        Tuple of (PoseArray, list of ObjectCloud)
    """
    poses = PoseArray(frame_id=camera_frame, stamp=pose_stamp)
    clouds: List[ObjectCloud] = []

    for accumulator in association.accumulators:
        centroid = accumulator.centroid()
        if centroid is None:
            continue

        poses.poses.append(ObjectPose(detection_id=accumulator.id, position=centroid))
        clouds.append(ObjectCloud(
            detection_id=accumulator.id,
            points=projected.xyz[np.asarray(accumulator.point_indices, dtype=np.int64)].copy(),
            frame_id=camera_frame,
            stamp=cloud_stamp,
        ))

    logger.debug(f"Aggregated {len(poses)} object poses from {len(association.accumulators)} detections")
    return poses, clouds


class Aggregator:
    """Carries the camera frame so the pipeline does not repeat it per call."""

    def __init__(self, camera_frame: str):
        self.camera_frame = camera_frame

    def aggregate(self, association: AssociationResult, projected: ProjectedPoints,
                  cloud_stamp: float, pose_stamp: float) -> Tuple[PoseArray, List[ObjectCloud]]:
        return aggregate(association, projected, self.camera_frame, cloud_stamp, pose_stamp)
