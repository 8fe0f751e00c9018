# lidar_fusion/projection/projector.py

import logging

import numpy as np

from lidar_fusion.types import CameraIntrinsics, PointCloud, ProjectedPoints

logger = logging.getLogger(__name__)


def project_points(cloud: PointCloud, intrinsics: CameraIntrinsics,
                   width: int, height: int) -> ProjectedPoints:
    """
    Project camera-frame points onto the image plane with a pinhole model.

    Points with z <= 0 are behind the camera and dropped. Pixel coordinates
    are truncated toward zero, not rounded, and points that land outside
    [0, width) x [0, height) are dropped. Survivors keep their input order.

    Args:
        cloud: Points in the camera frame
        intrinsics: Focal lengths and principal point
        width: Image width in pixels
        height: Image height in pixels

    Returns:
        ProjectedPoints with pixel and camera coordinates of every survivor
    """
    if cloud.is_empty:
        return ProjectedPoints.empty()

    points = cloud.points
    x, y, z = points[:, 0], points[:, 1], points[:, 2]

    in_front = z > 0
    u = np.full(len(points), -1.0)
    v = np.full(len(points), -1.0)
    u[in_front] = np.trunc((x[in_front] / z[in_front]) * intrinsics.fx + intrinsics.cx)
    v[in_front] = np.trunc((y[in_front] / z[in_front]) * intrinsics.fy + intrinsics.cy)

    # Bounds are checked on the float values so huge coordinates never overflow the cast
    valid = in_front & (u >= 0) & (u < width) & (v >= 0) & (v < height)

    logger.debug(f"Projected {int(valid.sum())}/{len(points)} points into {width}x{height} image")

    return ProjectedPoints(
        u=u[valid].astype(np.int64),
        v=v[valid].astype(np.int64),
        xyz=points[valid].copy(),
        source_indices=cloud.indices[valid].copy(),
    )


class Projector:
    """Thin stateless wrapper so the pipeline can swap projection models."""

    def project(self, cloud: PointCloud, intrinsics: CameraIntrinsics,
                width: int, height: int) -> ProjectedPoints:
        return project_points(cloud, intrinsics, width, height)
