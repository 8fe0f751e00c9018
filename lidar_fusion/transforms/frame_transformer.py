# lidar_fusion/transforms/frame_transformer.py

import logging

from lidar_fusion.errors import TransformLookupError, TransformUnavailableError
from lidar_fusion.transforms.transform_provider import TransformProvider
from lidar_fusion.types import PointCloud

logger = logging.getLogger(__name__)


class FrameTransformer:
    """
    Moves whole point clouds between reference frames.

    The transform is looked up once per cloud at the cloud's own stamp; a
    failed lookup fails the whole cloud, never individual points.
    """

    def __init__(self, provider: TransformProvider, timeout: float = 1.0):
        """
        Args:
            provider: Source of frame-to-frame transforms
            timeout: Maximum time to block waiting for a transform (seconds)
        """
        self.provider = provider
        self.timeout = timeout

    def transform(self, cloud: PointCloud, target_frame: str) -> PointCloud:
        """
        Express a cloud in ``target_frame``.

        Args:
            cloud: Input cloud; its frame_id is the source frame
            target_frame: Frame to transform into

        Returns:
            New cloud in ``target_frame`` with the same point order and indices

        Raises:
            TransformUnavailableError: If the transform cannot be resolved
        """
        source_frame = cloud.frame_id
        try:
            transform = self.provider.lookup_transform(
                target_frame, source_frame, cloud.stamp, self.timeout
            )
        except TransformLookupError as e:
            logger.warning(f"Could not transform {source_frame} to {target_frame}: {e}")
            raise TransformUnavailableError(source_frame, target_frame, str(e)) from e

        return PointCloud(
            points=transform.apply(cloud.points),
            frame_id=target_frame,
            stamp=cloud.stamp,
            indices=cloud.indices.copy(),
        )
