# fusion_pipeline/fusion_pipeline.py

import logging
import threading
import time
from typing import Callable, Dict, Optional, Sequence

from lidar_fusion.association import Aggregator, Associator
from lidar_fusion.camera import CameraModel
from lidar_fusion.detection import parse_detections
from lidar_fusion.errors import ImageDecodeError, NotReadyError, TransformUnavailableError
from lidar_fusion.filtering import SpatialFilter
from lidar_fusion.projection import Projector
from lidar_fusion.transforms import FrameTransformer, TransformProvider
from lidar_fusion.types import (
    FusionResult,
    ImageFrame,
    ObjectCloud,
    PointCloud,
    PoseArray,
    RawDetection,
)
from lidar_fusion.utils.visualization import decode_image, draw_projected_points

logger = logging.getLogger(__name__)

PoseSink = Callable[[PoseArray], None]
ImageSink = Callable[[ImageFrame], None]
CloudSink = Callable[[ObjectCloud], None]


class FusionPipeline:
    """
    Fuses one synchronized (detections, image, point cloud) triple at a time.

    Stages run in order: camera gate, region-of-interest crop, transform into
    the camera frame, projection, association, aggregation, emit. Any stage
    failure drops the rest of that frame only. Every intermediate result lives
    inside :meth:`process`, so concurrent calls do not interfere.
    """

    def __init__(
        self,
        camera_model: CameraModel,
        transform_provider: TransformProvider,
        config: Dict = None,
        pose_sink: Optional[PoseSink] = None,
        image_sink: Optional[ImageSink] = None,
        cloud_sink: Optional[CloudSink] = None,
    ):
        """
        Initialize the fusion pipeline.

        Args:
            camera_model: Intrinsics holder that gates processing
            transform_provider: Source of lidar -> camera transforms
            config: Configuration with keys:
                - min_x, max_x, min_y, max_y, min_z, max_z: ROI bounds (meters)
                - camera_frame: Frame poses and object clouds are expressed in
                - lidar_frame: Source frame for clouds that carry no frame id
                - transform_timeout: Max wait for a transform lookup (seconds)
            pose_sink: Called with the PoseArray of each processed frame
            image_sink: Called with the annotated image of each processed frame
            cloud_sink: Called once per object with a non-empty point subset
        """
        self.config = {
            'min_x': -10.0,
            'max_x': 10.0,
            'min_y': -10.0,
            'max_y': 10.0,
            'min_z': -2.0,
            'max_z': 2.0,
            'camera_frame': 'camera_frame',
            'lidar_frame': 'lidar_frame',
            'transform_timeout': 1.0,
            **(config or {})
        }
        self.camera_model = camera_model
        self.pose_sink = pose_sink
        self.image_sink = image_sink
        self.cloud_sink = cloud_sink

        self.spatial_filter = SpatialFilter.from_config(self.config)
        self.frame_transformer = FrameTransformer(
            transform_provider, timeout=float(self.config['transform_timeout'])
        )
        self.projector = Projector()
        self.associator = Associator()
        self.aggregator = Aggregator(self.config['camera_frame'])

        self.frame_index = 0
        self.frames_dropped = 0
        self._stats_lock = threading.Lock()

        # Performance metrics
        self.timing = {
            'filter': [],
            'transform': [],
            'projection': [],
            'association': [],
            'total': []
        }

        logger.info(
            f"Initialized fusion pipeline ({self.config['lidar_frame']} -> "
            f"{self.config['camera_frame']})"
        )

    @property
    def camera_frame(self) -> str:
        return self.config['camera_frame']

    def on_camera_info(self, k, width: int, height: int) -> None:
        """Intrinsics update path; may be called from any thread at any time."""
        self.camera_model.update_from_camera_info(k, width, height)

    def process(
        self,
        detections: Sequence[RawDetection],
        image: ImageFrame,
        cloud: PointCloud,
    ) -> Optional[FusionResult]:
        """
        Process one synchronized triple.

        Args:
            detections: Raw detections (string id, center, size)
            image: Encoded camera image
            cloud: Point cloud in the lidar frame

        Returns:
            FusionResult, or None if the frame was dropped or aborted
        """
        start_time = time.time()

        try:
            intrinsics = self.camera_model.snapshot()
        except NotReadyError as e:
            logger.warning(str(e))
            self._count_drop()
            return None

        boxes = parse_detections(detections)

        if not cloud.frame_id:
            cloud = PointCloud(cloud.points, self.config['lidar_frame'], cloud.stamp, cloud.indices)

        # 1. Region-of-interest crop
        t0 = time.time()
        filtered = self.spatial_filter.filter(cloud)
        t1 = time.time()
        timings = {'filter': t1 - t0}

        # 2. Lidar -> camera frame
        t0 = time.time()
        try:
            camera_cloud = self.frame_transformer.transform(filtered, self.camera_frame)
        except TransformUnavailableError as e:
            logger.error(f"Failed to transform lidar points to camera frame: {e}")
            self._count_drop()
            return None
        timings['transform'] = time.time() - t0

        # 3. Projection onto the image plane
        t0 = time.time()
        projected = self.projector.project(camera_cloud, intrinsics, image.width, image.height)
        timings['projection'] = time.time() - t0

        # 4. Association and per-object reduction
        t0 = time.time()
        association = self.associator.associate(projected, boxes)
        poses, object_clouds = self.aggregator.aggregate(
            association, projected, cloud_stamp=cloud.stamp, pose_stamp=time.time()
        )
        timings['association'] = time.time() - t0

        # 5. Emit
        for object_cloud in object_clouds:
            self._emit(self.cloud_sink, object_cloud)
        self._emit(self.pose_sink, poses)

        try:
            annotated = decode_image(image)
        except ImageDecodeError as e:
            logger.error(f"Image conversion failed: {e}")
            self._count_drop()
            return None

        draw_projected_points(annotated, association.matched_pixels)
        self._emit(self.image_sink, ImageFrame.from_array(
            annotated, encoding='bgr8', stamp=image.stamp, frame_id=image.frame_id
        ))

        timings['total'] = time.time() - start_time
        with self._stats_lock:
            frame_index = self.frame_index
            self.frame_index += 1
            for key, value in timings.items():
                self.timing[key].append(value)

        logger.debug(
            f"Frame {frame_index}: {len(boxes)} detections, {len(projected)} projected points, "
            f"{len(poses)} objects located"
        )

        return FusionResult(
            poses=poses,
            annotated_image=annotated,
            object_clouds=object_clouds,
            matched_pixels=list(association.matched_pixels),
            frame_index=frame_index,
            processing_time=timings['total'],
        )

    def report_performance(self) -> Dict[str, float]:
        """
        Report performance metrics for the pipeline.

        Returns:
            Dict with average and max timing for each stage
        """
        performance = {}
        with self._stats_lock:
            for key, times in self.timing.items():
                if times:
                    performance[f"avg_{key}_time"] = sum(times) / len(times)
                    performance[f"max_{key}_time"] = max(times)

            if self.timing['total']:
                avg_total = sum(self.timing['total']) / len(self.timing['total'])
                if avg_total > 0:
                    performance["fps"] = 1.0 / avg_total
            performance["frames_processed"] = self.frame_index
            performance["frames_dropped"] = self.frames_dropped

        return performance

    def reset(self) -> None:
        """Reset counters and timing statistics. Camera intrinsics are kept."""
        with self._stats_lock:
            self.frame_index = 0
            self.frames_dropped = 0
            for key in self.timing:
                self.timing[key] = []

    def _count_drop(self) -> None:
        with self._stats_lock:
            self.frames_dropped += 1

    @staticmethod
    def _emit(sink: Optional[Callable], message) -> None:
        if sink is not None:
            sink(message)
