# tests/test_fusion_pipeline.py

import logging

import pytest
import numpy as np
from unittest.mock import MagicMock

from fusion_pipeline.fusion_pipeline import FusionPipeline
from lidar_fusion.camera import CameraModel
from lidar_fusion.errors import TransformLookupError
from lidar_fusion.transforms import TransformBuffer
from lidar_fusion.types import FusionResult, ImageFrame, PointCloud, RawDetection, RigidTransform
from lidar_fusion.utils.visualization import POINT_COLOR

K = [500.0, 0.0, 320.0, 0.0, 500.0, 240.0, 0.0, 0.0, 1.0]
WIDTH, HEIGHT = 640, 480


def identity_buffer():
    buffer = TransformBuffer()
    buffer.set_transform(
        RigidTransform(np.eye(3), np.zeros(3), "lidar_frame", "camera_frame"), static=True
    )
    return buffer


def make_image(encoding='bgr8'):
    return ImageFrame.from_array(np.zeros((HEIGHT, WIDTH, 3), dtype=np.uint8), encoding, stamp=2.0)


def make_cloud(points, frame_id="lidar_frame"):
    return PointCloud(np.array(points, dtype=np.float64), frame_id, 2.0)


class TestFusionPipeline:
    """Test the per-frame orchestration."""

    def setup_method(self):
        self.pose_sink = MagicMock()
        self.image_sink = MagicMock()
        self.cloud_sink = MagicMock()
        self.camera_model = CameraModel()
        self.pipeline = FusionPipeline(
            camera_model=self.camera_model,
            transform_provider=identity_buffer(),
            config={'transform_timeout': 0.05},
            pose_sink=self.pose_sink,
            image_sink=self.image_sink,
            cloud_sink=self.cloud_sink,
        )
        # Point at pixel (345, 252) and one at the image center (320, 240)
        self.cloud = make_cloud([[0.1, 0.05, 2.0], [0.102, 0.05, 2.0], [0.0, 0.0, 1.0]])
        self.detections = [
            RawDetection("1", 345.0, 252.0, 20.0, 20.0),
            RawDetection("2", 100.0, 100.0, 10.0, 10.0),  # no points
        ]

    def test_initialization(self):
        assert self.pipeline.camera_frame == 'camera_frame'
        assert self.pipeline.config['min_z'] == -2.0
        assert self.pipeline.config['transform_timeout'] == 0.05
        assert self.pipeline.frame_index == 0

    def test_dropped_before_camera_info(self, caplog):
        with caplog.at_level(logging.WARNING):
            result = self.pipeline.process(self.detections, make_image(), self.cloud)

        assert result is None
        self.pose_sink.assert_not_called()
        self.image_sink.assert_not_called()
        self.cloud_sink.assert_not_called()
        assert self.pipeline.frames_dropped == 1
        assert "Camera info not yet received" in caplog.text

    def test_process_frame(self):
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)

        result = self.pipeline.process(self.detections, make_image(), self.cloud)

        assert isinstance(result, FusionResult)
        assert len(result.poses) == 1
        pose = result.poses.poses[0]
        assert pose.detection_id == 1
        assert pose.position == pytest.approx((0.101, 0.05, 2.0))
        assert pose.orientation == (0.0, 0.0, 0.0, 1.0)
        assert result.poses.frame_id == 'camera_frame'

        assert len(result.object_clouds) == 1
        assert result.object_clouds[0].stamp == 2.0
        assert len(result.object_clouds[0]) == 2

        assert result.matched_pixels == [(345, 252), (345, 252)]
        assert result.frame_index == 0
        assert self.pipeline.frame_index == 1

    def test_sinks_called(self):
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)
        result = self.pipeline.process(self.detections, make_image(), self.cloud)

        self.pose_sink.assert_called_once_with(result.poses)
        self.cloud_sink.assert_called_once_with(result.object_clouds[0])
        self.image_sink.assert_called_once()
        published = self.image_sink.call_args[0][0]
        assert published.encoding == 'bgr8'
        assert published.stamp == 2.0
        assert np.array_equal(published.data, result.annotated_image)

    def test_annotated_image(self):
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)
        image = make_image()
        result = self.pipeline.process(self.detections, image, self.cloud)

        assert tuple(result.annotated_image[252, 345]) == POINT_COLOR
        # Unmatched projected point at the center is not drawn
        assert tuple(result.annotated_image[240, 320]) == (0, 0, 0)
        # The input buffer is not modified
        assert not image.data.any()

    def test_empty_detections(self):
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)
        result = self.pipeline.process([], make_image(), self.cloud)

        assert len(result.poses) == 0
        assert result.object_clouds == []
        assert not result.annotated_image.any()
        self.pose_sink.assert_called_once()
        self.cloud_sink.assert_not_called()
        published = self.image_sink.call_args[0][0]
        assert not published.data.any()

    def test_region_filter_excludes_points(self):
        """A point beyond max_z never reaches association even if it projects into a box."""
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)
        cloud = make_cloud([[0.0, 0.0, 3.0]])   # projects to (320, 240)
        detections = [RawDetection("4", 320.0, 240.0, 50.0, 50.0)]

        result = self.pipeline.process(detections, make_image(), cloud)

        assert len(result.poses) == 0
        assert result.matched_pixels == []

    def test_overlapping_boxes(self):
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)
        cloud = make_cloud([[0.0, 0.0, 1.0]])
        detections = [
            RawDetection("1", 320.0, 240.0, 40.0, 40.0),
            RawDetection("2", 330.0, 250.0, 40.0, 40.0),
        ]
        result = self.pipeline.process(detections, make_image(), cloud)

        assert [p.detection_id for p in result.poses.poses] == [1, 2]
        for pose in result.poses.poses:
            assert pose.position == pytest.approx((0.0, 0.0, 1.0))
        assert self.cloud_sink.call_count == 2

    def test_bad_detection_id_skipped(self):
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)
        detections = [
            RawDetection("not-a-number", 345.0, 252.0, 20.0, 20.0),
            RawDetection("7", 345.0, 252.0, 20.0, 20.0),
        ]
        result = self.pipeline.process(detections, make_image(), self.cloud)

        assert [p.detection_id for p in result.poses.poses] == [7]

    def test_transform_unavailable(self):
        provider = MagicMock()
        provider.lookup_transform.side_effect = TransformLookupError("no tf")
        pipeline = FusionPipeline(
            CameraModel(), provider,
            pose_sink=self.pose_sink, image_sink=self.image_sink, cloud_sink=self.cloud_sink,
        )
        pipeline.on_camera_info(K, WIDTH, HEIGHT)

        result = pipeline.process(self.detections, make_image(), self.cloud)

        assert result is None
        self.pose_sink.assert_not_called()
        self.image_sink.assert_not_called()
        self.cloud_sink.assert_not_called()
        provider.lookup_transform.assert_called_once_with(
            'camera_frame', 'lidar_frame', 2.0, 1.0
        )

    def test_transform_timeout_with_empty_buffer(self):
        pipeline = FusionPipeline(CameraModel(), TransformBuffer(), config={'transform_timeout': 0.01})
        pipeline.on_camera_info(K, WIDTH, HEIGHT)
        assert pipeline.process(self.detections, make_image(), self.cloud) is None
        assert pipeline.frames_dropped == 1

    def test_image_decode_failure(self):
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)
        image = ImageFrame(data=b'\x00' * 10, width=WIDTH, height=HEIGHT, encoding='yuv422', stamp=2.0)

        result = self.pipeline.process(self.detections, image, self.cloud)

        assert result is None
        # Poses and clouds go out before the image is converted
        self.pose_sink.assert_called_once()
        self.cloud_sink.assert_called_once()
        self.image_sink.assert_not_called()

    def test_failure_does_not_affect_next_frame(self):
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)
        bad_image = ImageFrame(data=b'', width=WIDTH, height=HEIGHT, encoding='bgr8')
        assert self.pipeline.process(self.detections, bad_image, self.cloud) is None

        result = self.pipeline.process(self.detections, make_image(), self.cloud)
        assert result is not None
        assert len(result.poses) == 1

    def test_frame_local_state(self):
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)
        first = self.pipeline.process(self.detections, make_image(), self.cloud)
        second = self.pipeline.process(self.detections, make_image(), self.cloud)

        assert len(second.object_clouds[0]) == 2
        assert second.poses.poses[0].position == first.poses.poses[0].position
        assert second.frame_index == 1

    def test_missing_cloud_frame_uses_lidar_frame(self):
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)
        cloud = make_cloud([[0.1, 0.05, 2.0]], frame_id="")
        result = self.pipeline.process(self.detections, make_image(), cloud)
        assert result is not None
        assert len(result.poses) == 1

    def test_configured_frames(self):
        buffer = TransformBuffer()
        buffer.set_transform(RigidTransform(np.eye(3), [0.0, 0.0, 0.5], "velodyne", "cam0"), static=True)
        pipeline = FusionPipeline(CameraModel(), buffer,
                                  config={'camera_frame': 'cam0', 'lidar_frame': 'velodyne'})
        pipeline.on_camera_info(K, WIDTH, HEIGHT)

        result = pipeline.process(self.detections, make_image(), make_cloud([[0.1, 0.05, 1.5]], ""))

        assert result.poses.frame_id == 'cam0'
        assert result.poses.poses[0].position == pytest.approx((0.1, 0.05, 2.0))
        assert result.object_clouds[0].frame_id == 'cam0'

    def test_intrinsics_update_applies_to_next_frame(self):
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)
        assert len(self.pipeline.process(self.detections, make_image(), self.cloud).poses) == 1

        # Shift the principal point so nothing lands in box 1 any more
        shifted = [500.0, 0.0, 20.0, 0.0, 500.0, 20.0, 0.0, 0.0, 1.0]
        self.pipeline.on_camera_info(shifted, WIDTH, HEIGHT)
        assert len(self.pipeline.process(self.detections, make_image(), self.cloud).poses) == 0

    def test_report_performance(self):
        self.pipeline.on_camera_info(K, WIDTH, HEIGHT)
        for _ in range(3):
            self.pipeline.process(self.detections, make_image(), self.cloud)

        perf = self.pipeline.report_performance()

        assert 'avg_filter_time' in perf
        assert 'avg_transform_time' in perf
        assert 'avg_total_time' in perf
        assert perf['frames_processed'] == 3
        assert perf['frames_dropped'] == 0
        assert len(self.pipeline.timing['total']) == 3

    def test_reset(self):
        self.pipeline.frame_index = 10
        self.pipeline.frames_dropped = 2
        self.pipeline.timing['filter'] = [0.01, 0.02]

        self.pipeline.reset()

        assert self.pipeline.frame_index == 0
        assert self.pipeline.frames_dropped == 0
        assert self.pipeline.timing['filter'] == []
