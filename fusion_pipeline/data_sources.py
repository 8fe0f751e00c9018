# fusion_pipeline/data_sources.py

import os
import logging
import zipfile
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
import yaml

from lidar_fusion.types import ImageFrame, PointCloud, RawDetection

logger = logging.getLogger(__name__)

Triple = Tuple[List[RawDetection], ImageFrame, PointCloud]


class DataSource(ABC):
    """
    Abstract base class for sources of synchronized sensor triples.

    All data source implementations should inherit from this class and
    implement the required methods.
    """

    def __init__(self, config: Dict = None):
        """
        Initialize the data source.

        Args:
            config: Configuration dictionary
        """
        self.config = config or {}
        self.is_initialized = False

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the data source."""
        pass

    @abstractmethod
    def get_triple(self) -> Tuple[bool, Optional[Triple]]:
        """
        Get the next (detections, image, point cloud) triple.

        Returns:
            Tuple of (success, triple)
        """
        pass

    @abstractmethod
    def release(self) -> None:
        """Release resources."""
        pass

    def __iter__(self) -> Iterator[Triple]:
        while True:
            success, triple = self.get_triple()
            if not success:
                break
            yield triple

    def __enter__(self):
        if not self.is_initialized:
            self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


class RecordingSource(DataSource):
    """
    Replays a directory of recorded frames.

    Layout:
        camera_info.yaml   k (9 values, row-major), width, height
        000000.npz         one file per frame, replayed in filename order

    Each frame file holds:
        points           (N, 3+) lidar points
        image            (H, W, C) or (H, W) pixel array
        detection_ids    (M,) id strings
        detection_boxes  (M, 4) center_x, center_y, size_x, size_y
        stamp            scalar timestamp in seconds
        frame_id         optional lidar frame id
        encoding         optional image encoding (default 'bgr8')
    """

    REQUIRED_KEYS = ('points', 'image', 'detection_ids', 'detection_boxes', 'stamp')

    def __init__(self, path: str, config: Dict = None):
        """
        Initialize the recording source.

        Args:
            path: Recording directory
            config: Configuration dictionary with keys:
                - lidar_frame: Frame id for clouds recorded without one
                - camera_frame: Frame id stamped on images
        """
        super().__init__(config)
        self.path = path
        self.frame_paths: List[str] = []
        self.current_idx = 0
        self.lidar_frame = self.config.get('lidar_frame', 'lidar_frame')
        self.camera_frame = self.config.get('camera_frame', 'camera_frame')

    def initialize(self) -> None:
        if not os.path.isdir(self.path):
            raise FileNotFoundError(f"Recording directory not found: {self.path}")

        self.frame_paths = sorted(
            os.path.join(self.path, f) for f in os.listdir(self.path)
            if f.lower().endswith('.npz')
        )
        logger.info(f"Found {len(self.frame_paths)} frames in recording: {self.path}")

        self.current_idx = 0
        self.is_initialized = True

    def camera_info(self) -> Tuple[List[float], int, int]:
        """
        Read camera_info.yaml from the recording.

        Returns:
            Tuple of (k, width, height)
        """
        info_path = os.path.join(self.path, 'camera_info.yaml')
        if not os.path.exists(info_path):
            raise FileNotFoundError(f"Camera info not found: {info_path}")
        with open(info_path, 'r') as f:
            info = yaml.safe_load(f) or {}
        try:
            return [float(v) for v in info['k']], int(info['width']), int(info['height'])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid camera info in {info_path}: {e}") from e

    def get_triple(self) -> Tuple[bool, Optional[Triple]]:
        if not self.is_initialized:
            self.initialize()

        while self.current_idx < len(self.frame_paths):
            frame_path = self.frame_paths[self.current_idx]
            self.current_idx += 1

            triple = self._load_frame(frame_path)
            if triple is not None:
                return True, triple

        return False, None

    def _load_frame(self, frame_path: str) -> Optional[Triple]:
        try:
            with np.load(frame_path, allow_pickle=False) as data:
                missing = [key for key in self.REQUIRED_KEYS if key not in data.files]
                if missing:
                    logger.warning(f"Skipping {frame_path}: missing {', '.join(missing)}")
                    return None

                stamp = float(data['stamp'])
                frame_id = str(data['frame_id']) if 'frame_id' in data.files else self.lidar_frame
                encoding = str(data['encoding']) if 'encoding' in data.files else 'bgr8'

                cloud = PointCloud.from_array(data['points'], frame_id=frame_id, stamp=stamp)
                image = ImageFrame.from_array(
                    data['image'], encoding=encoding, stamp=stamp, frame_id=self.camera_frame
                )
                boxes = np.asarray(data['detection_boxes'], dtype=np.float64).reshape(-1, 4)
                ids = [str(i) for i in data['detection_ids'].reshape(-1)]
        except (OSError, ValueError, zipfile.BadZipFile) as e:
            logger.warning(f"Failed to load frame {frame_path}: {e}")
            return None

        if len(ids) != len(boxes):
            logger.warning(
                f"Skipping {frame_path}: {len(ids)} detection ids but {len(boxes)} boxes"
            )
            return None

        detections = [
            RawDetection(id=det_id, center_x=box[0], center_y=box[1], size_x=box[2], size_y=box[3])
            for det_id, box in zip(ids, boxes)
        ]
        return detections, image, cloud

    def release(self) -> None:
        # Nothing held open between frames
        pass

    def reset(self) -> None:
        """Rewind to the first frame."""
        self.current_idx = 0
