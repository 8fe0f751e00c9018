# lidar_fusion/camera/camera_model.py

import logging
import threading
from enum import Enum
from typing import Optional, Sequence, Union

import numpy as np

from lidar_fusion.errors import NotReadyError
from lidar_fusion.types import CameraIntrinsics

logger = logging.getLogger(__name__)


class CameraState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class CameraModel:
    """
    Holds the latest camera intrinsics and gates frame processing.

    The model starts ``UNINITIALIZED`` and moves to ``READY`` on the first
    intrinsics update. There is no way back. Updates and reads may come from
    different threads, so both go through a lock; a frame takes one
    ``snapshot()`` and uses it for its whole run.
    """

    def __init__(self, intrinsics: Optional[CameraIntrinsics] = None):
        self._lock = threading.Lock()
        self._intrinsics: Optional[CameraIntrinsics] = None
        self._state = CameraState.UNINITIALIZED
        if intrinsics is not None:
            self.update_intrinsics(intrinsics)

    @property
    def state(self) -> CameraState:
        with self._lock:
            return self._state

    @property
    def is_ready(self) -> bool:
        return self.state is CameraState.READY

    @property
    def intrinsics(self) -> CameraIntrinsics:
        return self.snapshot()

    def update_intrinsics(self, intrinsics: CameraIntrinsics) -> None:
        """
        Replace the current intrinsics.

        Args:
            intrinsics: New intrinsics; applies to frames that start afterwards
        """
        with self._lock:
            self._intrinsics = intrinsics
            if self._state is CameraState.UNINITIALIZED:
                self._state = CameraState.READY
                logger.info(
                    f"Camera intrinsics received: {intrinsics.width}x{intrinsics.height}, "
                    f"fx={intrinsics.fx:.2f} fy={intrinsics.fy:.2f} "
                    f"cx={intrinsics.cx:.2f} cy={intrinsics.cy:.2f}"
                )

    def update_from_camera_info(self, k: Union[Sequence[float], np.ndarray],
                                width: int, height: int) -> CameraIntrinsics:
        """
        Update from a camera-info style message.

        Args:
            k: Row-major 3x3 intrinsic matrix
            width: Image width in pixels
            height: Image height in pixels

        Returns:
            The intrinsics that were stored
        """
        intrinsics = CameraIntrinsics.from_matrix(k, width, height)
        self.update_intrinsics(intrinsics)
        return intrinsics

    def snapshot(self) -> CameraIntrinsics:
        """
        Read the current intrinsics atomically.

        Raises:
            NotReadyError: If no intrinsics have been received yet
        """
        with self._lock:
            if self._state is CameraState.UNINITIALIZED:
                raise NotReadyError("Camera info not yet received")
            return self._intrinsics
