# lidar_fusion/transforms/transform_provider.py

import bisect
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy.spatial.transform import Rotation, Slerp

from lidar_fusion.errors import TransformLookupError
from lidar_fusion.types import RigidTransform

logger = logging.getLogger(__name__)


class TransformProvider(ABC):
    """
    Abstract source of rigid transforms between named frames.

    Implementations wrap whatever keeps track of the robot's frame tree.
    """

    @abstractmethod
    def lookup_transform(self, target_frame: str, source_frame: str,
                         stamp: float, timeout: float = 0.0) -> RigidTransform:
        """
        Resolve the transform that maps points from source_frame into target_frame.

        Args:
            target_frame: Frame the points should end up in
            source_frame: Frame the points are expressed in
            stamp: Time the transform must be valid at (seconds)
            timeout: Maximum time to wait for the transform to become available

        Returns:
            RigidTransform valid at ``stamp``

        Raises:
            TransformLookupError: If the transform cannot be resolved in time
        """
        pass


class TransformBuffer(TransformProvider):
    """
    In-memory transform store with a blocking, time-aware lookup.

    Static transforms are valid at every time. Dynamic transforms keep a
    sliding history of ``cache_time`` seconds; lookups between two samples
    interpolate translation linearly and rotation with a slerp. A stamp of
    0 asks for the latest sample.
    """

    def __init__(self, config: Dict = None):
        """
        Initialize the buffer.

        Args:
            config: Configuration dictionary with keys:
                - cache_time: Seconds of dynamic history to keep
        """
        self.config = {
            'cache_time': 10.0,
            **(config or {})
        }
        self._condition = threading.Condition()
        self._static: Dict[Tuple[str, str], RigidTransform] = {}
        self._dynamic: Dict[Tuple[str, str], List[RigidTransform]] = {}

    def set_transform(self, transform: RigidTransform, static: bool = False) -> None:
        """
        Store a transform and wake up any lookup waiting for it.

        Args:
            transform: Transform with source/target frames filled in
            static: Whether the transform is valid at every time
        """
        if not transform.source_frame or not transform.target_frame:
            raise ValueError("Transform must name both source and target frames")

        key = (transform.target_frame, transform.source_frame)
        with self._condition:
            if static:
                self._static[key] = transform
            else:
                history = self._dynamic.setdefault(key, [])
                stamps = [t.stamp for t in history]
                history.insert(bisect.bisect_right(stamps, transform.stamp), transform)
                cutoff = history[-1].stamp - self.config['cache_time']
                while len(history) > 1 and history[0].stamp < cutoff:
                    history.pop(0)
            self._condition.notify_all()

    def can_transform(self, target_frame: str, source_frame: str, stamp: float) -> bool:
        with self._condition:
            try:
                return self._resolve(target_frame, source_frame, stamp) is not None
            except TransformLookupError:
                return False

    def lookup_transform(self, target_frame: str, source_frame: str,
                         stamp: float, timeout: float = 0.0) -> RigidTransform:
        if target_frame == source_frame:
            return RigidTransform.identity(target_frame, stamp)

        deadline = time.monotonic() + max(timeout, 0.0)
        with self._condition:
            while True:
                transform = self._resolve(target_frame, source_frame, stamp)
                if transform is not None:
                    return transform

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TransformLookupError(
                        f"Lookup of {source_frame} -> {target_frame} at t={stamp:.3f} "
                        f"timed out after {timeout:.2f}s"
                    )
                self._condition.wait(remaining)

    def _resolve(self, target_frame: str, source_frame: str,
                 stamp: float) -> Optional[RigidTransform]:
        """
        Resolve with the lock held.

        Returns None when the transform may still arrive; raises when it
        never can (requested time already fell out of the history).
        """
        key = (target_frame, source_frame)
        if key in self._static:
            return self._restamp(self._static[key], stamp)
        inverse_key = (source_frame, target_frame)
        if inverse_key in self._static:
            return self._restamp(self._static[inverse_key].inverse(), stamp)

        if key in self._dynamic:
            return self._sample(self._dynamic[key], stamp)
        if inverse_key in self._dynamic:
            transform = self._sample(self._dynamic[inverse_key], stamp)
            return transform.inverse() if transform is not None else None

        return None

    @staticmethod
    def _restamp(transform: RigidTransform, stamp: float) -> RigidTransform:
        return RigidTransform(transform.rotation, transform.translation,
                              transform.source_frame, transform.target_frame, stamp)

    @staticmethod
    def _sample(history: List[RigidTransform], stamp: float) -> Optional[RigidTransform]:
        if not history:
            return None
        if stamp == 0:
            return history[-1]
        if stamp > history[-1].stamp:
            # Not received yet
            return None
        if stamp < history[0].stamp:
            raise TransformLookupError(
                f"Requested time {stamp:.3f} is older than the oldest cached "
                f"transform ({history[0].stamp:.3f})"
            )

        stamps = [t.stamp for t in history]
        idx = bisect.bisect_left(stamps, stamp)
        after = history[idx]
        if after.stamp == stamp or idx == 0:
            return after
        before = history[idx - 1]

        ratio = (stamp - before.stamp) / (after.stamp - before.stamp)
        translation = before.translation + ratio * (after.translation - before.translation)
        slerp = Slerp([0.0, 1.0], Rotation.from_matrix(np.stack([before.rotation, after.rotation])))
        rotation = slerp([ratio]).as_matrix()[0]
        return RigidTransform(rotation, translation, before.source_frame, before.target_frame, stamp)
