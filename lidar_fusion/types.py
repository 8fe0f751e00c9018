# lidar_fusion/types.py
"""
Value types shared by the fusion stages.

Point sets are stored as numpy arrays so each stage can hand a fresh,
index-addressable copy to the next one. Nothing in here is reused across
frames.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.spatial.transform import Rotation

Pixel = Tuple[int, int]


@dataclass(frozen=True)
class CameraIntrinsics:
    """
    Pinhole intrinsics plus image dimensions.

    Attributes:
        fx, fy: Focal lengths in pixels
        cx, cy: Principal point in pixels
        width, height: Image size in pixels
    """

    fx: float
    fy: float
    cx: float
    cy: float
    width: int
    height: int

    @classmethod
    def from_matrix(cls, k: Union[Sequence[float], np.ndarray], width: int, height: int) -> "CameraIntrinsics":
        """
        Build intrinsics from a row-major 3x3 camera matrix.

        Args:
            k: Flat sequence of 9 values or a 3x3 array
            width: Image width in pixels
            height: Image height in pixels

        Returns:
            CameraIntrinsics
        """
        k = np.asarray(k, dtype=np.float64).reshape(-1)
        if k.size != 9:
            raise ValueError(f"Camera matrix must have 9 elements, got {k.size}")
        return cls(
            fx=float(k[0]),
            fy=float(k[4]),
            cx=float(k[2]),
            cy=float(k[5]),
            width=int(width),
            height=int(height),
        )

    def as_matrix(self) -> np.ndarray:
        return np.array([
            [self.fx, 0.0, self.cx],
            [0.0, self.fy, self.cy],
            [0.0, 0.0, 1.0],
        ])


@dataclass(eq=False)
class PointCloud:
    """
    A set of 3D points expressed in one reference frame.

    Attributes:
        points: (N, 3) array of x, y, z
        frame_id: Reference frame the points are expressed in
        stamp: Acquisition time in seconds
        indices: (N,) index of each point in the raw, unfiltered cloud
    """

    points: np.ndarray
    frame_id: str = ""
    stamp: float = 0.0
    indices: Optional[np.ndarray] = None

    def __post_init__(self):
        self.points = np.asarray(self.points, dtype=np.float64).reshape(-1, 3)
        if self.indices is None:
            self.indices = np.arange(len(self.points), dtype=np.int64)
        else:
            self.indices = np.asarray(self.indices, dtype=np.int64).reshape(-1)
        if len(self.indices) != len(self.points):
            raise ValueError(
                f"indices length {len(self.indices)} does not match point count {len(self.points)}"
            )

    @classmethod
    def from_array(cls, points, frame_id: str = "", stamp: float = 0.0) -> "PointCloud":
        """Create a cloud from an (N, 3+) array; extra columns are dropped."""
        points = np.asarray(points, dtype=np.float64)
        if points.ndim == 2 and points.shape[1] > 3:
            points = points[:, :3]
        return cls(points=points, frame_id=frame_id, stamp=stamp)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def is_empty(self) -> bool:
        return len(self.points) == 0

    def subset(self, mask: np.ndarray) -> "PointCloud":
        """Return a new cloud holding only the points selected by ``mask``."""
        return PointCloud(
            points=self.points[mask],
            frame_id=self.frame_id,
            stamp=self.stamp,
            indices=self.indices[mask],
        )


@dataclass(frozen=True)
class RawDetection:
    """A 2D detection as delivered by the detector: string id, center and size."""

    id: str
    center_x: float
    center_y: float
    size_x: float
    size_y: float


@dataclass(frozen=True)
class Detection:
    """An axis-aligned detection box in pixel coordinates."""

    id: int
    x_min: float
    y_min: float
    x_max: float
    y_max: float

    @classmethod
    def from_center(cls, id: int, center_x: float, center_y: float,
                    size_x: float, size_y: float) -> "Detection":
        return cls(
            id=id,
            x_min=center_x - size_x / 2.0,
            y_min=center_y - size_y / 2.0,
            x_max=center_x + size_x / 2.0,
            y_max=center_y + size_y / 2.0,
        )

    def contains(self, u: float, v: float) -> bool:
        # Inclusive on all four edges
        return self.x_min <= u <= self.x_max and self.y_min <= v <= self.y_max


@dataclass(eq=False)
class ImageFrame:
    """
    Encoded image as received from the camera driver.

    Attributes:
        data: Raw pixel buffer (bytes or numpy array)
        width, height: Image size in pixels
        encoding: Pixel encoding, e.g. 'bgr8', 'rgb8', 'mono8'
        stamp: Capture time in seconds
        frame_id: Camera frame identifier
    """

    data: Union[bytes, np.ndarray]
    width: int
    height: int
    encoding: str = "bgr8"
    stamp: float = 0.0
    frame_id: str = ""

    @classmethod
    def from_array(cls, image: np.ndarray, encoding: str = "bgr8",
                   stamp: float = 0.0, frame_id: str = "") -> "ImageFrame":
        height, width = image.shape[:2]
        return cls(data=image, width=width, height=height,
                   encoding=encoding, stamp=stamp, frame_id=frame_id)


@dataclass(eq=False)
class RigidTransform:
    """
    Rotation plus translation mapping points from ``source_frame`` into
    ``target_frame``.
    """

    rotation: np.ndarray
    translation: np.ndarray
    source_frame: str = ""
    target_frame: str = ""
    stamp: float = 0.0

    def __post_init__(self):
        self.rotation = np.asarray(self.rotation, dtype=np.float64).reshape(3, 3)
        self.translation = np.asarray(self.translation, dtype=np.float64).reshape(3)

    @classmethod
    def from_quaternion(cls, translation: Sequence[float], quaternion: Sequence[float],
                        source_frame: str = "", target_frame: str = "",
                        stamp: float = 0.0) -> "RigidTransform":
        """
        Build a transform from a translation and a quaternion in (x, y, z, w) order.
        """
        rotation = Rotation.from_quat(np.asarray(quaternion, dtype=np.float64)).as_matrix()
        return cls(rotation, translation, source_frame, target_frame, stamp)

    @classmethod
    def identity(cls, frame: str = "", stamp: float = 0.0) -> "RigidTransform":
        return cls(np.eye(3), np.zeros(3), frame, frame, stamp)

    def apply(self, points: np.ndarray) -> np.ndarray:
        """
        Rotate then translate an (N, 3) array of points.

        Returns:
            New (N, 3) array in the target frame, same order as the input
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return points @ self.rotation.T + self.translation

    def as_matrix(self) -> np.ndarray:
        matrix = np.eye(4)
        matrix[:3, :3] = self.rotation
        matrix[:3, 3] = self.translation
        return matrix

    def inverse(self) -> "RigidTransform":
        rotation_inv = self.rotation.T
        return RigidTransform(
            rotation_inv,
            -rotation_inv @ self.translation,
            source_frame=self.target_frame,
            target_frame=self.source_frame,
            stamp=self.stamp,
        )


@dataclass(eq=False)
class ProjectedPoints:
    """
    Columnar set of points that landed inside the image.

    Attributes:
        u, v: (N,) integer pixel coordinates
        xyz: (N, 3) camera-frame coordinates of each point
        source_indices: (N,) index of each point in the raw cloud
    """

    u: np.ndarray
    v: np.ndarray
    xyz: np.ndarray
    source_indices: np.ndarray

    @classmethod
    def empty(cls) -> "ProjectedPoints":
        return cls(
            u=np.zeros(0, dtype=np.int64),
            v=np.zeros(0, dtype=np.int64),
            xyz=np.zeros((0, 3)),
            source_indices=np.zeros(0, dtype=np.int64),
        )

    def __len__(self) -> int:
        return len(self.u)


@dataclass
class BoundingBoxAccumulator:
    """Running coordinate sums of the points that fell inside one detection box."""

    detection: Detection
    sum_x: float = 0.0
    sum_y: float = 0.0
    sum_z: float = 0.0
    count: int = 0
    point_indices: List[int] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.detection.id

    def add(self, x: float, y: float, z: float, index: int) -> None:
        """
        Accumulate one point.

        Args:
            x, y, z: Camera-frame coordinates
            index: Position of the point in the projected set
        """
        self.sum_x += x
        self.sum_y += y
        self.sum_z += z
        self.count += 1
        self.point_indices.append(index)

    def centroid(self) -> Optional[Tuple[float, float, float]]:
        if self.count == 0:
            return None
        return (self.sum_x / self.count, self.sum_y / self.count, self.sum_z / self.count)


@dataclass(frozen=True)
class ObjectPose:
    """Centroid of one detected object; orientation is always identity."""

    detection_id: int
    position: Tuple[float, float, float]
    orientation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)


@dataclass
class PoseArray:
    frame_id: str
    stamp: float
    poses: List[ObjectPose] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.poses)


@dataclass(eq=False)
class ObjectCloud:
    """Points associated with one detection, in the camera frame."""

    detection_id: int
    points: np.ndarray
    frame_id: str
    stamp: float

    def __len__(self) -> int:
        return len(self.points)


@dataclass(eq=False)
class FusionResult:
    """Everything produced for one synchronized triple."""

    poses: PoseArray
    annotated_image: Optional[np.ndarray] = None
    object_clouds: List[ObjectCloud] = field(default_factory=list)
    matched_pixels: List[Pixel] = field(default_factory=list)
    frame_index: int = 0
    processing_time: float = 0.0

    def __repr__(self):
        return (f"FusionResult(frame_index={self.frame_index}, "
                f"objects={len(self.poses)}, "
                f"clouds={len(self.object_clouds)}, "
                f"processing_time={self.processing_time:.3f}s)")
