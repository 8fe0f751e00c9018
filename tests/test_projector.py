# tests/test_projector.py

import pytest
import numpy as np

from lidar_fusion.projection import Projector, project_points
from lidar_fusion.types import CameraIntrinsics, PointCloud

WIDTH, HEIGHT = 640, 480


@pytest.fixture
def intrinsics():
    return CameraIntrinsics(fx=500.0, fy=500.0, cx=320.0, cy=240.0, width=WIDTH, height=HEIGHT)


def make_cloud(points, indices=None):
    return PointCloud(np.array(points, dtype=np.float64), "camera_frame", 1.0, indices)


class TestProjectPoints:
    """Test pinhole projection."""

    def test_known_projection(self, intrinsics):
        """A point in front of the camera lands on the expected pixel."""
        projected = project_points(make_cloud([[0.1, 0.05, 2.0]]), intrinsics, WIDTH, HEIGHT)

        assert len(projected) == 1
        assert projected.u[0] == 345
        assert projected.v[0] == 252
        assert np.allclose(projected.xyz[0], [0.1, 0.05, 2.0])

    @pytest.mark.parametrize("z", [0.0, -0.5, -10.0])
    @pytest.mark.parametrize("x,y", [(0.0, 0.0), (0.1, -0.2), (-3.0, 4.0)])
    def test_behind_camera_excluded(self, intrinsics, x, y, z):
        projected = project_points(make_cloud([[x, y, z]]), intrinsics, WIDTH, HEIGHT)
        assert len(projected) == 0

    def test_truncates_instead_of_rounding(self):
        intrinsics = CameraIntrinsics(fx=1.0, fy=1.0, cx=0.0, cy=0.0, width=10, height=10)
        projected = project_points(make_cloud([[0.7, 2.9, 1.0]]), intrinsics, 10, 10)

        assert projected.u[0] == 0
        assert projected.v[0] == 2

    def test_truncates_toward_zero_for_small_negatives(self):
        """-0.5 truncates to 0 and stays in the image; -1.5 truncates to -1 and is dropped."""
        intrinsics = CameraIntrinsics(fx=1.0, fy=1.0, cx=0.0, cy=1.0, width=10, height=10)
        projected = project_points(make_cloud([[-0.5, 0.0, 1.0], [-1.5, 0.0, 1.0]]), intrinsics, 10, 10)

        assert len(projected) == 1
        assert projected.u[0] == 0

    @pytest.mark.parametrize("cx,expected", [(639.0, 1), (640.0, 0), (0.0, 1)])
    def test_horizontal_image_bounds(self, cx, expected):
        intrinsics = CameraIntrinsics(fx=1.0, fy=1.0, cx=cx, cy=10.0, width=WIDTH, height=HEIGHT)
        projected = project_points(make_cloud([[0.0, 0.0, 1.0]]), intrinsics, WIDTH, HEIGHT)
        assert len(projected) == expected

    @pytest.mark.parametrize("cy,expected", [(479.0, 1), (480.0, 0)])
    def test_vertical_image_bounds(self, cy, expected):
        intrinsics = CameraIntrinsics(fx=1.0, fy=1.0, cx=10.0, cy=cy, width=WIDTH, height=HEIGHT)
        projected = project_points(make_cloud([[0.0, 0.0, 1.0]]), intrinsics, WIDTH, HEIGHT)
        assert len(projected) == expected

    def test_pixels_are_within_image(self, intrinsics):
        rng = np.random.default_rng(0)
        points = rng.uniform(-5.0, 5.0, size=(500, 3))
        projected = project_points(make_cloud(points), intrinsics, WIDTH, HEIGHT)

        assert len(projected) > 0
        assert np.all(projected.u >= 0) and np.all(projected.u < WIDTH)
        assert np.all(projected.v >= 0) and np.all(projected.v < HEIGHT)
        assert np.all(projected.xyz[:, 2] > 0)

    def test_order_and_source_indices_preserved(self, intrinsics):
        points = [
            [0.0, 0.0, 1.0],     # kept
            [0.0, 0.0, -1.0],    # behind
            [0.1, 0.05, 2.0],    # kept
            [50.0, 0.0, 1.0],    # off image
            [-0.1, -0.1, 1.0],   # kept
        ]
        cloud = make_cloud(points, indices=[10, 11, 12, 13, 14])
        projected = project_points(cloud, intrinsics, WIDTH, HEIGHT)

        assert list(projected.source_indices) == [10, 12, 14]
        assert list(projected.u) == [320, 345, 270]
        assert list(projected.v) == [240, 252, 190]

    def test_uses_given_image_size(self, intrinsics):
        """The image size passed in wins over the intrinsics' own size."""
        projected = project_points(make_cloud([[0.1, 0.05, 2.0]]), intrinsics, 300, 300)
        assert len(projected) == 0

    def test_empty_cloud(self, intrinsics):
        projected = project_points(make_cloud(np.zeros((0, 3))), intrinsics, WIDTH, HEIGHT)
        assert len(projected) == 0
        assert projected.xyz.shape == (0, 3)

    def test_projector_wrapper(self, intrinsics):
        projected = Projector().project(make_cloud([[0.1, 0.05, 2.0]]), intrinsics, WIDTH, HEIGHT)
        assert (projected.u[0], projected.v[0]) == (345, 252)
