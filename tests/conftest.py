"""
Shared test fixtures.
"""

import sys
from pathlib import Path

import pytest

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.core.keypoint_expansion import expand_keypoints
from app.models.schemas import CalibrationContext, DenseKeypointSet, Landmark
from scripts.generate_test_pose import GROUND_TRUTH, IMAGE_SIZE, sparse_view


def _with_invalid(dense: DenseKeypointSet, *indices: int) -> DenseKeypointSet:
    landmarks = list(dense.landmarks)
    for i in indices:
        landmarks[i] = Landmark(index=i)
    return DenseKeypointSet(landmarks=landmarks)


@pytest.fixture
def invalidate():
    """Returns f(dense, *indices): a copy with the given slots zeroed out."""
    return _with_invalid


@pytest.fixture
def front_sparse():
    """Synthetic subject projected into the front view."""
    return sparse_view(0)


@pytest.fixture
def front_dense(front_sparse) -> DenseKeypointSet:
    return expand_keypoints(front_sparse)


@pytest.fixture
def three_views() -> list[DenseKeypointSet]:
    """Front, left and right views of the same subject, expanded."""
    return [expand_keypoints(sparse_view(k)) for k in range(3)]


@pytest.fixture
def calibration() -> CalibrationContext:
    return CalibrationContext(height_cm=GROUND_TRUTH["height_cm"], image_sizes=[IMAGE_SIZE])


@pytest.fixture
def calibration_3() -> CalibrationContext:
    return CalibrationContext(height_cm=GROUND_TRUTH["height_cm"], image_sizes=[IMAGE_SIZE] * 3)
