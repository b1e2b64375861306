#!/usr/bin/env python3
"""
Generate a synthetic, analytically projected pose for testing.

A 175 cm subject stands at the origin facing the front camera, arms
slightly away from the body.  The 33 detector landmarks are placed by
hand in world centimeters (Y up, subject's left = +x, front camera on
−Z) and projected into the three fixed views with the same camera model
the triangulator uses, so every view is exactly consistent.

Known dimensions (for validation):
  - Height:          175 cm (floor to crown)
  - Shoulder width:  39 cm
  - Arm length:      ~56.1 cm (shoulder → elbow → wrist)
  - Leg length:      ~84.1 cm (hip → knee → ankle)
  - Hip width:       30 cm
  - Upper body:      74 cm  (hip midpoint → eyes)
  - Lower body:      84 cm  (hip midpoint → ankles)
  - Neck proxy:      9.4 cm (outer eye corners)
  - Thigh width:     16.5 cm (0.55 × hip spread)

Usage:
    python scripts/generate_test_pose.py [output_dir]
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import numpy as np

from app.core.landmarks import SPARSE_NAMES
from app.core.triangulation import default_camera_poses, project_point
from app.models.schemas import (
    CameraPose,
    ImageSize,
    Landmark,
    MultiViewScan,
    SingleViewScan,
    SparseLandmarkSet,
    ViewCapture,
)


# ── Known ground-truth values ─────────────────────────────────────────

GROUND_TRUTH = {
    "height_cm": 175.0,
    "shoulder_width": 39.0,
    "arm_length": 56.14,
    "leg_length": 84.06,
    "hip_width": 30.0,
    "upper_body_length": 74.0,
    "lower_body_length": 84.0,
    "neck_width": 9.4,
    "thigh_width": 16.5,
}

IMAGE_SIZE = ImageSize(width=640, height=960)

# Height above the floor is shifted so the subject is centred on Y = 0
FLOOR_OFFSET_CM = 87.5

# name → (height above floor, lateral x, depth z), centimeters.
# Left landmarks sit at +x; the right side mirrors them.
_MIDLINE = {
    "nose": (163.0, 0.0, -10.0),
}
_BILATERAL = {
    "eye_inner": (166.0, 1.5, -8.0),
    "eye": (166.0, 3.2, -7.5),
    "eye_outer": (166.0, 4.7, -6.5),
    "ear": (164.0, 7.5, 0.0),
    "shoulder": (143.5, 19.5, 0.0),
    "elbow": (115.0, 24.0, 0.0),
    "wrist": (88.0, 28.0, 0.0),
    "pinky": (80.0, 30.0, 0.0),
    "index": (79.0, 28.5, -2.0),
    "thumb": (82.0, 26.0, -3.0),
    "hip": (92.0, 15.0, 0.0),
    "knee": (50.0, 13.0, 0.0),
    "ankle": (8.0, 12.0, 0.0),
    "heel": (3.0, 12.0, 4.0),
    "foot_index": (1.0, 13.0, -12.0),
}
_MOUTH = (157.0, 2.5, -8.5)


def _landmark_cm(name: str) -> tuple[float, float, float]:
    if name in _MIDLINE:
        return _MIDLINE[name]
    if name.startswith("mouth_"):
        h, x, z = _MOUTH
        return (h, x if name.endswith("left") else -x, z)
    side, part = name.split("_", 1)
    h, x, z = _BILATERAL[part]
    return (h, x if side == "left" else -x, z)


def skeleton_world() -> np.ndarray:
    """(33, 3) detector landmarks in world centimeters, Y up."""
    pts = np.array([_landmark_cm(name) for name in SPARSE_NAMES], dtype=np.float64)
    return np.column_stack([pts[:, 1], pts[:, 0] - FLOOR_OFFSET_CM, pts[:, 2]])


def sparse_view(
    view_index: int,
    size: ImageSize = IMAGE_SIZE,
    confidence: float = 0.95,
    poses: list[CameraPose] | None = None,
) -> SparseLandmarkSet:
    """Project the skeleton into one of the fixed views."""
    pose = (poses or default_camera_poses())[view_index]
    landmarks = []
    for i, p in enumerate(skeleton_world()):
        xy, _ = project_point(p, pose, size.width, size.height)
        landmarks.append(Landmark(
            index=i, x=float(xy[0]), y=float(xy[1]),
            confidence=confidence, visible=True,
        ))
    return SparseLandmarkSet(landmarks=landmarks)


def view_capture(view_index: int, **kwargs) -> ViewCapture:
    return ViewCapture(landmarks=sparse_view(view_index, **kwargs), image_size=IMAGE_SIZE)


def single_view_request(height_cm: float = GROUND_TRUTH["height_cm"]) -> SingleViewScan:
    return SingleViewScan(height_cm=height_cm, view=view_capture(0))


def multi_view_request(height_cm: float = GROUND_TRUTH["height_cm"]) -> MultiViewScan:
    return MultiViewScan(height_cm=height_cm, views=[view_capture(k) for k in range(3)])


def main():
    out_dir = Path(sys.argv[1] if len(sys.argv) > 1 else ".")
    out_dir.mkdir(parents=True, exist_ok=True)

    single = out_dir / "single_view_request.json"
    multi = out_dir / "multi_view_request.json"
    single.write_text(json.dumps(single_view_request().model_dump(mode="json"), indent=2))
    multi.write_text(json.dumps(multi_view_request().model_dump(mode="json"), indent=2))

    print(f"Generated test requests in {out_dir}")
    print(f"  {single.name}, {multi.name}")
    print(f"  Image size: {IMAGE_SIZE.width}x{IMAGE_SIZE.height}")
    print(f"\nGround truth values:")
    for k, v in GROUND_TRUTH.items():
        print(f"  {k}: {v}")


if __name__ == "__main__":
    main()
