"""
Elliptical cross-section circumferences from a 3D keypoint cloud.

Triangulated keypoints lie on the body's skeletal axes, not on its
surface, so a horizontal slice through the cloud holds joint centres from
unrelated body parts and no outline.  Each section is instead modelled as
an ellipse built from that section's own slots:

    width  = scale · |a − b|          (3D distance, cm)
    depth  = width · depth_ratio
    C      = ellipse_perimeter(width / 2, depth / 2)

Torso sections (chest, waist, hip) span a left/right slot pair.  Limb
sections (thigh, upper arm) take their width from the length of one bone
on one side, so the left and right entries never share a point.

Each entry carries its own physiological range and is invalid when a
defining slot is missing, the width is zero, or the value is out of range.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from app.config import config
from app.core.landmarks import idx, point
from app.core.measurement_engine import keypoints3d_to_arrays
from app.models.schemas import DataIssue, Keypoint3D, MeasurementSet, SingleMeasurement

logger = logging.getLogger(__name__)

ccfg = config.circumference


def ellipse_perimeter(a: float, b: float) -> float:
    """
    Ramanujan's second approximation for ellipse circumference.
    a, b = semi-axes.
    """
    h = ((a - b) / (a + b)) ** 2 if (a + b) > 1e-12 else 0.0
    return float(np.pi * (a + b) * (1.0 + 3.0 * h / (10.0 + np.sqrt(4.0 - 3.0 * h))))


def section_width(
    xyz: np.ndarray, valid: np.ndarray, a: str, b: str, scale: float,
) -> float | None:
    """scale · |a − b| in cm, or None if either slot is missing."""
    pa, pb = point(xyz, valid, idx(a)), point(xyz, valid, idx(b))
    if pa is None or pb is None:
        return None
    width = scale * float(np.linalg.norm(pa - pb))
    return width if width > 0 else None


def compute_circumferences(keypoints3d: Sequence[Keypoint3D]) -> MeasurementSet:
    xyz, valid = keypoints3d_to_arrays(keypoints3d)

    results: list[SingleMeasurement] = []
    issues: list[DataIssue] = []

    if np.sum(valid) < 2:
        issues.append(DataIssue.input_invalid)

    for name, (a, b, scale, depth_ratio) in ccfg.sections.items():
        lo, hi = ccfg.ranges_cm[name]
        width = section_width(xyz, valid, a, b, scale)
        value = None
        if width is not None:
            value = ellipse_perimeter(width / 2.0, width * depth_ratio / 2.0)
        logger.debug("Section %s: width=%s → %s", name, width, value)

        ok = value is not None and np.isfinite(value) and lo <= value <= hi
        results.append(SingleMeasurement(
            name=name,
            value_cm=round(value, 2) if ok else 0.0,
            valid=bool(ok),
            range_cm=(lo, hi),
        ))

    return MeasurementSet(measurements=results, issues=issues)
