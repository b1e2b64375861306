"""
Body measurement engine.

Calibration
───────────
The user's known height fixes the image scale:

    body_px     = (y_max − y_min) · image_height      over all valid slots
    cm_per_px   = height_cm / body_px

If body_px is 0 (fewer than two valid slots, or all at one row) the scale
is undefined and every measurement is reported invalid; nothing divides
by zero.

The span includes generated slots: the user's height runs
from crown to sole, and only the extrapolated ``head_top`` and
``*_toe_tip`` slots reach that far.  upper_body_length instead ends at the
highest *detected* landmark, so it never rests on an extrapolated point.

Scale axes
──────────
Distances are taken on normalized coordinates and then scaled:

  • width     |Δx| · W · cm_per_px
  • height    |Δy| · H · cm_per_px
  • diagonal  √((Δx·W)² + (Δy·H)²) · cm_per_px

The diagonal axis is the full anisotropic form for every limb segment,
so portrait and landscape images scale identically.

Measurement definitions
───────────────────────
• shoulder_width      L/R shoulder, width
• arm_length          shoulder → elbow → wrist, mean over complete sides
• leg_length          hip → knee → ankle, mean over complete sides
• hip_width           L/R hip, width
• upper_body_length   hip midpoint → highest detected landmark, height
• lower_body_length   hip midpoint → ankle midpoint, height
• neck_width          L/R outer eye corner (proxy), width
• thigh_width         mean of per-side widths (mask scan or proportion)

Midpoints are always computed from their defining pair.  A value that
is missing, non-finite or outside its physiological range is reported as
0 with ``valid=False``; other measurements are unaffected.

The 3D variant (:func:`compute_measurements_3d`) applies the same
definitions to triangulated keypoints already in centimeters: widths use
the lateral (x) extent, heights the vertical (y) extent, limbs full 3D
segment lengths.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

import numpy as np

from app.config import config
from app.core.landmarks import idx, midpoint, point, to_arrays
from app.core.width_estimation import (
    ProportionFallback,
    estimate_thigh_widths,
    select_strategies,
)
from app.models.schemas import (
    CalibrationContext,
    DataIssue,
    DenseKeypointSet,
    Keypoint3D,
    MeasurementSet,
    SingleMeasurement,
)

logger = logging.getLogger(__name__)

mcfg = config.measurement

MEASUREMENT_NAMES: list[str] = [
    "shoulder_width",
    "arm_length",
    "leg_length",
    "hip_width",
    "upper_body_length",
    "lower_body_length",
    "neck_width",
    "thigh_width",
]

Distance = Callable[[np.ndarray, np.ndarray], float]


# ── Helpers ────────────────────────────────────────────────────────────

def body_pixel_height(xy: np.ndarray, valid: np.ndarray, image_height: int) -> float:
    """Vertical pixel span between the topmost and lowest valid slot."""
    ys = xy[valid, 1]
    if len(ys) < 2:
        return 0.0
    return float((ys.max() - ys.min()) * image_height)


def _pair(xy, valid, a: str, b: str) -> tuple[np.ndarray, np.ndarray] | None:
    pa, pb = point(xy, valid, idx(a)), point(xy, valid, idx(b))
    if pa is None or pb is None:
        return None
    return pa, pb


def _chain_length(xy, valid, names: Sequence[str], dist: Distance) -> float | None:
    pts = [point(xy, valid, idx(n)) for n in names]
    if any(p is None for p in pts):
        return None
    return sum(dist(p, q) for p, q in zip(pts[:-1], pts[1:]))


def _mean_over_sides(values: list[float | None]) -> float | None:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return float(np.mean(present))


def _highest_detected(xy, valid, up: int) -> np.ndarray | None:
    """
    Highest valid slot among the directly detected landmarks.

    ``up`` is the sign of "up" along the y axis: −1 for image rows,
    +1 for the Y-up world frame.
    """
    limit = min(mcfg.upper_body_top_max_index, len(xy))
    ids = np.where(valid[:limit])[0]
    if len(ids) == 0:
        return None
    best = ids[np.argmax(up * xy[ids, 1])]
    return xy[best]


def _finalize(name: str, value: float | None) -> SingleMeasurement:
    lo, hi = mcfg.ranges_cm[name]
    ok = value is not None and np.isfinite(value) and lo <= value <= hi
    if value is not None and not ok:
        logger.debug("Measurement %s=%.2f cm rejected (range %.0f–%.0f)", name, value, lo, hi)
    return SingleMeasurement(
        name=name,
        value_cm=round(float(value), 2) if ok else 0.0,
        valid=bool(ok),
        range_cm=(lo, hi),
    )


def _package(
    raw: dict[str, float | None],
    cm_per_pixel: float | None,
    issues: list[DataIssue],
) -> MeasurementSet:
    measurements = [_finalize(name, raw.get(name)) for name in MEASUREMENT_NAMES]
    if any(raw.get(name) is None for name in MEASUREMENT_NAMES):
        if DataIssue.input_invalid not in issues and DataIssue.calibration_undefined not in issues:
            issues.append(DataIssue.input_invalid)
    return MeasurementSet(measurements=measurements, cm_per_pixel=cm_per_pixel, issues=issues)


# ── Single view ────────────────────────────────────────────────────────

def measure_raw(
    keypoints: DenseKeypointSet,
    calibration: CalibrationContext,
    mask=None,
    view: int = 0,
) -> tuple[dict[str, float | None], float | None]:
    """
    Unvalidated measurement values in cm (None where landmarks are missing).

    Returns (values, cm_per_pixel); cm_per_pixel is None when calibration
    is undefined, in which case every value is None.
    """
    if calibration is None:
        raise ValueError("A CalibrationContext is required")

    size = calibration.size_for(view)
    w, h = float(size.width), float(size.height)
    xy, _, valid = to_arrays(keypoints)

    body_px = body_pixel_height(xy, valid, size.height)
    if not np.isfinite(body_px) or body_px <= 0:
        return {name: None for name in MEASUREMENT_NAMES}, None

    cmpp = calibration.height_cm / body_px

    def width(p, q):
        return abs(float(p[0] - q[0])) * w * cmpp

    def height(p, q):
        return abs(float(p[1] - q[1])) * h * cmpp

    def diagonal(p, q):
        return float(np.hypot((p[0] - q[0]) * w, (p[1] - q[1]) * h)) * cmpp

    values: dict[str, float | None] = {}

    pair = _pair(xy, valid, "left_shoulder", "right_shoulder")
    values["shoulder_width"] = width(*pair) if pair else None

    values["arm_length"] = _mean_over_sides([
        _chain_length(xy, valid, (f"{s}_shoulder", f"{s}_elbow", f"{s}_wrist"), diagonal)
        for s in ("left", "right")
    ])
    values["leg_length"] = _mean_over_sides([
        _chain_length(xy, valid, (f"{s}_hip", f"{s}_knee", f"{s}_ankle"), diagonal)
        for s in ("left", "right")
    ])

    pair = _pair(xy, valid, "left_hip", "right_hip")
    values["hip_width"] = width(*pair) if pair else None

    hip_mid = midpoint(xy, valid, idx("left_hip"), idx("right_hip"))
    top = _highest_detected(xy, valid, up=-1)
    values["upper_body_length"] = (
        height(hip_mid, top) if hip_mid is not None and top is not None else None
    )

    ankle_mid = midpoint(xy, valid, idx("left_ankle"), idx("right_ankle"))
    values["lower_body_length"] = (
        height(hip_mid, ankle_mid) if hip_mid is not None and ankle_mid is not None else None
    )

    pair = _pair(xy, valid, "left_eye_outer", "right_eye_outer")
    values["neck_width"] = width(*pair) if pair else None

    thighs = estimate_thigh_widths(xy, valid, w, select_strategies(mask))
    values["thigh_width"] = (
        float(np.mean(list(thighs.values()))) * cmpp if thighs else None
    )

    return values, cmpp


def compute_measurements(
    keypoints: DenseKeypointSet,
    calibration: CalibrationContext,
    mask=None,
    view: int = 0,
) -> MeasurementSet:
    """
    Calibrated linear body measurements from one dense keypoint set.

    ``mask`` is an optional foreground grid (values in [0, 1]) of any
    resolution covering the same image.
    """
    values, cmpp = measure_raw(keypoints, calibration, mask=mask, view=view)

    issues: list[DataIssue] = []
    if cmpp is None:
        logger.warning(
            "Calibration undefined (zero body pixel height), all measurements invalid"
        )
        issues.append(DataIssue.calibration_undefined)

    result = _package(values, cmpp, issues)
    logger.info(
        "Measurements: %d/%d valid, cm/px=%s",
        result.n_valid, len(MEASUREMENT_NAMES),
        f"{cmpp:.4f}" if cmpp is not None else "undefined",
    )
    return result


# ── 3D variant ─────────────────────────────────────────────────────────

def keypoints3d_to_arrays(keypoints3d: Sequence[Keypoint3D]) -> tuple[np.ndarray, np.ndarray]:
    """(N, 3) coordinates and (N,) validity, rejecting non-finite points."""
    xyz = np.array([(k.x, k.y, k.z) for k in keypoints3d], dtype=np.float64).reshape(-1, 3)
    valid = np.array([k.valid for k in keypoints3d], dtype=bool)
    valid &= np.all(np.isfinite(xyz), axis=1)
    return xyz, valid


def compute_measurements_3d(keypoints3d: Sequence[Keypoint3D]) -> MeasurementSet:
    """Same eight measurements from triangulated keypoints in centimeters."""
    xyz, valid = keypoints3d_to_arrays(keypoints3d)

    def width(p, q):
        return abs(float(p[0] - q[0]))

    def height(p, q):
        return abs(float(p[1] - q[1]))

    def length(p, q):
        return float(np.linalg.norm(p - q))

    values: dict[str, float | None] = {}

    pair = _pair(xyz, valid, "left_shoulder", "right_shoulder")
    values["shoulder_width"] = width(*pair) if pair else None

    values["arm_length"] = _mean_over_sides([
        _chain_length(xyz, valid, (f"{s}_shoulder", f"{s}_elbow", f"{s}_wrist"), length)
        for s in ("left", "right")
    ])
    values["leg_length"] = _mean_over_sides([
        _chain_length(xyz, valid, (f"{s}_hip", f"{s}_knee", f"{s}_ankle"), length)
        for s in ("left", "right")
    ])

    pair = _pair(xyz, valid, "left_hip", "right_hip")
    values["hip_width"] = width(*pair) if pair else None

    hip_mid = midpoint(xyz, valid, idx("left_hip"), idx("right_hip"))
    top = _highest_detected(xyz, valid, up=+1)
    values["upper_body_length"] = (
        height(hip_mid, top) if hip_mid is not None and top is not None else None
    )

    ankle_mid = midpoint(xyz, valid, idx("left_ankle"), idx("right_ankle"))
    values["lower_body_length"] = (
        height(hip_mid, ankle_mid) if hip_mid is not None and ankle_mid is not None else None
    )

    pair = _pair(xyz, valid, "left_eye_outer", "right_eye_outer")
    values["neck_width"] = width(*pair) if pair else None

    thighs = estimate_thigh_widths(xyz, valid, 1.0, [ProportionFallback()])
    values["thigh_width"] = float(np.mean(list(thighs.values()))) if thighs else None

    issues: list[DataIssue] = []
    if not np.any(valid):
        issues.append(DataIssue.input_invalid)

    result = _package(values, None, issues)
    logger.info("3D measurements: %d/%d valid", result.n_valid, len(MEASUREMENT_NAMES))
    return result
