"""
Scan orchestration.

A request is one of two variants and the variant alone decides which
components run:

  SingleViewScan   expand → validate → 2D measurements
  MultiViewScan    expand ×3 → validate ×3 → triangulate → mesh
                   → 3D measurements + circumferences

Every stage is timed; the durations come back in ``ScanResult.timings_ms``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pydantic import TypeAdapter

from app.core.circumference import compute_circumferences
from app.core.keypoint_expansion import expand_keypoints
from app.core.measurement_engine import compute_measurements, compute_measurements_3d
from app.core.mesh_builder import build_mesh
from app.core.pose_validation import validate_pose
from app.core.triangulation import triangulate_views
from app.models.schemas import (
    CalibrationContext,
    DataIssue,
    MultiViewScan,
    ScanRequest,
    ScanResult,
    SingleViewScan,
)

logger = logging.getLogger(__name__)

_request_adapter: TypeAdapter[ScanRequest] = TypeAdapter(ScanRequest)


def parse_scan_request(data: Any) -> SingleViewScan | MultiViewScan:
    """Validate a plain dict (e.g. decoded JSON) into the matching variant."""
    return _request_adapter.validate_python(data)


@contextmanager
def _stage(timings: dict[str, float], name: str) -> Iterator[None]:
    t0 = time.perf_counter()
    try:
        yield
    finally:
        timings[name] = round((time.perf_counter() - t0) * 1000.0, 3)
        logger.info("Stage %-14s %8.1f ms", name, timings[name])


def _merge_issues(*groups: list[DataIssue]) -> list[DataIssue]:
    merged: list[DataIssue] = []
    for group in groups:
        for issue in group:
            if issue not in merged:
                merged.append(issue)
    return merged


def _run_single(request: SingleViewScan) -> ScanResult:
    timings: dict[str, float] = {}
    view = request.view

    with _stage(timings, "expansion"):
        dense = expand_keypoints(view.landmarks)
    with _stage(timings, "validation"):
        validation = validate_pose(dense, has_multiple_people=view.has_multiple_people)
    with _stage(timings, "measurement"):
        calibration = CalibrationContext(
            height_cm=request.height_cm, image_sizes=[view.image_size],
        )
        measurements = compute_measurements(dense, calibration, mask=view.mask)

    if not validation.is_valid:
        logger.info("Single-view pose failed validation: %s", validation.message)

    return ScanResult(
        mode="single",
        validations=[validation],
        measurements=measurements,
        issues=_merge_issues(measurements.issues),
        timings_ms=timings,
    )


def _run_multi(request: MultiViewScan) -> ScanResult:
    timings: dict[str, float] = {}
    views = request.views

    with _stage(timings, "expansion"):
        dense = [expand_keypoints(v.landmarks) for v in views]
    with _stage(timings, "validation"):
        validations = [
            validate_pose(d, has_multiple_people=v.has_multiple_people)
            for d, v in zip(dense, views)
        ]

    calibration = CalibrationContext(
        height_cm=request.height_cm, image_sizes=[v.image_size for v in views],
    )
    with _stage(timings, "triangulation"):
        tri = triangulate_views(dense, calibration, request.camera_poses)
    with _stage(timings, "mesh"):
        mesh = build_mesh(tri.keypoints)
    with _stage(timings, "measurement"):
        measurements = compute_measurements_3d(tri.keypoints)
        circumferences = compute_circumferences(tri.keypoints)

    issues: list[DataIssue] = []
    if tri.n_degenerate:
        issues.append(DataIssue.geometry_degenerate)
    if not mesh:
        issues.append(DataIssue.mesh_unbuildable)

    return ScanResult(
        mode="multi",
        validations=validations,
        measurements=measurements,
        issues=_merge_issues(measurements.issues, circumferences.issues, issues),
        circumferences=circumferences,
        keypoints_3d=tri.keypoints,
        mesh_glb=mesh,
        timings_ms=timings,
    )


def run_scan(request: SingleViewScan | MultiViewScan) -> ScanResult:
    """Run the components selected by the request variant."""
    t0 = time.perf_counter()
    if isinstance(request, SingleViewScan):
        result = _run_single(request)
    elif isinstance(request, MultiViewScan):
        result = _run_multi(request)
    else:
        raise TypeError(f"Unsupported scan request: {type(request).__name__}")
    result.timings_ms["total"] = round((time.perf_counter() - t0) * 1000.0, 3)
    logger.info(
        "Scan (%s) done in %.1f ms: %d/%d measurements valid, issues=%s",
        result.mode, result.timings_ms["total"],
        result.measurements.n_valid, len(result.measurements.measurements),
        [i.value for i in result.issues] or "none",
    )
    return result
