"""
Three-view triangulation on a fixed camera rig.

Camera model
────────────
World frame: centimeters, Y up, subject at the origin, subject facing −Z.
Camera k sits on a circle of radius r, rotated by θₖ about the vertical
axis, looking at the origin:

    X_cam = R_y(θₖ) · F · X_world + (0, 0, r)ᵀ,     F = diag(1, −1, 1)

F flips Y so camera rows grow downward like image rows.  Intrinsics are
the simplified pinhole derived from the horizontal field of view and the
view's own resolution:

    f = W / (2 tan(fov / 2)),   c = (W / 2, H / 2)
    P = K [R_y F | t]

Triangulation
─────────────
Linear DLT: each observation (u, v) of P contributes the rows
    u·P₃ − P₁,   v·P₃ − P₂
and the homogeneous solution is the right singular vector of the
smallest singular value, normalised by its 4th component.

Every view pair in which a keypoint is valid is triangulated and the
results are averaged.  Non-finite results, |w| ≈ 0, zero vectors and
points behind either camera are rejected; that keypoint alone is
marked invalid.

Scale
─────
The rig geometry is nominal, so the cloud is rescaled so that its
vertical extent equals the user's height, the same height-derived
calibration the 2D measurements use.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from itertools import combinations

import numpy as np
from scipy.spatial.transform import Rotation

from app.config import config
from app.core.landmarks import to_arrays
from app.models.schemas import (
    CalibrationContext,
    CameraPose,
    DenseKeypointSet,
    Keypoint3D,
    Landmark,
)

logger = logging.getLogger(__name__)

tcfg = config.triangulation

_FLIP_Y = np.diag([1.0, -1.0, 1.0])


# ── Camera model ───────────────────────────────────────────────────────

def default_camera_poses() -> list[CameraPose]:
    return [
        CameraPose(
            view_id=name,
            angle_deg=angle,
            radius_cm=tcfg.camera_radius_cm,
            fov_deg=tcfg.fov_deg,
        )
        for name, angle in zip(tcfg.camera_names, tcfg.camera_angles_deg)
    ]


def rotation(pose: CameraPose) -> np.ndarray:
    """World → camera rotation, including the Y flip."""
    r_y = Rotation.from_euler("y", pose.angle_deg, degrees=True).as_matrix()
    return r_y @ _FLIP_Y


def intrinsics(pose: CameraPose, width: int, height: int) -> np.ndarray:
    f = width / (2.0 * np.tan(np.radians(pose.fov_deg) / 2.0))
    return np.array([
        [f, 0.0, width / 2.0],
        [0.0, f, height / 2.0],
        [0.0, 0.0, 1.0],
    ])


def projection_matrix(pose: CameraPose, width: int, height: int) -> np.ndarray:
    """3 × 4 projection matrix P = K [R | t]."""
    t = np.array([[0.0], [0.0], [pose.radius_cm]])
    return intrinsics(pose, width, height) @ np.hstack([rotation(pose), t])


def project_point(
    point: np.ndarray, pose: CameraPose, width: int, height: int,
) -> tuple[np.ndarray, float]:
    """
    Project a world point into a view.

    Returns (normalized (x, y) in image coordinates, camera depth).
    """
    P = projection_matrix(pose, width, height)
    uvw = P @ np.append(np.asarray(point, dtype=np.float64), 1.0)
    depth = float(uvw[2])
    if abs(depth) < tcfg.min_homogeneous_w:
        return np.array([np.nan, np.nan]), depth
    return np.array([uvw[0] / depth / width, uvw[1] / depth / height]), depth


def project_keypoints(
    keypoints3d: Sequence[Keypoint3D],
    pose: CameraPose,
    width: int,
    height: int,
    confidence: float = 1.0,
) -> DenseKeypointSet:
    """Analytic projection of a 3D cloud into one view as a dense set."""
    landmarks = []
    for i, kp in enumerate(keypoints3d):
        xy, depth = project_point(np.array([kp.x, kp.y, kp.z]), pose, width, height)
        ok = kp.valid and depth > 0 and bool(np.all(np.isfinite(xy)))
        landmarks.append(Landmark(
            index=i,
            x=float(xy[0]) if ok else 0.0,
            y=float(xy[1]) if ok else 0.0,
            confidence=confidence if ok else 0.0,
            visible=ok,
        ))
    return DenseKeypointSet(landmarks=landmarks)


# ── Triangulation ──────────────────────────────────────────────────────

def triangulate_point(
    pixels: Sequence[np.ndarray],
    projections: Sequence[np.ndarray],
) -> np.ndarray | None:
    """DLT triangulation of one point from ≥ 2 pixel observations."""
    if len(pixels) < 2 or len(pixels) != len(projections):
        return None

    rows = []
    for (u, v), P in zip(pixels, projections):
        rows.append(u * P[2, :] - P[0, :])
        rows.append(v * P[2, :] - P[1, :])

    A = np.array(rows)
    if not np.all(np.isfinite(A)):
        return None
    _, _, vt = np.linalg.svd(A)
    X = vt[-1]

    if abs(X[3]) < tcfg.min_homogeneous_w:
        return None
    return X[:3] / X[3]


@dataclass
class TriangulationResult:
    """Triangulated cloud plus bookkeeping for diagnostics."""
    keypoints: list[Keypoint3D]
    n_degenerate: int     # observed in ≥ 2 views but rejected
    n_unobserved: int     # fewer than 2 valid views
    scale_factor: float


def _in_front(X: np.ndarray, poses: Sequence[CameraPose]) -> bool:
    for pose in poses:
        depth = (rotation(pose) @ X)[2] + pose.radius_cm
        if depth <= 0:
            return False
    return True


def _check_inputs(
    views: Sequence[DenseKeypointSet],
    poses: Sequence[CameraPose],
    calibration: CalibrationContext,
) -> None:
    if calibration is None:
        raise ValueError("A CalibrationContext is required")
    if len(views) != 3:
        raise ValueError(f"Triangulation needs exactly 3 views, got {len(views)}")
    if len(poses) != 3:
        raise ValueError(f"Triangulation needs exactly 3 camera poses, got {len(poses)}")
    if len(calibration.image_sizes) < 3:
        raise ValueError(
            f"Calibration has {len(calibration.image_sizes)} image sizes for 3 views"
        )
    counts = {len(v) for v in views}
    if len(counts) != 1:
        raise ValueError(f"Views have different keypoint counts: {sorted(counts)}")


def triangulate_views(
    views: Sequence[DenseKeypointSet],
    calibration: CalibrationContext,
    poses: Sequence[CameraPose] | None = None,
    scale_to_height: bool = True,
) -> TriangulationResult:
    poses = list(poses) if poses is not None else default_camera_poses()
    _check_inputs(views, poses, calibration)

    n = len(views[0])
    sizes = [calibration.size_for(k) for k in range(3)]
    projections = [projection_matrix(p, s.width, s.height) for p, s in zip(poses, sizes)]

    pixels, valids = [], []
    for view, size in zip(views, sizes):
        xy, _, valid = to_arrays(view)
        pixels.append(xy * np.array([size.width, size.height]))
        valids.append(valid)

    points = np.zeros((n, 3))
    ok = np.zeros(n, dtype=bool)
    n_degenerate = n_unobserved = 0

    for i in range(n):
        pairs = [(a, b) for a, b in combinations(range(3), 2) if valids[a][i] and valids[b][i]]
        if not pairs:
            n_unobserved += 1
            continue

        estimates = []
        for a, b in pairs:
            X = triangulate_point(
                [pixels[a][i], pixels[b][i]], [projections[a], projections[b]],
            )
            if X is None or not np.all(np.isfinite(X)):
                continue
            if np.linalg.norm(X) < tcfg.min_point_norm:
                continue
            if not _in_front(X, [poses[a], poses[b]]):
                continue
            estimates.append(X)

        if not estimates:
            n_degenerate += 1
            continue
        points[i] = np.mean(estimates, axis=0)
        ok[i] = True

    scale = 1.0
    if scale_to_height and np.sum(ok) >= 2:
        extent = float(np.ptp(points[ok, 1]))
        if extent > 0:
            scale = calibration.height_cm / extent
        else:
            logger.warning("Triangulated cloud has zero vertical extent, scale left at 1.0")
    points[ok] *= scale

    if n_degenerate:
        logger.warning("Triangulation: %d keypoints rejected as degenerate", n_degenerate)
    logger.info(
        "Triangulated %d/%d keypoints (unobserved=%d, degenerate=%d, scale=%.4f)",
        int(np.sum(ok)), n, n_unobserved, n_degenerate, scale,
    )

    keypoints = [
        Keypoint3D(x=float(p[0]), y=float(p[1]), z=float(p[2]), valid=bool(v))
        if v else Keypoint3D()
        for p, v in zip(points, ok)
    ]
    return TriangulationResult(
        keypoints=keypoints,
        n_degenerate=n_degenerate,
        n_unobserved=n_unobserved,
        scale_factor=scale,
    )


def triangulate(
    views: Sequence[DenseKeypointSet],
    calibration: CalibrationContext,
    poses: Sequence[CameraPose] | None = None,
) -> list[Keypoint3D]:
    """Three dense views → one Keypoint3D per slot."""
    return triangulate_views(views, calibration, poses).keypoints


def reprojection_error(
    keypoints3d: Sequence[Keypoint3D],
    views: Sequence[DenseKeypointSet],
    calibration: CalibrationContext,
    poses: Sequence[CameraPose] | None = None,
) -> list[float]:
    """Mean pixel distance per view between observations and reprojections."""
    poses = list(poses) if poses is not None else default_camera_poses()
    errors = []
    for k, (view, pose) in enumerate(zip(views, poses)):
        size = calibration.size_for(k)
        xy, _, valid = to_arrays(view)
        dists = []
        for i, kp in enumerate(keypoints3d):
            if not kp.valid or i >= len(xy) or not valid[i]:
                continue
            proj, depth = project_point(np.array([kp.x, kp.y, kp.z]), pose, size.width, size.height)
            if depth <= 0:
                continue
            d = (proj - xy[i]) * np.array([size.width, size.height])
            dists.append(float(np.hypot(*d)))
        errors.append(float(np.mean(dists)) if dists else float("nan"))
    return errors
