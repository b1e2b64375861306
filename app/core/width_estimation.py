"""
Thigh width estimation strategies.

Two interchangeable strategies share one signature::

    estimate(side, xy, valid, scale_x) -> width | None

``xy`` are keypoint coordinates (normalized image coordinates in 2D, or
centimeters in 3D), ``scale_x`` converts an x-extent in those units to the
caller's output unit (image pixels in 2D, 1.0 in 3D).

MaskEdgeScan
────────────
Scans the foreground mask row at the vertical midpoint between hip and
knee.  The foreground run containing (or nearest to) the thigh centre
column is found with connected-component labelling, then clipped at the
body midline so two touching thighs are not counted as one.

ProportionFallback
──────────────────
Thigh width = ratio × lateral hip-landmark spread.  Needs both hips plus
the knee on the measured side.
"""

from __future__ import annotations

import logging
from typing import Protocol

import numpy as np
from scipy import ndimage

from app.config import config
from app.core.landmarks import idx, midpoint, point

logger = logging.getLogger(__name__)

mcfg = config.measurement

SIDES = ("left", "right")


class ThighWidthStrategy(Protocol):
    name: str

    def estimate(
        self, side: str, xy: np.ndarray, valid: np.ndarray, scale_x: float,
    ) -> float | None:
        ...


def as_mask(mask) -> np.ndarray:
    """Coerce a mask to a 2-D float array; reject anything else."""
    arr = np.asarray(mask, dtype=np.float64)
    if arr.ndim != 2 or arr.size == 0:
        raise ValueError(f"Foreground mask must be a non-empty 2-D grid, got shape {arr.shape}")
    return arr


class MaskEdgeScan:
    name = "mask_edge_scan"

    def __init__(self, mask, threshold: float | None = None):
        self.mask = as_mask(mask)
        self.threshold = threshold if threshold is not None else mcfg.mask_threshold

    def estimate(
        self, side: str, xy: np.ndarray, valid: np.ndarray, scale_x: float,
    ) -> float | None:
        hip = point(xy, valid, idx(f"{side}_hip"))
        knee = point(xy, valid, idx(f"{side}_knee"))
        if hip is None or knee is None:
            return None

        mh, mw = self.mask.shape
        row_norm = (hip[1] + knee[1]) / 2.0
        col_norm = (hip[0] + knee[0]) / 2.0
        r = int(row_norm * mh)
        c = int(np.clip(col_norm * mw, 0, mw - 1))
        if not 0 <= r < mh:
            return None

        labels, n = ndimage.label(self.mask[r] > self.threshold)
        if n == 0:
            return None

        label = labels[c]
        if label == 0:
            fg = np.nonzero(labels)[0]
            label = labels[fg[np.argmin(np.abs(fg - c))]]

        run = np.nonzero(labels == label)[0]
        lo, hi = float(run.min()), float(run.max() + 1)

        center = midpoint(xy, valid, idx("left_hip"), idx("right_hip"))
        if center is not None:
            center_col = center[0] * mw
            if hip[0] >= center[0]:
                lo = max(lo, center_col)
            else:
                hi = min(hi, center_col)

        width_mask_px = hi - lo
        if width_mask_px <= 0:
            return None
        return width_mask_px / mw * scale_x


class ProportionFallback:
    name = "proportion_fallback"

    def __init__(self, ratio: float | None = None):
        self.ratio = ratio or mcfg.thigh_hip_ratio

    def estimate(
        self, side: str, xy: np.ndarray, valid: np.ndarray, scale_x: float,
    ) -> float | None:
        left_hip = point(xy, valid, idx("left_hip"))
        right_hip = point(xy, valid, idx("right_hip"))
        knee = point(xy, valid, idx(f"{side}_knee"))
        if left_hip is None or right_hip is None or knee is None:
            return None
        return self.ratio * abs(float(left_hip[0] - right_hip[0])) * scale_x


def select_strategies(mask=None) -> list[ThighWidthStrategy]:
    """Mask scan first when a mask is supplied, proportion fallback always."""
    if mask is None:
        return [ProportionFallback()]
    return [MaskEdgeScan(mask), ProportionFallback()]


def estimate_thigh_widths(
    xy: np.ndarray,
    valid: np.ndarray,
    scale_x: float,
    strategies: list[ThighWidthStrategy],
) -> dict[str, float]:
    """Per-side widths from the first strategy that succeeds; missing sides omitted."""
    widths: dict[str, float] = {}
    for side in SIDES:
        for strategy in strategies:
            w = strategy.estimate(side, xy, valid, scale_x)
            if w is not None and np.isfinite(w) and w > 0:
                widths[side] = float(w)
                logger.debug("Thigh width (%s) from %s: %.2f", side, strategy.name, w)
                break
    return widths
