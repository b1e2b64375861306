"""
Sparse → dense keypoint expansion.

Four passes over the dense layout (see ``app.core.landmarks``):

  1. Direct copy of every sparse landmark into the slot with the same index.
  2. Segment interpolation: for a segment (a, b) with k interior points,
         pᵢ = a + (i / (k + 1)) · (b − a),   i = 1 … k
     only when both endpoints are valid.
  3. Anatomical extrapolation from fixed body-proportion rules, only when
     every anchor the rule touches is valid (midpoint anchors need both
     members).
  4. Fallback: any slot still unresolved copies the position of the
     nearest resolved slot (by index distance) with confidence 0 and
     visible = False, so it can never pass a validity check.

Invalid anchors propagate: a derived point is never fabricated from an
anchor that is itself invalid.  Derived points inherit the minimum anchor
confidence (times a decay factor) and are visible only if every anchor is.
"""

from __future__ import annotations

import logging

import numpy as np

from app.config import config
from app.core.landmarks import (
    DENSE_INDEX,
    EXTRAPOLATIONS,
    SEGMENTS,
    SPARSE_COUNT,
    Ref,
    is_landmark_valid,
)
from app.models.schemas import DenseKeypointSet, Landmark, SparseLandmarkSet

logger = logging.getLogger(__name__)

ecfg = config.expansion


def _ref_indices(ref: Ref) -> tuple[int, ...]:
    if isinstance(ref, str):
        return (DENSE_INDEX[ref],)
    return (DENSE_INDEX[ref[0]], DENSE_INDEX[ref[1]])


class _DenseBuilder:
    """Mutable working state for one expansion call."""

    def __init__(self, n: int):
        self.n = n
        self.xy = np.zeros((n, 2), dtype=np.float64)
        self.conf = np.zeros(n, dtype=np.float64)
        self.visible = np.zeros(n, dtype=bool)
        self.resolved = np.zeros(n, dtype=bool)
        self.valid = np.zeros(n, dtype=bool)

    def anchors_valid(self, indices: tuple[int, ...]) -> bool:
        return all(i < self.n and self.valid[i] for i in indices)

    def resolve(self, ref: Ref) -> np.ndarray:
        ids = _ref_indices(ref)
        return self.xy[list(ids)].mean(axis=0)

    def set(self, i: int, xy: np.ndarray, anchors: tuple[int, ...], decay: float) -> None:
        if i >= self.n:
            return
        self.xy[i] = xy
        self.conf[i] = float(np.min(self.conf[list(anchors)])) * decay
        self.visible[i] = bool(np.all(self.visible[list(anchors)]))
        self.resolved[i] = True
        self.valid[i] = True


def expand_keypoints(
    sparse: SparseLandmarkSet,
    n: int | None = None,
) -> DenseKeypointSet:
    """
    Expand a sparse landmark set to exactly ``n`` dense keypoints.

    Sparse landmarks with an index ≥ n are ignored; layout slots ≥ n are
    never generated.
    """
    n = ecfg.dense_count if n is None else n
    if n <= 0:
        raise ValueError(f"Target cardinality must be positive, got {n}")

    b = _DenseBuilder(n)

    # 1. Direct mapping
    for lm in sparse.landmarks:
        if lm.index >= n:
            continue
        b.xy[lm.index] = (lm.x, lm.y)
        b.conf[lm.index] = lm.confidence
        b.visible[lm.index] = lm.visible
        b.resolved[lm.index] = True
        b.valid[lm.index] = is_landmark_valid(lm)

    # Invalid direct copies keep their position but carry no confidence
    invalid_direct = b.resolved & ~b.valid
    b.conf[invalid_direct] = 0.0
    b.visible[invalid_direct] = False

    # 2. Segment interpolation
    slot = SPARSE_COUNT
    n_interp = 0
    for start, end, count in SEGMENTS:
        ia, ib = DENSE_INDEX[start], DENSE_INDEX[end]
        ok = b.anchors_valid((ia, ib))
        for k in range(count):
            if ok:
                t = (k + 1) / (count + 1)
                b.set(slot, b.xy[ia] + t * (b.xy[ib] - b.xy[ia]), (ia, ib),
                      ecfg.interpolated_confidence_decay)
                n_interp += 1
            slot += 1

    # 3. Anatomical extrapolation
    n_extrap = 0
    for name, a, c, t in EXTRAPOLATIONS:
        anchors = _ref_indices(a) + _ref_indices(c)
        if b.anchors_valid(anchors):
            pa, pc = b.resolve(a), b.resolve(c)
            b.set(DENSE_INDEX[name], pa + t * (pc - pa), anchors,
                  ecfg.extrapolated_confidence_decay)
            n_extrap += 1

    # 4. Fallback
    n_fallback = _fill_fallback(b)

    logger.debug(
        "Expanded %d sparse landmarks → %d slots "
        "(interpolated=%d, extrapolated=%d, fallback=%d)",
        len(sparse.landmarks), n, n_interp, n_extrap, n_fallback,
    )

    return DenseKeypointSet(landmarks=[
        Landmark(
            index=i,
            x=float(b.xy[i, 0]),
            y=float(b.xy[i, 1]),
            confidence=float(np.clip(b.conf[i], 0.0, 1.0)),
            visible=bool(b.visible[i]),
        )
        for i in range(n)
    ])


def _fill_fallback(b: _DenseBuilder) -> int:
    """Copy the nearest valid slot into every unresolved one.  Returns count filled."""
    missing = np.where(~b.resolved)[0]
    if len(missing) == 0:
        return 0

    valid_ids = np.where(b.valid)[0]
    for i in missing:
        if len(valid_ids):
            nearest = valid_ids[np.argmin(np.abs(valid_ids - i))]
            b.xy[i] = b.xy[nearest]
        b.conf[i] = 0.0
        b.visible[i] = False
        b.resolved[i] = True
    return len(missing)
