"""
Canonical landmark indices and the dense keypoint layout.

Sparse set
──────────
The upstream detector reports the 33-point BlazePose topology.  Those 33
indices are copied verbatim into dense slots 0–32, so every sparse index
is also a dense index.

Dense layout
────────────
Slots 33 onward are generated, in this order:

  1. Segment interpolation — evenly spaced points strictly inside each
     segment of SEGMENTS, ``count`` points per segment.
  2. Anatomical extrapolation — one point per EXTRAPOLATIONS rule,
         p = a + t · (b − a)
     where ``a`` and ``b`` are references: a dense slot name, or a pair of
     names meaning their midpoint (computed on demand, never stored).
     t outside [0, 1] extrapolates past an anchor.

Anything left over up to the requested cardinality is a fallback slot.

Validity
────────
A slot is usable iff its coordinates are finite and inside the configured
range, it is not parked at the origin, and its confidence exceeds the
minimum.  Validity is always derived, never stored separately.
"""

from __future__ import annotations

from typing import Union

import numpy as np

from app.config import config
from app.models.schemas import DenseKeypointSet, Landmark

vcfg = config.validity


# ── Sparse (detector) topology ─────────────────────────────────────────

SPARSE_NAMES: list[str] = [
    "nose",
    "left_eye_inner", "left_eye", "left_eye_outer",
    "right_eye_inner", "right_eye", "right_eye_outer",
    "left_ear", "right_ear",
    "mouth_left", "mouth_right",
    "left_shoulder", "right_shoulder",
    "left_elbow", "right_elbow",
    "left_wrist", "right_wrist",
    "left_pinky", "right_pinky",
    "left_index", "right_index",
    "left_thumb", "right_thumb",
    "left_hip", "right_hip",
    "left_knee", "right_knee",
    "left_ankle", "right_ankle",
    "left_heel", "right_heel",
    "left_foot_index", "right_foot_index",
]
SPARSE_COUNT = len(SPARSE_NAMES)

Ref = Union[str, tuple[str, str]]

# (start, end, number of interior points)
SEGMENTS: list[tuple[str, str, int]] = [
    ("left_shoulder", "left_elbow", 4),
    ("left_elbow", "left_wrist", 4),
    ("right_shoulder", "right_elbow", 4),
    ("right_elbow", "right_wrist", 4),
    ("left_hip", "left_knee", 5),
    ("left_knee", "left_ankle", 5),
    ("right_hip", "right_knee", 5),
    ("right_knee", "right_ankle", 5),
    ("left_shoulder", "left_hip", 5),
    ("right_shoulder", "right_hip", 5),
    ("left_ankle", "left_foot_index", 2),
    ("right_ankle", "right_foot_index", 2),
    ("left_shoulder", "right_shoulder", 5),
    ("left_hip", "right_hip", 5),
    ("left_ear", "left_shoulder", 3),
    ("right_ear", "right_shoulder", 3),
]

_SHOULDERS = ("left_shoulder", "right_shoulder")
_HIPS = ("left_hip", "right_hip")

# (name, a, b, t)
EXTRAPOLATIONS: list[tuple[str, Ref, Ref, float]] = [
    # head
    ("head_top", "nose", _SHOULDERS, -0.6),
    ("chin", "nose", _SHOULDERS, 0.3),
    ("neck", "nose", _SHOULDERS, 0.75),
    ("left_temple", "left_eye", "left_ear", 0.5),
    ("right_temple", "right_eye", "right_ear", 0.5),
    ("forehead", "nose", ("left_eye", "right_eye"), 2.0),
    # torso
    ("suprasternal", _SHOULDERS, _HIPS, 0.05),
    ("chest_center", _SHOULDERS, _HIPS, 0.25),
    ("xiphoid", _SHOULDERS, _HIPS, 0.40),
    ("navel", _SHOULDERS, _HIPS, 0.65),
    ("pelvis_center", _SHOULDERS, _HIPS, 1.0),
    ("pubis", _SHOULDERS, _HIPS, 1.12),
    ("left_chest", "chest_center", "left_shoulder", 0.6),
    ("right_chest", "chest_center", "right_shoulder", 0.6),
    ("left_waist", "navel", "left_hip", 0.7),
    ("right_waist", "navel", "right_hip", 0.7),
    # hands
    ("left_palm", "left_wrist", "left_index", 0.5),
    ("right_palm", "right_wrist", "right_index", 0.5),
    ("left_fingertip", "left_wrist", "left_index", 1.4),
    ("right_fingertip", "right_wrist", "right_index", 1.4),
    ("left_hand_center", "left_wrist", ("left_pinky", "left_index"), 0.5),
    ("right_hand_center", "right_wrist", ("right_pinky", "right_index"), 0.5),
    ("left_thumb_tip", "left_wrist", "left_thumb", 1.3),
    ("right_thumb_tip", "right_wrist", "right_thumb", 1.3),
    # feet and legs
    ("left_toe_tip", "left_heel", "left_foot_index", 1.15),
    ("right_toe_tip", "right_heel", "right_foot_index", 1.15),
    ("left_arch", "left_heel", "left_foot_index", 0.5),
    ("right_arch", "right_heel", "right_foot_index", 0.5),
    ("left_patella", "left_knee", "left_hip", 0.08),
    ("right_patella", "right_knee", "right_hip", 0.08),
    ("left_calf", "left_knee", "left_ankle", 0.3),
    ("right_calf", "right_knee", "right_ankle", 0.3),
    # shoulder girdle
    ("left_acromion", "right_shoulder", "left_shoulder", 1.08),
    ("right_acromion", "left_shoulder", "right_shoulder", 1.08),
    ("left_axilla", "left_shoulder", "left_hip", 0.18),
    ("right_axilla", "right_shoulder", "right_hip", 0.18),
]


def _build_dense_names() -> list[str]:
    names = list(SPARSE_NAMES)
    for start, end, count in SEGMENTS:
        names.extend(f"{start}__{end}_{k + 1}" for k in range(count))
    names.extend(rule[0] for rule in EXTRAPOLATIONS)
    return names


DENSE_NAMES: list[str] = _build_dense_names()
DENSE_INDEX: dict[str, int] = {name: i for i, name in enumerate(DENSE_NAMES)}
LAYOUT_COUNT = len(DENSE_NAMES)

# Body regions over the directly detected slots
REGIONS: dict[str, list[int]] = {
    "head": list(range(0, 11)),
    "upper_body": list(range(11, 23)),
    "lower_body": list(range(23, 33)),
}


def idx(name: str) -> int:
    return DENSE_INDEX[name]


# ── Validity ───────────────────────────────────────────────────────────

def is_landmark_valid(lm: Landmark) -> bool:
    """Single-landmark form of :func:`valid_mask`."""
    if not (np.isfinite(lm.x) and np.isfinite(lm.y)):
        return False
    if lm.confidence <= vcfg.min_confidence:
        return False
    if not (vcfg.coord_min <= lm.x <= vcfg.coord_max):
        return False
    if not (vcfg.coord_min <= lm.y <= vcfg.coord_max):
        return False
    return abs(lm.x) > vcfg.origin_epsilon or abs(lm.y) > vcfg.origin_epsilon


def to_arrays(keypoints: DenseKeypointSet) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Unpack a dense set into arrays.

    Returns
    -------
    xy : (N, 2) float — normalized coordinates
    confidence : (N,) float
    valid : (N,) bool
    """
    n = len(keypoints.landmarks)
    xy = np.zeros((n, 2), dtype=np.float64)
    conf = np.zeros(n, dtype=np.float64)
    for i, lm in enumerate(keypoints.landmarks):
        xy[i] = (lm.x, lm.y)
        conf[i] = lm.confidence
    return xy, conf, valid_mask(xy, conf)


def valid_mask(xy: np.ndarray, conf: np.ndarray) -> np.ndarray:
    finite = np.all(np.isfinite(xy), axis=1)
    with np.errstate(invalid="ignore"):
        in_range = np.all((xy >= vcfg.coord_min) & (xy <= vcfg.coord_max), axis=1)
        off_origin = np.any(np.abs(xy) > vcfg.origin_epsilon, axis=1)
    return finite & in_range & off_origin & (conf > vcfg.min_confidence)


def midpoint(xy: np.ndarray, valid: np.ndarray, a: int, b: int) -> np.ndarray | None:
    """Midpoint of two slots, or None if either is missing or invalid."""
    if a >= len(xy) or b >= len(xy) or not (valid[a] and valid[b]):
        return None
    return (xy[a] + xy[b]) / 2.0


def point(xy: np.ndarray, valid: np.ndarray, i: int) -> np.ndarray | None:
    if i >= len(xy) or not valid[i]:
        return None
    return xy[i]
