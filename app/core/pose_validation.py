"""
Single-person, full-body pose validation.

Rules, evaluated in order; the first failing rule supplies the message:

  • has_person     — at least ``min_landmarks`` valid *detected* slots
                     (the first SPARSE_COUNT) with confidence ≥ detect
                     threshold.  Generated slots inherit their anchors'
                     confidence and are not counted.
  • is_full_body   — every body region (head / upper body / lower body)
                     has at least one valid slot with confidence ≥ the
                     region threshold.
  • multiple people — reported by the upstream detector and passed
                     through; it always vetoes an otherwise passing pose.

``confidence`` is the mean confidence over valid slots (0 if none).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

import numpy as np

from app.config import config
from app.core.landmarks import REGIONS, SPARSE_COUNT, to_arrays, valid_mask
from app.models.schemas import DenseKeypointSet, ValidationResult

logger = logging.getLogger(__name__)

vcfg = config.validation


def validate_pose(
    keypoints: DenseKeypointSet,
    confidences: Sequence[float] | None = None,
    has_multiple_people: bool = False,
    regions: Mapping[str, Sequence[int]] | None = None,
) -> ValidationResult:
    """
    Judge whether ``keypoints`` show one fully visible person.

    ``confidences``, when given, replaces the per-landmark confidences
    (same length as the dense set).
    """
    regions = regions or REGIONS
    xy, conf, valid = to_arrays(keypoints)

    if confidences is not None:
        if len(confidences) != len(conf):
            raise ValueError(
                f"Got {len(confidences)} confidences for {len(conf)} keypoints"
            )
        conf = np.asarray(confidences, dtype=np.float64)
        valid = valid_mask(xy, conf)

    detected = (valid & (conf >= vcfg.detect_threshold))[:SPARSE_COUNT]
    n_detected = int(np.sum(detected))
    has_person = n_detected >= vcfg.min_landmarks

    missing_regions = [
        name for name, ids in regions.items()
        if not _region_visible(ids, valid, conf)
    ]
    is_full_body = not missing_regions

    mean_conf = float(np.mean(conf[valid])) if np.any(valid) else 0.0

    if not has_person:
        message = vcfg.no_person_message
    elif missing_regions:
        message = vcfg.region_messages.get(
            missing_regions[0], f"{missing_regions[0]} not fully visible"
        )
    elif has_multiple_people:
        message = vcfg.multiple_people_message
    else:
        message = ""

    is_valid = has_person and is_full_body and not has_multiple_people

    logger.debug(
        "Pose validation: detected=%d, missing_regions=%s, multiple=%s → valid=%s",
        n_detected, missing_regions, has_multiple_people, is_valid,
    )

    return ValidationResult(
        has_person=has_person,
        is_full_body=is_full_body,
        has_multiple_people=has_multiple_people,
        is_valid=is_valid,
        confidence=round(float(np.clip(mean_conf, 0.0, 1.0)), 4),
        message=message,
    )


def _region_visible(ids: Sequence[int], valid: np.ndarray, conf: np.ndarray) -> bool:
    ids = [i for i in ids if i < len(valid)]
    if not ids:
        return False
    return bool(np.any(valid[ids] & (conf[ids] >= vcfg.region_threshold)))
