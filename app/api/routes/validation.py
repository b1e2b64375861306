"""
Pose validation endpoint.

Expands one detector result and reports whether it shows a single,
fully visible person.  Cheap enough to call on every camera frame.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from app.core.keypoint_expansion import expand_keypoints
from app.core.pose_validation import validate_pose
from app.models.schemas import ErrorResponse, ValidationRequest, ValidationResult

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "",
    response_model=ValidationResult,
    responses={422: {"model": ErrorResponse}},
)
def check_pose(req: ValidationRequest):
    try:
        dense = expand_keypoints(req.view.landmarks)
        result = validate_pose(dense, has_multiple_people=req.view.has_multiple_people)
    except ValueError as exc:
        logger.exception("Pose validation failed")
        raise HTTPException(422, f"Validation error: {exc}") from exc

    logger.info("Pose validation: valid=%s (%s)", result.is_valid, result.message or "ok")
    return result
