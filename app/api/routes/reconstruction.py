"""
Multi-view reconstruction endpoint.

Takes three detector results (front, left, right) and the user's height,
triangulates the keypoints, builds the skeleton mesh and measures in 3D.
The mesh is returned base64-encoded; it is absent when unbuildable.
"""

from __future__ import annotations

import base64
import logging
import time

from fastapi import APIRouter, HTTPException

from app.core.pipeline import run_scan
from app.models.schemas import ErrorResponse, MultiViewScan, ScanResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "",
    response_model=ScanResponse,
    responses={422: {"model": ErrorResponse}},
)
def reconstruct(req: MultiViewScan):
    t0 = time.perf_counter()

    try:
        result = run_scan(req)
    except ValueError as exc:
        logger.exception("Reconstruction failed")
        raise HTTPException(422, f"Reconstruction pipeline error: {exc}") from exc

    elapsed = time.perf_counter() - t0
    mesh_b64 = base64.b64encode(result.mesh_glb).decode("ascii") if result.mesh_glb else None

    logger.info(
        "Reconstruction complete in %.3f s (mesh %d bytes)",
        elapsed, len(result.mesh_glb or b""),
    )

    return ScanResponse(
        mode=result.mode,
        validations=result.validations,
        measurements=result.measurements,
        issues=result.issues,
        circumferences=result.circumferences,
        keypoints_3d=result.keypoints_3d,
        mesh_glb_base64=mesh_b64,
        processing_time_s=round(elapsed, 3),
    )
