"""
Single-view measurement endpoint.

Takes one detector result plus the user's height and returns the
calibrated linear measurements with per-item validity.
"""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, HTTPException

from app.core.pipeline import run_scan
from app.models.schemas import ErrorResponse, ScanResponse, SingleViewScan

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "",
    response_model=ScanResponse,
    responses={422: {"model": ErrorResponse}},
)
def compute_measurements(req: SingleViewScan):
    """Measure a single front view."""
    t0 = time.perf_counter()

    try:
        result = run_scan(req)
    except ValueError as exc:
        logger.exception("Single-view measurement failed")
        raise HTTPException(422, f"Measurement pipeline error: {exc}") from exc

    elapsed = time.perf_counter() - t0
    logger.info("Measurements complete in %.3f s", elapsed)

    return ScanResponse(
        mode=result.mode,
        validations=result.validations,
        measurements=result.measurements,
        issues=result.issues,
        processing_time_s=round(elapsed, 3),
    )
