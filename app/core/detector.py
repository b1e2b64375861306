"""
Landmark detector interface.

The detection model is owned by the caller: it is constructed once,
passed in, and never stored by the core.  Any object with a matching
``detect`` method works (a MediaPipe/BlazePose wrapper in production, a
canned fixture in tests).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from app.models.schemas import ImageSize, SparseLandmarkSet, ViewCapture

logger = logging.getLogger(__name__)


class Detection(BaseModel):
    """One detector pass over one oriented, resized image."""
    landmarks: SparseLandmarkSet
    image_size: ImageSize
    mask: list[list[float]] | None = None
    has_multiple_people: bool = False


@runtime_checkable
class LandmarkDetector(Protocol):
    def detect(self, image: Any) -> Detection:
        ...


def capture_views(detector: LandmarkDetector, images: Iterable[Any]) -> list[ViewCapture]:
    """Run ``detector`` over each image and package the results as views."""
    views = []
    for i, image in enumerate(images):
        detection = detector.detect(image)
        logger.debug(
            "View %d: %d landmarks, %dx%d, mask=%s",
            i, len(detection.landmarks.landmarks),
            detection.image_size.width, detection.image_size.height,
            detection.mask is not None,
        )
        views.append(ViewCapture(
            landmarks=detection.landmarks,
            image_size=detection.image_size,
            mask=detection.mask,
            has_multiple_people=detection.has_multiple_people,
        ))
    return views
