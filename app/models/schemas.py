"""
Pydantic models for API request/response and internal data transfer.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator


# ── Enums ──────────────────────────────────────────────────────────────

class DataIssue(str, Enum):
    """Data-quality conditions reported alongside (never instead of) results."""
    input_invalid = "input_invalid"
    calibration_undefined = "calibration_undefined"
    geometry_degenerate = "geometry_degenerate"
    mesh_unbuildable = "mesh_unbuildable"


# ── Landmarks ──────────────────────────────────────────────────────────

class Landmark(BaseModel):
    """
    One anatomical point in normalized image coordinates.

    Position and confidence are not range-constrained here: an undetected
    landmark carries confidence 0 and/or a position outside [0, 1]².
    """
    index: int = Field(..., ge=0)
    x: float = 0.0
    y: float = 0.0
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    visible: bool = False


class SparseLandmarkSet(BaseModel):
    """Detector output: a small canonical subset keyed by landmark index."""
    landmarks: list[Landmark] = Field(default_factory=list)


class DenseKeypointSet(BaseModel):
    """Fixed-cardinality expanded keypoints; slot i always has index i."""
    landmarks: list[Landmark]

    def __len__(self) -> int:
        return len(self.landmarks)


class ImageSize(BaseModel):
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


class CalibrationContext(BaseModel):
    """User height plus per-view oriented image size in pixels."""
    height_cm: float = Field(..., ge=100.0, le=250.0)
    image_sizes: list[ImageSize] = Field(..., min_length=1)

    def size_for(self, view: int) -> ImageSize:
        if view >= len(self.image_sizes):
            raise ValueError(
                f"No image size for view {view} ({len(self.image_sizes)} configured)"
            )
        return self.image_sizes[view]


# ── Validation ─────────────────────────────────────────────────────────

class ValidationResult(BaseModel):
    has_person: bool
    is_full_body: bool
    has_multiple_people: bool
    is_valid: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    message: str = ""


# ── Measurements ───────────────────────────────────────────────────────

class SingleMeasurement(BaseModel):
    """One body measurement in centimeters with its physiological range."""
    name: str
    value_cm: float
    valid: bool
    range_cm: tuple[float, float]


class MeasurementSet(BaseModel):
    """Named measurements; each entry carries its own validity."""
    measurements: list[SingleMeasurement]
    cm_per_pixel: float | None = None
    issues: list[DataIssue] = Field(default_factory=list)

    def get(self, name: str) -> SingleMeasurement:
        for m in self.measurements:
            if m.name == name:
                return m
        raise KeyError(name)

    @property
    def n_valid(self) -> int:
        return sum(1 for m in self.measurements if m.valid)


# ── 3D ─────────────────────────────────────────────────────────────────

class CameraPose(BaseModel):
    """A camera on the fixed rig, looking at the subject from `radius_cm`."""
    view_id: str
    angle_deg: float
    radius_cm: float = Field(..., gt=0.0)
    fov_deg: float = Field(..., gt=0.0, lt=180.0)


class Keypoint3D(BaseModel):
    """World-frame point in centimeters, Y up, subject at the origin."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    valid: bool = False


class MeshSummary(BaseModel):
    """What a reader recovers from a serialized mesh buffer."""
    version: int
    byte_length: int
    vertex_count: int
    face_count: int
    has_normals: bool
    bounds_min: list[float] | None = None
    bounds_max: list[float] | None = None


# ── Scan requests (tagged variant) ─────────────────────────────────────

class ViewCapture(BaseModel):
    """Everything the core consumes from one photograph."""
    landmarks: SparseLandmarkSet
    image_size: ImageSize
    mask: list[list[float]] | None = None
    has_multiple_people: bool = False


class SingleViewScan(BaseModel):
    mode: Literal["single"] = "single"
    height_cm: float = Field(..., ge=100.0, le=250.0)
    view: ViewCapture


class MultiViewScan(BaseModel):
    mode: Literal["multi"] = "multi"
    height_cm: float = Field(..., ge=100.0, le=250.0)
    views: list[ViewCapture]
    camera_poses: list[CameraPose] | None = None

    @model_validator(mode="after")
    def _three_views(self) -> "MultiViewScan":
        if len(self.views) != 3:
            raise ValueError(f"Multi-view scan needs exactly 3 views, got {len(self.views)}")
        if self.camera_poses is not None and len(self.camera_poses) != 3:
            raise ValueError(
                f"Multi-view scan needs exactly 3 camera poses, got {len(self.camera_poses)}"
            )
        return self


ScanRequest = Annotated[Union[SingleViewScan, MultiViewScan], Field(discriminator="mode")]


class ScanResult(BaseModel):
    mode: Literal["single", "multi"]
    validations: list[ValidationResult]
    measurements: MeasurementSet
    issues: list[DataIssue] = Field(default_factory=list)
    circumferences: MeasurementSet | None = None
    keypoints_3d: list[Keypoint3D] | None = None
    mesh_glb: bytes | None = None
    timings_ms: dict[str, float] = Field(default_factory=dict)


# ── API request / response ─────────────────────────────────────────────

class ValidationRequest(BaseModel):
    view: ViewCapture


class ScanResponse(BaseModel):
    mode: Literal["single", "multi"]
    validations: list[ValidationResult]
    measurements: MeasurementSet
    issues: list[DataIssue] = Field(default_factory=list)
    circumferences: MeasurementSet | None = None
    keypoints_3d: list[Keypoint3D] | None = None
    mesh_glb_base64: str | None = None
    processing_time_s: float


class HealthResponse(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    detail: str
