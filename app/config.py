"""
BodyScan configuration.

All tunable parameters live here so the keypoint, measurement and
reconstruction pipeline is fully configurable without touching
algorithmic code.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class LandmarkValidityConfig(BaseSettings):
    """When a single landmark slot counts as usable."""

    min_confidence: float = 0.0  # strictly greater than this
    coord_min: float = 0.0
    coord_max: float = 1.0
    origin_epsilon: float = 1e-3  # points at ~(0, 0) are undetected


class ExpansionConfig(BaseSettings):
    """Sparse → dense keypoint expansion."""

    dense_count: int = 135
    interpolated_confidence_decay: float = 1.0
    extrapolated_confidence_decay: float = 0.9


class ValidationConfig(BaseSettings):
    """Pose validation thresholds."""

    detect_threshold: float = 0.5
    region_threshold: float = 0.5
    min_landmarks: int = 10

    no_person_message: str = "No person detected"
    multiple_people_message: str = "Multiple people detected - only one person should be in frame"
    region_messages: dict[str, str] = {
        "head": "Head not fully visible",
        "upper_body": "Upper body not fully visible",
        "lower_body": "Lower body not fully visible",
    }


class MeasurementConfig(BaseSettings):
    """Physiological ranges (cm) and width-estimation parameters."""

    ranges_cm: dict[str, tuple[float, float]] = {
        "shoulder_width": (30.0, 60.0),
        "arm_length": (50.0, 80.0),
        "leg_length": (70.0, 120.0),
        "hip_width": (25.0, 50.0),
        "upper_body_length": (40.0, 80.0),
        "lower_body_length": (60.0, 100.0),
        "neck_width": (8.0, 15.0),
        "thigh_width": (15.0, 40.0),
    }

    # Thigh width
    mask_threshold: float = 0.5
    thigh_hip_ratio: float = 0.55  # thigh width as a fraction of hip landmark spread

    # Upper body length is measured to the highest *detected* landmark,
    # i.e. one of the directly mapped sparse slots.
    upper_body_top_max_index: int = 33


class CircumferenceConfig(BaseSettings):
    """Elliptical cross-sections and ranges for 3D circumferences."""

    # name → (slot a, slot b, width scale, depth ratio).
    # Section width is scale · |a − b|.  Torso sections span a left/right
    # slot pair; limb sections run along one bone of one side.
    sections: dict[str, tuple[str, str, float, float]] = {
        "chest_circumference": ("left_axilla", "right_axilla", 1.0, 0.7),
        "waist_circumference": ("left_waist", "right_waist", 1.3, 0.75),
        "hip_circumference": ("left_hip", "right_hip", 1.15, 0.8),
        "left_thigh_circumference": ("left_hip", "left_knee", 0.4, 1.0),
        "right_thigh_circumference": ("right_hip", "right_knee", 0.4, 1.0),
        "left_arm_circumference": ("left_shoulder", "left_elbow", 0.32, 1.0),
        "right_arm_circumference": ("right_shoulder", "right_elbow", 0.32, 1.0),
    }
    ranges_cm: dict[str, tuple[float, float]] = {
        "chest_circumference": (60.0, 160.0),
        "waist_circumference": (50.0, 150.0),
        "hip_circumference": (60.0, 160.0),
        "left_thigh_circumference": (30.0, 90.0),
        "right_thigh_circumference": (30.0, 90.0),
        "left_arm_circumference": (15.0, 50.0),
        "right_arm_circumference": (15.0, 50.0),
    }


class TriangulationConfig(BaseSettings):
    """Fixed three-camera rig around the subject."""

    camera_radius_cm: float = 200.0
    camera_angles_deg: tuple[float, float, float] = (0.0, 120.0, -120.0)
    camera_names: tuple[str, str, str] = ("front", "left", "right")
    fov_deg: float = 60.0  # horizontal field of view

    min_homogeneous_w: float = 1e-10
    min_point_norm: float = 1e-6
    min_views: int = 2


class MeshConfig(BaseSettings):
    """Skeleton reduction and surface synthesis."""

    min_valid_keypoints: int = 10
    min_bones: int = 1

    # Radii as fractions of skeleton height
    head_radius_ratio: float = 0.065
    joint_radius_ratio: float = 0.028
    torso_radius_ratio: float = 0.075
    limb_radius_ratio: float = 0.035
    extremity_radius_ratio: float = 0.022

    sphere_subdivisions: int = 1
    cylinder_sections: int = 12
    min_bone_length_cm: float = 1e-3

    output_unit_scale: float = 0.01  # cm → m (glTF units)


class AppConfig(BaseSettings):
    """Top-level application configuration."""

    app_name: str = "BodyScan"
    version: str = "0.1.0"
    debug: bool = False
    cors_origins: list[str] = ["*"]

    validity: LandmarkValidityConfig = Field(default_factory=LandmarkValidityConfig)
    expansion: ExpansionConfig = Field(default_factory=ExpansionConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    measurement: MeasurementConfig = Field(default_factory=MeasurementConfig)
    circumference: CircumferenceConfig = Field(default_factory=CircumferenceConfig)
    triangulation: TriangulationConfig = Field(default_factory=TriangulationConfig)
    mesh: MeshConfig = Field(default_factory=MeshConfig)


config = AppConfig()
