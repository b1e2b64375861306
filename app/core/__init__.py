from .keypoint_expansion import expand_keypoints
from .pose_validation import validate_pose
from .measurement_engine import compute_measurements, compute_measurements_3d
from .triangulation import triangulate
from .mesh_builder import build_mesh
from .pipeline import run_scan
