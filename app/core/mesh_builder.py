"""
Skeleton mesh synthesis from triangulated keypoints.

Skeleton reduction
──────────────────
The dense cloud is reduced to the 25-joint BODY_25 topology.  Every joint
maps to one dense slot, except neck (shoulder midpoint) and mid-hip (hip
midpoint) which are computed from their pair on demand and are invalid
unless both members are valid.

Surface
───────
Each bone with two valid endpoints becomes a capped cylinder aligned with
the bone; each valid joint becomes an icosphere.  Radii are fractions of
the skeleton's vertical extent, so the mesh follows the user's scale.
Primitives are concatenated into one vertex/face list (no welding).

Per-vertex normals are the normalised average of the unit normals of
every face touching the vertex.

Units
─────
Keypoints are in centimeters; the exported mesh is in meters (glTF).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
import trimesh

from app.config import config
from app.core.landmarks import idx
from app.core.measurement_engine import keypoints3d_to_arrays
from app.core.mesh_codec import serialize
from app.models.schemas import Keypoint3D

logger = logging.getLogger(__name__)

mcfg = config.mesh

# BODY_25 joint → dense slot name, or a pair meaning their midpoint
BODY_25: list[tuple[str, str | tuple[str, str]]] = [
    ("nose", "nose"),
    ("neck", ("left_shoulder", "right_shoulder")),
    ("right_shoulder", "right_shoulder"),
    ("right_elbow", "right_elbow"),
    ("right_wrist", "right_wrist"),
    ("left_shoulder", "left_shoulder"),
    ("left_elbow", "left_elbow"),
    ("left_wrist", "left_wrist"),
    ("mid_hip", ("left_hip", "right_hip")),
    ("right_hip", "right_hip"),
    ("right_knee", "right_knee"),
    ("right_ankle", "right_ankle"),
    ("left_hip", "left_hip"),
    ("left_knee", "left_knee"),
    ("left_ankle", "left_ankle"),
    ("right_eye", "right_eye"),
    ("left_eye", "left_eye"),
    ("right_ear", "right_ear"),
    ("left_ear", "left_ear"),
    ("left_big_toe", "left_toe_tip"),
    ("left_small_toe", "left_foot_index"),
    ("left_heel", "left_heel"),
    ("right_big_toe", "right_toe_tip"),
    ("right_small_toe", "right_foot_index"),
    ("right_heel", "right_heel"),
]
JOINT_NAMES = [name for name, _ in BODY_25]
JOINT_INDEX = {name: i for i, name in enumerate(JOINT_NAMES)}

# (joint a, joint b, radius class)
BONES: list[tuple[int, int, str]] = [
    # head
    (0, 1, "limb"),
    (0, 15, "extremity"),
    (0, 16, "extremity"),
    (15, 17, "extremity"),
    (16, 18, "extremity"),
    # torso
    (1, 2, "torso"),
    (1, 5, "torso"),
    (1, 8, "torso"),
    (2, 5, "torso"),
    (8, 9, "torso"),
    (8, 12, "torso"),
    (9, 12, "torso"),
    # arms
    (2, 3, "limb"),
    (3, 4, "limb"),
    (5, 6, "limb"),
    (6, 7, "limb"),
    # legs
    (9, 10, "limb"),
    (10, 11, "limb"),
    (12, 13, "limb"),
    (13, 14, "limb"),
    # feet
    (11, 22, "extremity"),
    (11, 23, "extremity"),
    (11, 24, "extremity"),
    (22, 23, "extremity"),
    (14, 19, "extremity"),
    (14, 20, "extremity"),
    (14, 21, "extremity"),
    (19, 20, "extremity"),
]


def _radius_ratios() -> dict[str, float]:
    return {
        "torso": mcfg.torso_radius_ratio,
        "limb": mcfg.limb_radius_ratio,
        "extremity": mcfg.extremity_radius_ratio,
    }


# ── Skeleton ───────────────────────────────────────────────────────────

def reduce_to_skeleton(keypoints3d: Sequence[Keypoint3D]) -> tuple[np.ndarray, np.ndarray]:
    """
    Map the dense cloud onto BODY_25.

    Returns
    -------
    joints : (25, 3) float — centimeters (zeros where invalid)
    valid : (25,) bool
    """
    xyz, valid = keypoints3d_to_arrays(keypoints3d)
    n = len(xyz)

    joints = np.zeros((len(BODY_25), 3))
    ok = np.zeros(len(BODY_25), dtype=bool)

    for j, (_, source) in enumerate(BODY_25):
        ids = (idx(source),) if isinstance(source, str) else (idx(source[0]), idx(source[1]))
        if any(i >= n or not valid[i] for i in ids):
            continue
        joints[j] = xyz[list(ids)].mean(axis=0)
        ok[j] = True

    return joints, ok


# ── Surface ────────────────────────────────────────────────────────────

def _bone_cylinder(start: np.ndarray, end: np.ndarray, radius: float) -> trimesh.Trimesh | None:
    vector = end - start
    length = float(np.linalg.norm(vector))
    if length < mcfg.min_bone_length_cm:
        return None
    cylinder = trimesh.creation.cylinder(
        radius=radius, height=length, sections=mcfg.cylinder_sections,
    )
    cylinder.apply_transform(trimesh.geometry.align_vectors([0, 0, 1], vector / length))
    cylinder.apply_translation((start + end) * 0.5)
    return cylinder


def vertex_normals(vertices: np.ndarray, faces: np.ndarray, face_normals: np.ndarray) -> np.ndarray:
    """Average of adjacent unit face normals per vertex, renormalised."""
    return trimesh.geometry.mean_vertex_normals(len(vertices), faces, face_normals)


def build_surface(keypoints3d: Sequence[Keypoint3D]) -> trimesh.Trimesh | None:
    """Skeleton surface in meters, or None when no viable mesh exists."""
    _, dense_valid = keypoints3d_to_arrays(keypoints3d)
    n_valid = int(np.sum(dense_valid))
    if n_valid < mcfg.min_valid_keypoints:
        logger.warning(
            "Mesh unbuildable: %d valid 3D keypoints (minimum %d)",
            n_valid, mcfg.min_valid_keypoints,
        )
        return None

    joints, ok = reduce_to_skeleton(keypoints3d)
    extent = float(np.ptp(joints[ok, 1])) if np.sum(ok) >= 2 else 0.0
    if extent <= 0:
        logger.warning("Mesh unbuildable: skeleton has no vertical extent")
        return None

    ratios = _radius_ratios()
    parts: list[trimesh.Trimesh] = []
    n_bones = 0

    for a, b, kind in BONES:
        if not (ok[a] and ok[b]):
            continue
        cylinder = _bone_cylinder(joints[a], joints[b], ratios[kind] * extent)
        if cylinder is not None:
            parts.append(cylinder)
            n_bones += 1

    if n_bones < mcfg.min_bones:
        logger.warning("Mesh unbuildable: no bone has two valid endpoints")
        return None

    for j in np.nonzero(ok)[0]:
        ratio = mcfg.head_radius_ratio if j == JOINT_INDEX["nose"] else mcfg.joint_radius_ratio
        sphere = trimesh.creation.icosphere(
            subdivisions=mcfg.sphere_subdivisions, radius=ratio * extent,
        )
        sphere.apply_translation(joints[j])
        parts.append(sphere)

    combined = trimesh.util.concatenate(parts)
    vertices = np.asarray(combined.vertices, dtype=np.float64) * mcfg.output_unit_scale
    faces = np.asarray(combined.faces, dtype=np.int64)

    mesh = trimesh.Trimesh(vertices=vertices, faces=faces, process=False)
    normals = vertex_normals(vertices, faces, np.asarray(mesh.face_normals))
    mesh = trimesh.Trimesh(
        vertices=vertices, faces=faces, vertex_normals=normals, process=False,
    )

    logger.info(
        "Mesh: %d joints, %d bones → %d vertices, %d faces",
        int(np.sum(ok)), n_bones, len(mesh.vertices), len(mesh.faces),
    )
    return mesh


def build_mesh(keypoints3d: Sequence[Keypoint3D]) -> bytes:
    """Serialized skeleton mesh; empty bytes when the mesh is unbuildable."""
    mesh = build_surface(keypoints3d)
    if mesh is None:
        return b""
    return serialize(mesh)
