"""
Tests for skeleton mesh synthesis and the binary mesh container.
"""

import struct

import numpy as np
import pytest
import trimesh

from app.core.keypoint_expansion import expand_keypoints
from app.core.landmarks import idx
from app.core.mesh_builder import (
    BODY_25,
    JOINT_INDEX,
    build_mesh,
    build_surface,
    reduce_to_skeleton,
    vertex_normals,
)
from app.core.mesh_codec import GLB_MAGIC, parse_mesh, serialize
from app.core.triangulation import triangulate
from app.models.schemas import CalibrationContext, Keypoint3D
from scripts.generate_test_pose import GROUND_TRUTH, IMAGE_SIZE, sparse_view


@pytest.fixture(scope="module")
def keypoints3d():
    views = [expand_keypoints(sparse_view(k)) for k in range(3)]
    calib = CalibrationContext(height_cm=GROUND_TRUTH["height_cm"], image_sizes=[IMAGE_SIZE] * 3)
    return triangulate(views, calib)


def _invalidate(points: list[Keypoint3D], *names: str) -> list[Keypoint3D]:
    out = list(points)
    for name in names:
        out[idx(name)] = Keypoint3D()
    return out


class TestSkeleton:

    def test_reduces_to_25_joints(self, keypoints3d):
        joints, ok = reduce_to_skeleton(keypoints3d)
        assert joints.shape == (25, 3)
        assert len(BODY_25) == 25
        assert ok.all()

    def test_neck_is_shoulder_midpoint(self, keypoints3d):
        joints, _ = reduce_to_skeleton(keypoints3d)
        ls, rs = keypoints3d[idx("left_shoulder")], keypoints3d[idx("right_shoulder")]
        expected = [(ls.x + rs.x) / 2, (ls.y + rs.y) / 2, (ls.z + rs.z) / 2]
        np.testing.assert_allclose(joints[JOINT_INDEX["neck"]], expected)

    def test_midpoint_joint_needs_both_members(self, keypoints3d):
        _, ok = reduce_to_skeleton(_invalidate(keypoints3d, "left_hip"))
        assert not ok[JOINT_INDEX["mid_hip"]]
        assert not ok[JOINT_INDEX["left_hip"]]
        assert ok[JOINT_INDEX["right_hip"]]


class TestSurface:

    def test_builds_mesh_in_meters(self, keypoints3d):
        mesh = build_surface(keypoints3d)
        assert isinstance(mesh, trimesh.Trimesh)
        height = float(np.ptp(mesh.vertices[:, 1]))
        assert 1.6 < height < 2.0

    def test_vertex_normals_unit_length(self, keypoints3d):
        mesh = build_surface(keypoints3d)
        lengths = np.linalg.norm(mesh.vertex_normals, axis=1)
        np.testing.assert_allclose(lengths, 1.0, atol=1e-6)

    def test_normals_point_outward_on_sphere(self):
        sphere = trimesh.creation.icosphere(subdivisions=2, radius=1.0)
        normals = vertex_normals(
            np.asarray(sphere.vertices), np.asarray(sphere.faces), np.asarray(sphere.face_normals),
        )
        dots = np.einsum("ij,ij->i", normals, sphere.vertices)
        assert np.all(dots > 0.95)

    def test_missing_limb_drops_bones_only(self, keypoints3d):
        full = build_surface(keypoints3d)
        partial = build_surface(_invalidate(keypoints3d, "left_wrist"))
        assert partial is not None
        assert len(partial.faces) < len(full.faces)


class TestBuildMesh:

    def test_round_trip(self, keypoints3d):
        buffer = build_mesh(keypoints3d)
        mesh = build_surface(keypoints3d)
        assert buffer[:4] == GLB_MAGIC

        summary = parse_mesh(buffer)
        assert summary.version == 2
        assert summary.byte_length == len(buffer)
        assert summary.vertex_count == len(mesh.vertices)
        assert summary.face_count == len(mesh.faces)
        assert summary.has_normals

    def test_bounds_match_mesh(self, keypoints3d):
        summary = parse_mesh(build_mesh(keypoints3d))
        mesh = build_surface(keypoints3d)
        np.testing.assert_allclose(summary.bounds_min, mesh.bounds[0], atol=1e-5)
        np.testing.assert_allclose(summary.bounds_max, mesh.bounds[1], atol=1e-5)

    def test_too_few_keypoints_gives_empty_buffer(self, keypoints3d):
        sparse = [kp if i < 9 else Keypoint3D() for i, kp in enumerate(keypoints3d)]
        assert build_mesh(sparse) == b""

    def test_no_keypoints(self):
        assert build_mesh([]) == b""

    def test_no_bones_gives_empty_buffer(self):
        """Enough valid points, but none on a skeleton joint."""
        points = [Keypoint3D() for _ in range(135)]
        for i in range(40, 60):
            points[i] = Keypoint3D(x=float(i), y=float(i), z=0.0, valid=True)
        assert build_mesh(points) == b""

    def test_deterministic(self, keypoints3d):
        assert build_mesh(keypoints3d) == build_mesh(keypoints3d)


class TestParseMesh:

    def test_rejects_short_buffer(self):
        with pytest.raises(ValueError):
            parse_mesh(b"glTF")

    def test_rejects_bad_magic(self):
        box = serialize(trimesh.creation.box())
        with pytest.raises(ValueError):
            parse_mesh(b"GLTF" + box[4:])

    def test_rejects_truncated_buffer(self):
        box = serialize(trimesh.creation.box())
        with pytest.raises(ValueError):
            parse_mesh(box[: len(box) // 2])

    def test_rejects_oversized_chunk(self):
        header = struct.pack("<4sII", b"glTF", 2, 28)
        chunk = struct.pack("<II", 64, 0x4E4F534A) + b"{}      "
        with pytest.raises(ValueError):
            parse_mesh(header + chunk)

    def test_box(self):
        summary = parse_mesh(serialize(trimesh.creation.box()))
        assert summary.vertex_count == 8
        assert summary.face_count == 12
