"""
Tests for sparse → dense keypoint expansion.
"""

import numpy as np
import pytest

from app.core.keypoint_expansion import expand_keypoints
from app.core.landmarks import (
    DENSE_NAMES,
    LAYOUT_COUNT,
    SPARSE_COUNT,
    idx,
    to_arrays,
)
from app.models.schemas import Landmark, SparseLandmarkSet


def _replace(sparse: SparseLandmarkSet, **changes: Landmark) -> SparseLandmarkSet:
    landmarks = list(sparse.landmarks)
    for name, lm in changes.items():
        landmarks[idx(name)] = lm
    return SparseLandmarkSet(landmarks=landmarks)


class TestLayout:

    def test_layout_fills_135_slots(self):
        assert LAYOUT_COUNT == 135
        assert len(set(DENSE_NAMES)) == LAYOUT_COUNT

    def test_default_cardinality(self, front_sparse):
        dense = expand_keypoints(front_sparse)
        assert len(dense) == 135
        assert [lm.index for lm in dense.landmarks] == list(range(135))

    def test_custom_cardinality(self, front_sparse):
        assert len(expand_keypoints(front_sparse, n=50)) == 50
        assert len(expand_keypoints(front_sparse, n=200)) == 200

    @pytest.mark.parametrize("n", [0, -5])
    def test_non_positive_cardinality_rejected(self, front_sparse, n):
        with pytest.raises(ValueError):
            expand_keypoints(front_sparse, n=n)


class TestPasses:

    def test_direct_copy(self, front_sparse, front_dense):
        for i in range(SPARSE_COUNT):
            src, dst = front_sparse.landmarks[i], front_dense.landmarks[i]
            assert dst.x == pytest.approx(src.x)
            assert dst.y == pytest.approx(src.y)
            assert dst.confidence == pytest.approx(src.confidence)

    def test_segment_interpolation(self, front_dense):
        xy, _, valid = to_arrays(front_dense)
        a, b = xy[idx("left_shoulder")], xy[idx("left_elbow")]
        for k in range(4):
            slot = idx(f"left_shoulder__left_elbow_{k + 1}")
            expected = a + (k + 1) / 5 * (b - a)
            np.testing.assert_allclose(xy[slot], expected, atol=1e-12)
            assert valid[slot]

    def test_first_interpolated_slot_follows_sparse_block(self):
        assert idx("left_shoulder__left_elbow_1") == SPARSE_COUNT

    def test_midpoint_extrapolation(self, front_dense):
        xy, _, _ = to_arrays(front_dense)
        hip_mid = (xy[idx("left_hip")] + xy[idx("right_hip")]) / 2
        np.testing.assert_allclose(xy[idx("pelvis_center")], hip_mid, atol=1e-12)

    def test_head_top_above_nose(self, front_dense):
        xy, _, valid = to_arrays(front_dense)
        assert valid[idx("head_top")]
        assert xy[idx("head_top"), 1] < xy[idx("nose"), 1]

    def test_fallback_slots_never_valid(self, front_sparse):
        dense = expand_keypoints(front_sparse, n=150)
        _, conf, valid = to_arrays(dense)
        assert not valid[135:].any()
        assert np.all(conf[135:] == 0.0)
        assert not any(lm.visible for lm in dense.landmarks[135:])


class TestInvalidAnchors:

    def test_invalid_anchor_propagates(self, front_sparse):
        sparse = _replace(front_sparse, left_elbow=Landmark(index=idx("left_elbow")))
        _, _, valid = to_arrays(expand_keypoints(sparse))

        assert not valid[idx("left_elbow")]
        for k in range(4):
            assert not valid[idx(f"left_shoulder__left_elbow_{k + 1}")]
            assert not valid[idx(f"left_elbow__left_wrist_{k + 1}")]
        # Unrelated segments still derived
        assert valid[idx("right_shoulder__right_elbow_1")]

    def test_midpoint_anchor_needs_both_members(self, front_sparse):
        sparse = _replace(front_sparse, right_hip=Landmark(index=idx("right_hip")))
        _, _, valid = to_arrays(expand_keypoints(sparse))
        assert not valid[idx("pelvis_center")]
        assert not valid[idx("navel")]
        assert valid[idx("left_hip__left_knee_1")]

    def test_empty_input_yields_all_invalid(self):
        dense = expand_keypoints(SparseLandmarkSet())
        _, _, valid = to_arrays(dense)
        assert len(dense) == 135
        assert not valid.any()

    def test_out_of_range_sparse_index_ignored(self, front_sparse):
        extra = front_sparse.landmarks + [Landmark(index=500, x=0.5, y=0.5, confidence=1.0)]
        dense = expand_keypoints(SparseLandmarkSet(landmarks=extra))
        assert len(dense) == 135


class TestConfidence:

    def test_derived_confidence_is_minimum_anchor(self, front_sparse):
        shoulder = front_sparse.landmarks[idx("left_shoulder")].model_copy(
            update={"confidence": 0.6},
        )
        sparse = _replace(front_sparse, left_shoulder=shoulder)
        dense = expand_keypoints(sparse)

        interp = dense.landmarks[idx("left_shoulder__left_elbow_2")]
        assert interp.confidence == pytest.approx(0.6)

        acromion = dense.landmarks[idx("left_acromion")]
        assert acromion.confidence == pytest.approx(0.6 * 0.9)

    def test_derived_visibility_needs_all_anchors(self, front_sparse):
        elbow = front_sparse.landmarks[idx("left_elbow")].model_copy(
            update={"visible": False},
        )
        dense = expand_keypoints(_replace(front_sparse, left_elbow=elbow))
        assert not dense.landmarks[idx("left_shoulder__left_elbow_1")].visible
        assert dense.landmarks[idx("right_shoulder__right_elbow_1")].visible

    def test_deterministic(self, front_sparse):
        a = expand_keypoints(front_sparse)
        b = expand_keypoints(front_sparse)
        assert a == b
