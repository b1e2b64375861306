"""
Tests for calibrated single-view measurements.
"""

import numpy as np
import pytest

from app.core.landmarks import idx, to_arrays
from app.core.measurement_engine import (
    MEASUREMENT_NAMES,
    body_pixel_height,
    compute_measurements,
    measure_raw,
)
from app.models.schemas import (
    CalibrationContext,
    DataIssue,
    DenseKeypointSet,
    Landmark,
)
from scripts.generate_test_pose import GROUND_TRUTH, IMAGE_SIZE


class TestFullMeasurement:

    def test_all_measurements_present(self, front_dense, calibration):
        result = compute_measurements(front_dense, calibration)
        assert [m.name for m in result.measurements] == MEASUREMENT_NAMES
        assert result.cm_per_pixel is not None and result.cm_per_pixel > 0
        assert result.issues == []

    def test_shoulder_width_scenario(self, front_dense, calibration):
        """175 cm subject in a 640×960 image: shoulder width 35–45 cm."""
        m = compute_measurements(front_dense, calibration).get("shoulder_width")
        assert m.valid
        assert 35.0 <= m.value_cm <= 45.0

    def test_every_measurement_valid(self, front_dense, calibration):
        result = compute_measurements(front_dense, calibration)
        invalid = [m.name for m in result.measurements if not m.valid]
        assert invalid == []

    def test_valid_values_inside_ranges(self, front_dense, calibration):
        for m in compute_measurements(front_dense, calibration).measurements:
            if m.valid:
                lo, hi = m.range_cm
                assert lo <= m.value_cm <= hi
            else:
                assert m.value_cm == 0.0

    @pytest.mark.parametrize("name", ["shoulder_width", "hip_width", "lower_body_length"])
    def test_close_to_ground_truth(self, front_dense, calibration, name):
        m = compute_measurements(front_dense, calibration).get(name)
        gt = GROUND_TRUTH[name]
        # Perspective on a nominal rig: allow ±10 %
        assert abs(m.value_cm - gt) / gt < 0.10

    def test_deterministic(self, front_dense, calibration):
        a = compute_measurements(front_dense, calibration)
        b = compute_measurements(front_dense, calibration)
        assert a == b


class TestCalibration:

    def test_doubling_height_doubles_values(self, front_dense):
        small = CalibrationContext(height_cm=120.0, image_sizes=[IMAGE_SIZE])
        large = CalibrationContext(height_cm=240.0, image_sizes=[IMAGE_SIZE])
        v_small, cmpp_small = measure_raw(front_dense, small)
        v_large, cmpp_large = measure_raw(front_dense, large)

        assert cmpp_large == pytest.approx(2 * cmpp_small)
        for name in MEASUREMENT_NAMES:
            assert v_large[name] == pytest.approx(2 * v_small[name], rel=1e-9)

    def test_zero_body_height(self, calibration):
        """All slots on one image row: calibration undefined, no fault."""
        flat = DenseKeypointSet(landmarks=[
            Landmark(index=i, x=0.1 + 0.005 * i, y=0.5, confidence=0.9, visible=True)
            for i in range(135)
        ])
        result = compute_measurements(flat, calibration)
        assert result.cm_per_pixel is None
        assert DataIssue.calibration_undefined in result.issues
        assert all(not m.valid and m.value_cm == 0.0 for m in result.measurements)

    def test_no_valid_slots(self, calibration):
        empty = DenseKeypointSet(landmarks=[Landmark(index=i) for i in range(135)])
        result = compute_measurements(empty, calibration)
        assert result.n_valid == 0
        assert DataIssue.calibration_undefined in result.issues

    def test_missing_calibration_rejected(self, front_dense):
        with pytest.raises(ValueError):
            compute_measurements(front_dense, None)

    def test_missing_view_size_rejected(self, front_dense, calibration):
        with pytest.raises(ValueError):
            compute_measurements(front_dense, calibration, view=2)

    def test_body_pixel_height(self):
        xy = np.array([[0.5, 0.1], [0.5, 0.9], [0.5, 0.5]])
        valid = np.array([True, True, False])
        assert body_pixel_height(xy, valid, 1000) == pytest.approx(800.0)
        assert body_pixel_height(xy[:1], valid[:1], 1000) == 0.0

    def test_span_reaches_extrapolated_crown(self, front_dense, invalidate):
        xy, _, valid = to_arrays(front_dense)
        top = int(np.argmin(np.where(valid, xy[:, 1], np.inf)))
        assert top == idx("head_top")

        full = body_pixel_height(xy, valid, IMAGE_SIZE.height)
        xy2, _, valid2 = to_arrays(invalidate(front_dense, idx("head_top")))
        assert body_pixel_height(xy2, valid2, IMAGE_SIZE.height) < full


class TestInvalidLandmarks:

    def test_both_shoulders_invalid(self, front_dense, calibration, invalidate):
        """Shoulder width invalid; hip width unaffected."""
        baseline = compute_measurements(front_dense, calibration)
        dense = invalidate(front_dense, idx("left_shoulder"), idx("right_shoulder"))
        result = compute_measurements(dense, calibration)

        shoulder = result.get("shoulder_width")
        assert not shoulder.valid and shoulder.value_cm == 0.0
        assert result.get("hip_width").valid
        assert result.get("hip_width").value_cm == baseline.get("hip_width").value_cm
        assert DataIssue.input_invalid in result.issues

    def test_one_shoulder_invalidates_only_dependents(self, front_dense, calibration, invalidate):
        baseline = compute_measurements(front_dense, calibration)
        result = compute_measurements(invalidate(front_dense, idx("left_shoulder")), calibration)

        assert not result.get("shoulder_width").valid
        # Arm length falls back to the complete right side
        assert result.get("arm_length").valid
        for name in ("leg_length", "hip_width", "lower_body_length", "neck_width", "thigh_width"):
            assert result.get(name).value_cm == baseline.get(name).value_cm

    def test_hip_invalid_breaks_midpoint_measurements(self, front_dense, calibration, invalidate):
        result = compute_measurements(invalidate(front_dense, idx("right_hip")), calibration)
        assert not result.get("hip_width").valid
        assert not result.get("upper_body_length").valid
        assert not result.get("lower_body_length").valid
        assert result.get("shoulder_width").valid

    def test_out_of_range_value_reset(self, front_dense):
        """A tiny height pushes several values below their ranges."""
        calibration = CalibrationContext(height_cm=100.0, image_sizes=[IMAGE_SIZE])
        result = compute_measurements(front_dense, calibration)
        assert not result.get("leg_length").valid
        assert result.get("leg_length").value_cm == 0.0


class TestThighWidthWithMask:

    def test_mask_strategy_used(self, front_dense, calibration):
        """A mask whose thigh runs are 60 px wide at 640 px gives a mask-based width."""
        xy = np.array([(lm.x, lm.y) for lm in front_dense.landmarks])
        mask = np.zeros((IMAGE_SIZE.height, IMAGE_SIZE.width))
        for side in ("left", "right"):
            cx = (xy[idx(f"{side}_hip"), 0] + xy[idx(f"{side}_knee"), 0]) / 2 * IMAGE_SIZE.width
            mask[:, int(cx) - 30:int(cx) + 30] = 1.0

        with_mask = compute_measurements(front_dense, calibration, mask=mask.tolist())
        without = compute_measurements(front_dense, calibration)

        expected = 60 * with_mask.cm_per_pixel
        assert with_mask.get("thigh_width").value_cm == pytest.approx(expected, abs=0.02)
        assert with_mask.get("thigh_width").value_cm != without.get("thigh_width").value_cm

    def test_malformed_mask_rejected(self, front_dense, calibration):
        with pytest.raises(ValueError):
            compute_measurements(front_dense, calibration, mask=[1.0, 0.0, 1.0])
