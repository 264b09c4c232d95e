"""Tests for the estimator contract types."""

import numpy as np

from conftest import ScriptedFactory, failure, success
from vofusion import SE3, EstimatorDiagnostics, LevelStats, MotionEstimate, MotionEstimateStatus


class TestMotionEstimateStatus:
    """Test suite for MotionEstimateStatus."""

    def test_only_success_is_success(self):
        assert MotionEstimateStatus.SUCCESS.is_success
        for status in MotionEstimateStatus:
            if status is not MotionEstimateStatus.SUCCESS:
                assert not status.is_success

    def test_labels(self):
        assert MotionEstimateStatus.REPROJECTION_ERROR_TOO_HIGH.label == "REPROJECTION_ERROR_TOO_HIGH"
        assert MotionEstimateStatus.NO_DATA.value == 0


class TestMotionEstimate:
    """Test suite for MotionEstimate.from_estimator."""

    def test_success_reads_everything(self):
        """Test that pose, motion and covariance are read on success."""
        factory = ScriptedFactory([success(SE3.from_translation(1, 0, 0), covariance=np.eye(6))])
        estimator = factory(None, {})
        estimator.process_frame(np.zeros((2, 2), dtype=np.uint8), None)

        estimate = MotionEstimate.from_estimator(estimator)

        assert estimate.is_success
        np.testing.assert_allclose(estimate.pose.translation, [1, 0, 0])
        assert estimate.motion.allclose(SE3.identity())
        np.testing.assert_array_equal(estimate.covariance, np.eye(6))

    def test_failure_reads_status_only(self):
        """Test that a failure carries no pose."""
        factory = ScriptedFactory([failure(MotionEstimateStatus.OPTIMIZATION_FAILURE)])
        estimator = factory(None, {})
        estimator.process_frame(np.zeros((2, 2), dtype=np.uint8), None)

        estimate = MotionEstimate.from_estimator(estimator)

        assert estimate.status is MotionEstimateStatus.OPTIMIZATION_FAILURE
        assert estimate.pose is None
        assert estimate.motion is None
        assert estimate.covariance is None


def test_diagnostics_totals():
    """Test that per-level counts are summed."""
    diag = EstimatorDiagnostics(levels=[LevelStats(10, 8), LevelStats(5, 4), LevelStats(1, 1)])

    assert diag.num_total_detected_keypoints == 16
    assert diag.num_total_keypoints == 13
