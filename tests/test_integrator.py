"""Tests for PoseIntegrator."""

import numpy as np
import pytest

from conftest import SEC, ScriptedFactory, nan_pose
from vofusion import (
    SE3,
    FusionKind,
    IntegratorState,
    MotionEstimate,
    MotionEstimateStatus,
    PoseIntegrator,
    TransformStore,
)


def rot_z(angle: float) -> np.ndarray:
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def ok(pose: SE3, motion: SE3 | None = None) -> MotionEstimate:
    return MotionEstimate(
        status=MotionEstimateStatus.SUCCESS,
        pose=pose,
        motion=motion or SE3.identity(),
        covariance=np.eye(6),
    )


BASE_TO_SENSOR = SE3(rotation=rot_z(np.pi / 2), translation=[0.2, 0.0, 0.1])


@pytest.fixture
def offset_store() -> TransformStore:
    store = TransformStore()
    store.set_transform("base_link", "cam0", BASE_TO_SENSOR)
    return store


@pytest.fixture
def integrator(offset_store) -> PoseIntegrator:
    integ = PoseIntegrator(offset_store)
    integ.initialize(1 * SEC, "cam0", ScriptedFactory()(None, {}))
    return integ


class TestPoseIntegrator:
    """Test suite for PoseIntegrator."""

    def test_starts_uninitialized(self, offset_store):
        """No estimator context and no pose before initialize."""
        integ = PoseIntegrator(offset_store)

        assert integ.lifecycle is IntegratorState.UNINITIALIZED
        assert integ.last_known_transform() is None
        with pytest.raises(RuntimeError, match="before initialize"):
            integ.integrate(ok(SE3.identity()), 1 * SEC, "cam0")

    def test_initialize_captures_offset_as_anchor(self, integrator):
        """First anchor is the body -> sensor offset."""
        assert integrator.lifecycle is IntegratorState.TRACKING
        assert integrator.anchor.allclose(BASE_TO_SENSOR)

    def test_identity_sensor_pose_is_body_origin(self, integrator):
        """At the estimator origin the body is at the odometry origin."""
        result = integrator.integrate(ok(SE3.identity()), 2 * SEC, "cam0")

        assert result.kind is FusionKind.FUSED
        assert result.body_pose.allclose(SE3.identity())

    def test_body_pose_sandwich(self, integrator):
        """body = anchor @ sensor_pose @ inverse(offset)."""
        sensor_pose = SE3(rotation=rot_z(0.1), translation=[0.0, 0.0, 1.0])

        result = integrator.integrate(ok(sensor_pose), 2 * SEC, "cam0")

        expected = BASE_TO_SENSOR @ sensor_pose @ BASE_TO_SENSOR.inverse()
        assert result.body_pose.allclose(expected)
        assert integrator.state.body_pose.allclose(expected)
        assert integrator.state.last_fusion_stamp_ns == 2 * SEC

    def test_previous_fusion_stamp_gives_dt(self, integrator):
        """dt is known only from the second consecutive fusion on."""
        first = integrator.integrate(ok(SE3.identity()), 2 * SEC, "cam0")
        second = integrator.integrate(ok(SE3.identity()), 2 * SEC + SEC // 2, "cam0")

        assert first.dt is None
        assert second.dt == pytest.approx(0.5)

    def test_failure_keeps_pose_and_clears_fusion_time(self, integrator):
        """A failure status leaves the pose untouched."""
        fused = integrator.integrate(ok(SE3.from_translation(0, 0, 1)), 2 * SEC, "cam0")

        result = integrator.integrate(
            MotionEstimate(status=MotionEstimateStatus.INSUFFICIENT_INLIERS), 3 * SEC, "cam0"
        )

        assert result.kind is FusionKind.FAILED
        assert result.status is MotionEstimateStatus.INSUFFICIENT_INLIERS
        assert result.body_pose is None
        assert integrator.last_known_transform().allclose(fused.body_pose)
        assert integrator.state.last_fusion_stamp_ns is None

        after = integrator.integrate(ok(SE3.from_translation(0, 0, 2)), 4 * SEC, "cam0")
        assert after.dt is None

    def test_non_finite_estimate_reanchors(self, integrator):
        """A NaN pose drops the estimator and re-anchors at the last good pose."""
        good = integrator.integrate(ok(SE3.from_translation(0, 0, 1)), 2 * SEC, "cam0")

        result = integrator.integrate(ok(nan_pose()), 3 * SEC, "cam0")

        assert result.kind is FusionKind.CORRUPTED
        assert result.body_pose is None
        assert integrator.lifecycle is IntegratorState.UNINITIALIZED
        assert integrator.estimator is None
        assert integrator.state.needs_reanchor
        assert integrator.state.last_fusion_stamp_ns is None
        assert integrator.anchor.allclose(good.body_pose @ BASE_TO_SENSOR)
        assert integrator.last_known_transform().allclose(good.body_pose)
        assert integrator.last_known_transform().is_finite()

    def test_recovery_is_continuous(self, integrator):
        """After re-anchoring, the new estimator origin maps onto the last good pose."""
        sensor_pose = SE3(rotation=rot_z(0.3), translation=[0.5, 0.0, 2.0])
        good = integrator.integrate(ok(sensor_pose), 2 * SEC, "cam0")
        integrator.integrate(ok(nan_pose()), 3 * SEC, "cam0")

        integrator.initialize(4 * SEC, "cam0", ScriptedFactory()(None, {}))
        assert not integrator.state.needs_reanchor

        restarted = integrator.integrate(ok(SE3.identity()), 5 * SEC, "cam0")
        assert restarted.body_pose.allclose(good.body_pose)

        step = SE3.from_translation(0.0, 0.0, 1.0)
        moved = integrator.integrate(ok(step), 6 * SEC, "cam0")
        expected = good.body_pose @ BASE_TO_SENSOR @ step @ BASE_TO_SENSOR.inverse()
        assert moved.body_pose.allclose(expected)

    def test_correction_factor_scales_translation_only(self):
        """Factor 2.0 doubles X displacement and keeps the orientation."""
        store = TransformStore()
        store.set_transform("base_link", "cam0", SE3.identity())
        integ = PoseIntegrator(store, translation_correction_factor=2.0)
        integ.initialize(1 * SEC, "cam0", ScriptedFactory()(None, {}))

        sensor_pose = SE3(rotation=rot_z(0.25), translation=[1.0, 0.0, 0.0])
        result = integ.integrate(ok(sensor_pose), 2 * SEC, "cam0")

        np.testing.assert_allclose(result.body_pose.translation, [2.0, 0.0, 0.0])
        np.testing.assert_allclose(result.body_pose.rotation, rot_z(0.25))

    def test_zero_correction_factor(self, offset_store):
        """A factor of 0 is treated as 1.0."""
        integ = PoseIntegrator(offset_store, translation_correction_factor=0.0)
        assert integ.translation_correction_factor == 1.0

    def test_recovery_with_correction_factor_is_continuous(self):
        """Re-anchoring starts from the uncorrected pose, so no jump appears."""
        store = TransformStore()
        store.set_transform("base_link", "cam0", SE3.identity())
        integ = PoseIntegrator(store, translation_correction_factor=2.0)
        integ.initialize(1 * SEC, "cam0", ScriptedFactory()(None, {}))

        good = integ.integrate(ok(SE3.from_translation(1, 0, 0)), 2 * SEC, "cam0")
        integ.integrate(ok(nan_pose()), 3 * SEC, "cam0")
        integ.initialize(4 * SEC, "cam0", ScriptedFactory()(None, {}))
        restarted = integ.integrate(ok(SE3.identity()), 5 * SEC, "cam0")

        np.testing.assert_allclose(good.body_pose.translation, [2.0, 0.0, 0.0])
        assert restarted.body_pose.allclose(good.body_pose)

    def test_reinitialize_discards_anchor(self, integrator):
        """External reinit drops the context but keeps the last pose."""
        good = integrator.integrate(ok(SE3.from_translation(0, 0, 1)), 2 * SEC, "cam0")

        assert integrator.reinitialize() is True
        assert integrator.lifecycle is IntegratorState.UNINITIALIZED
        assert integrator.anchor is None
        assert integrator.last_known_transform().allclose(good.body_pose)
        assert integrator.reinitialize() is False

        integrator.initialize(3 * SEC, "cam0", ScriptedFactory()(None, {}))
        assert integrator.anchor.allclose(BASE_TO_SENSOR)

    def test_missing_offset_uses_identity(self):
        """Without a body -> sensor transform the anchor is identity."""
        integ = PoseIntegrator(TransformStore())
        integ.initialize(1 * SEC, "cam0", ScriptedFactory()(None, {}))

        assert integ.anchor.allclose(SE3.identity())
        result = integ.integrate(ok(SE3.from_translation(1, 0, 0)), 2 * SEC, "cam0")
        np.testing.assert_allclose(result.body_pose.translation, [1.0, 0.0, 0.0])

    def test_mark_published(self, integrator):
        """Keepalive stamps are recorded without touching the pose."""
        integrator.integrate(ok(SE3.from_translation(1, 0, 0)), 2 * SEC, "cam0")
        before = integrator.last_known_transform()

        integrator.mark_published(20 * SEC)

        assert integrator.state.last_published_stamp_ns == 20 * SEC
        assert integrator.state.last_fusion_stamp_ns == 2 * SEC
        assert integrator.last_known_transform().allclose(before)
