"""Twist estimation from consecutive poses."""

from __future__ import annotations

import logging

import numpy as np

from .messages import Twist, TwistWithCovariance
from .pose import SE3

logger = logging.getLogger(__name__)


def elapsed_seconds(prev_stamp_ns: int | None, stamp_ns: int) -> float | None:
    """Return seconds between two stamps, or None without a previous stamp."""
    if prev_stamp_ns is None:
        return None
    return (stamp_ns - prev_stamp_ns) * 1e-9


class VelocityEstimator:
    """Derives body-frame linear/angular velocity from a sensor-frame motion.

    The incremental motion reported by the estimator is conjugated with the
    current body -> sensor offset.
    """

    def estimate(
        self,
        sensor_motion: SE3 | None,
        base_to_sensor: SE3,
        dt: float | None,
        covariance: np.ndarray | None = None,
    ) -> TwistWithCovariance:
        """Compute the twist for one frame.

        Args:
            sensor_motion: Sensor motion since the previous frame
            base_to_sensor: Current T_base_sensor
            dt: Seconds since the previous fused frame (None if unknown)
            covariance: 6x6 motion covariance, linear block first

        Returns:
            Twist with covariance; ``valid`` is False (zero twist, no
            covariance) when ``dt`` is unknown or not positive, or when the
            motion or covariance contains NaN/Inf

        Raises:
            ValueError: If the covariance is not 6x6
        """
        if dt is None or dt <= 0.0 or sensor_motion is None:
            return TwistWithCovariance()

        cov = None
        if covariance is not None:
            cov = np.asarray(covariance, dtype=np.float64)
            if cov.shape != (6, 6):
                raise ValueError(f"Motion covariance must be 6x6, got {cov.shape}")
            cov = cov.copy()

        if not sensor_motion.is_finite():
            logger.warning("Non-finite motion estimate, velocity not published")
            return TwistWithCovariance()
        if cov is not None and not np.isfinite(cov).all():
            logger.warning("Non-finite motion covariance, velocity not published")
            return TwistWithCovariance()

        delta = base_to_sensor @ sensor_motion @ base_to_sensor.inverse()

        linear = delta.translation / dt
        axis, angle = delta.axis_angle()
        angular = axis * angle / dt

        return TwistWithCovariance(
            twist=Twist(linear=linear, angular=angular),
            covariance=cov,
            valid=True,
        )
