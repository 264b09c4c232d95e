"""Fusion of sensor-frame estimates into a body-frame trajectory.

The estimator reports poses relative to its own origin in the sensor
frame. The integrator turns them into body poses in the odometry frame by
sandwiching them between an anchor and the current body -> sensor offset:

    T_odom_base = anchor @ T_origin_sensor @ inverse(T_base_sensor)

The anchor is T_odom_base @ T_base_sensor at the moment the estimator was
(re)created. On the very first initialization the body pose is identity, so
the anchor is just the body -> sensor offset. After a non-finite estimate the
anchor is rebuilt from the last trusted body pose, so the trajectory
continues where it left off instead of jumping back to the origin.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum

from .config import normalize_correction_factor
from .estimator import MotionEstimate, MotionEstimateStatus, MotionEstimator
from .pose import SE3
from .transforms import TransformStore
from .velocity import elapsed_seconds

logger = logging.getLogger(__name__)


class IntegratorState(Enum):
    """Lifecycle of the estimator context."""

    UNINITIALIZED = "UNINITIALIZED"
    TRACKING = "TRACKING"


class FusionKind(Enum):
    """Outcome of integrating one estimate."""

    FUSED = "FUSED"  # new body pose available
    FAILED = "FAILED"  # estimator reported a failure status
    CORRUPTED = "CORRUPTED"  # non-finite estimate, re-anchored, output suppressed


@dataclass
class IntegratedState:
    """Persistent trajectory state.

    Attributes:
        body_pose: Last published T_odom_base (correction factor applied)
        raw_body_pose: Same pose before the correction factor; re-anchoring
            starts from this one
        last_fusion_stamp_ns: Stamp of the last successful fusion, None when
            unknown (after a failure or reset)
        last_published_stamp_ns: Stamp of the last sent transform
        needs_reanchor: A recovered anchor is waiting for the next
            initialization
        has_pose: At least one body pose has been fused
    """

    body_pose: SE3 = field(default_factory=SE3.identity)
    raw_body_pose: SE3 = field(default_factory=SE3.identity)
    last_fusion_stamp_ns: int | None = None
    last_published_stamp_ns: int | None = None
    needs_reanchor: bool = False
    has_pose: bool = False


@dataclass
class FusionResult:
    """Result of ``PoseIntegrator.integrate`` for one frame."""

    kind: FusionKind
    status: MotionEstimateStatus
    stamp_ns: int
    body_pose: SE3 | None = None
    base_to_sensor: SE3 | None = None
    previous_fusion_stamp_ns: int | None = None

    @property
    def is_fused(self) -> bool:
        return self.kind is FusionKind.FUSED

    @property
    def dt(self) -> float | None:
        """Seconds since the previous fusion, None if there was none."""
        return elapsed_seconds(self.previous_fusion_stamp_ns, self.stamp_ns)


class PoseIntegrator:
    """Owns the running body pose, the anchor and the estimator context.

    Every method takes the integrator's re-entrant lock. Callers that need a
    whole frame to be atomic (the session) hold ``lock`` around the sequence
    of calls.
    """

    def __init__(
        self,
        transform_store: TransformStore,
        base_link_frame_id: str = "base_link",
        translation_correction_factor: float = 1.0,
    ) -> None:
        """Initialize the integrator in the UNINITIALIZED state.

        Args:
            transform_store: Source of the body -> sensor offset
            base_link_frame_id: Body frame id
            translation_correction_factor: Scale applied to the body
                translation (0 is coerced to 1.0)
        """
        self._transforms = transform_store
        self._base_link_frame_id = base_link_frame_id
        self._correction_factor = normalize_correction_factor(
            translation_correction_factor
        )

        self._lock = threading.RLock()
        self._state = IntegratedState()
        self._anchor: SE3 | None = None
        self._estimator: MotionEstimator | None = None

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def lifecycle(self) -> IntegratorState:
        with self._lock:
            if self._estimator is None:
                return IntegratorState.UNINITIALIZED
            return IntegratorState.TRACKING

    @property
    def is_initialized(self) -> bool:
        return self.lifecycle is IntegratorState.TRACKING

    @property
    def estimator(self) -> MotionEstimator | None:
        with self._lock:
            return self._estimator

    @property
    def anchor(self) -> SE3 | None:
        with self._lock:
            return None if self._anchor is None else self._anchor.copy()

    @property
    def state(self) -> IntegratedState:
        """Snapshot of the integrated state."""
        with self._lock:
            return replace(
                self._state,
                body_pose=self._state.body_pose.copy(),
                raw_body_pose=self._state.raw_body_pose.copy(),
            )

    @property
    def translation_correction_factor(self) -> float:
        return self._correction_factor

    def base_to_sensor(self, sensor_frame_id: str, stamp_ns: int) -> SE3:
        """Current T_base_sensor (identity if unavailable)."""
        return self._transforms.lookup(self._base_link_frame_id, sensor_frame_id, stamp_ns)

    def initialize(
        self, stamp_ns: int, sensor_frame_id: str, estimator: MotionEstimator
    ) -> None:
        """Install a fresh estimator context and move to TRACKING.

        On the first initialization (or after an external reinitialization)
        the anchor is the body -> sensor offset at ``stamp_ns``. After a
        non-finite recovery the recovered anchor is kept.
        """
        with self._lock:
            if self._state.needs_reanchor and self._anchor is not None:
                self._state.needs_reanchor = False
            else:
                self._anchor = self.base_to_sensor(sensor_frame_id, stamp_ns)
            self._estimator = estimator

    def integrate(
        self, estimate: MotionEstimate, stamp_ns: int, sensor_frame_id: str
    ) -> FusionResult:
        """Fuse one estimator result into the trajectory.

        Raises:
            RuntimeError: If called before ``initialize``
        """
        with self._lock:
            if self._estimator is None or self._anchor is None:
                raise RuntimeError("PoseIntegrator.integrate called before initialize")

            previous_stamp = self._state.last_fusion_stamp_ns

            if not estimate.is_success or estimate.pose is None:
                logger.warning("odometry failed: %s", estimate.status.label)
                self._state.last_fusion_stamp_ns = None
                return FusionResult(
                    kind=FusionKind.FAILED,
                    status=estimate.status,
                    stamp_ns=stamp_ns,
                )

            base_to_sensor = self.base_to_sensor(sensor_frame_id, stamp_ns)

            if not estimate.pose.is_finite():
                logger.error("NaN value in odometry transform... Resetting odometer")
                self._reanchor(base_to_sensor)
                return FusionResult(
                    kind=FusionKind.CORRUPTED,
                    status=estimate.status,
                    stamp_ns=stamp_ns,
                    base_to_sensor=base_to_sensor,
                )

            raw = self._anchor @ estimate.pose @ base_to_sensor.inverse()
            body = raw.scaled_translation(self._correction_factor)

            self._state.raw_body_pose = raw
            self._state.body_pose = body
            self._state.has_pose = True
            self._state.last_fusion_stamp_ns = stamp_ns
            self._state.last_published_stamp_ns = stamp_ns

            return FusionResult(
                kind=FusionKind.FUSED,
                status=estimate.status,
                stamp_ns=stamp_ns,
                body_pose=body.copy(),
                base_to_sensor=base_to_sensor,
                previous_fusion_stamp_ns=previous_stamp,
            )

    def _reanchor(self, base_to_sensor: SE3) -> None:
        """Start over from the last trusted body pose."""
        self._anchor = self._state.raw_body_pose @ base_to_sensor
        self._estimator = None
        self._state.needs_reanchor = True
        self._state.last_fusion_stamp_ns = None

    def reinitialize(self) -> bool:
        """Drop the estimator context and anchor on external request.

        The last published pose is kept for keepalive; the next frame
        re-initializes from a freshly looked-up anchor.

        Returns:
            True if an estimator context was dropped
        """
        with self._lock:
            dropped = self._estimator is not None
            self._estimator = None
            self._anchor = None
            self._state.needs_reanchor = False
            self._state.last_fusion_stamp_ns = None
            return dropped

    def mark_published(self, stamp_ns: int) -> None:
        """Record that the transform was (re)sent at ``stamp_ns``."""
        with self._lock:
            self._state.last_published_stamp_ns = stamp_ns

    def last_known_transform(self) -> SE3 | None:
        """Last fused body pose, or None if none was fused yet."""
        with self._lock:
            if not self._state.has_pose:
                return None
            return self._state.body_pose.copy()
