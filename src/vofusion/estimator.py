"""Contract of the external per-frame motion estimator.

The keypoint detection, matching and motion estimation algorithm is not
part of this package. The odometry session only depends on the capability
set defined by ``MotionEstimator``, so any concrete estimator (a binding to
a native library, a learned model, a test double) can be plugged in through
an ``EstimatorFactory``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import numpy as np

from .camera import CameraIntrinsics
from .pose import SE3


class MotionEstimateStatus(Enum):
    """Status code reported by the estimator for the latest frame."""

    NO_DATA = 0
    SUCCESS = 1
    INSUFFICIENT_INLIERS = 2
    OPTIMIZATION_FAILURE = 3
    REPROJECTION_ERROR_TOO_HIGH = 4

    @property
    def is_success(self) -> bool:
        return self is MotionEstimateStatus.SUCCESS

    @property
    def label(self) -> str:
        """Human-readable status string."""
        return self.name


@dataclass
class LevelStats:
    """Keypoint counts for one image pyramid level."""

    num_detected_keypoints: int = 0
    num_keypoints: int = 0


@dataclass
class EstimatorDiagnostics:
    """Per-frame counters exposed by the estimator.

    Attributes:
        levels: Keypoint counts per pyramid level (finest first)
        change_reference_frame: True if the estimator switched its reference
            frame (keyframe change) on this frame
        fast_threshold: Current adaptive FAST detector threshold
        num_matches: Number of feature matches against the reference frame
        num_inliers: Number of inlier matches
        num_reprojection_failures: Matches rejected for reprojection error
        motion_estimate_valid: Whether the estimator considers its motion
            estimate valid
    """

    levels: list[LevelStats] = field(default_factory=list)
    change_reference_frame: bool = False
    fast_threshold: float = 0.0
    num_matches: int = 0
    num_inliers: int = 0
    num_reprojection_failures: int = 0
    motion_estimate_valid: bool = False

    @property
    def num_total_detected_keypoints(self) -> int:
        return sum(level.num_detected_keypoints for level in self.levels)

    @property
    def num_total_keypoints(self) -> int:
        return sum(level.num_keypoints for level in self.levels)


class MotionEstimator(ABC):
    """Opaque per-frame visual odometry estimator.

    All poses are expressed in the sensor frame: ``pose()`` is the sensor
    pose relative to the estimator's internal origin (the sensor pose when
    the estimator was created) and ``motion_estimate()`` is the motion of
    the sensor since the previous frame.
    """

    @abstractmethod
    def process_frame(self, image: np.ndarray, depth_source: Any) -> None:
        """Consume one rectified mono8 image."""

    @abstractmethod
    def motion_estimate_status(self) -> MotionEstimateStatus:
        """Status of the latest ``process_frame`` call."""

    @abstractmethod
    def pose(self) -> SE3:
        """Sensor-frame absolute pose (valid only on success)."""

    @abstractmethod
    def motion_estimate(self) -> SE3:
        """Sensor-frame incremental motion since the previous frame."""

    @abstractmethod
    def motion_estimate_covariance(self) -> np.ndarray:
        """6x6 covariance of the incremental motion, linear then angular."""

    @abstractmethod
    def diagnostics(self) -> EstimatorDiagnostics:
        """Counters describing the latest frame."""


EstimatorFactory = Callable[[CameraIntrinsics, dict[str, str]], MotionEstimator]


@dataclass
class MotionEstimate:
    """Snapshot of the estimator output for one frame."""

    status: MotionEstimateStatus
    pose: SE3 | None = None
    motion: SE3 | None = None
    covariance: np.ndarray | None = None

    @property
    def is_success(self) -> bool:
        return self.status.is_success

    @classmethod
    def from_estimator(cls, estimator: MotionEstimator) -> MotionEstimate:
        """Read status, pose, motion and covariance after ``process_frame``.

        Pose, motion and covariance are only queried on success.
        """
        status = estimator.motion_estimate_status()
        if not status.is_success:
            return cls(status=status)
        return cls(
            status=status,
            pose=estimator.pose(),
            motion=estimator.motion_estimate(),
            covariance=np.asarray(estimator.motion_estimate_covariance(), dtype=np.float64),
        )
