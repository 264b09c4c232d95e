"""Output message types emitted by the odometry session.

These dataclasses define what a transport adapter receives. They carry
plain numpy arrays and ``SE3`` values only, so any publish/subscribe layer
can serialize them.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .pose import SE3


@dataclass
class Header:
    """Timestamp and reference frame of a message."""

    stamp_ns: int
    frame_id: str


@dataclass
class Twist:
    """Linear (m/s) and angular (rad/s) velocity."""

    linear: np.ndarray = field(default_factory=lambda: np.zeros(3))
    angular: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        self.linear = np.asarray(self.linear, dtype=np.float64).flatten()
        self.angular = np.asarray(self.angular, dtype=np.float64).flatten()

    @classmethod
    def zero(cls) -> Twist:
        return cls()


@dataclass
class TwistWithCovariance:
    """Twist plus its 6x6 covariance (linear block first).

    ``valid`` is False when no velocity could be computed; the twist is then
    zero and ``covariance`` is None.
    """

    twist: Twist = field(default_factory=Twist.zero)
    covariance: np.ndarray | None = None
    valid: bool = False

    def flat_covariance(self) -> np.ndarray:
        """Return the covariance as 36 row-major values (zeros if unset)."""
        if self.covariance is None:
            return np.zeros(36)
        return np.asarray(self.covariance, dtype=np.float64).reshape(36).copy()


@dataclass
class Odometry:
    """Trajectory message: body pose in the odometry frame plus twist."""

    header: Header
    child_frame_id: str
    pose: SE3 = field(default_factory=SE3.identity)
    twist: TwistWithCovariance = field(default_factory=TwistWithCovariance)


@dataclass
class PoseStamped:
    """Pose-only envelope for consumers that do not need the twist."""

    header: Header
    pose: SE3 = field(default_factory=SE3.identity)


@dataclass
class OdometryInfo:
    """Per-frame diagnostics."""

    stamp_ns: int
    runtime: float = 0.0  # seconds of wall time spent on the frame
    change_reference_frame: bool = False
    fast_threshold: float = 0.0
    num_total_detected_keypoints: int = 0
    num_total_keypoints: int = 0
    num_detected_keypoints: list[int] = field(default_factory=list)
    num_keypoints: list[int] = field(default_factory=list)
    motion_estimate_status_code: int = 0
    motion_estimate_status: str = ""
    num_matches: int = 0
    num_inliers: int = 0
    num_reprojection_failures: int = 0
    motion_estimate_valid: bool = False


@dataclass
class StampedTransform:
    """Transform broadcast into the shared transform tree."""

    stamp_ns: int
    frame_id: str
    child_frame_id: str
    transform: SE3
