"""Python VO fusion - body-frame trajectory from a per-frame visual odometry estimator."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .camera import CameraInfo, CameraIntrinsics, to_mono8
from .config import OdometryConfig, merge_estimator_options, normalize_correction_factor
from .estimator import (
    EstimatorDiagnostics,
    EstimatorFactory,
    LevelStats,
    MotionEstimate,
    MotionEstimateStatus,
    MotionEstimator,
)
from .integrator import (
    FusionKind,
    FusionResult,
    IntegratedState,
    IntegratorState,
    PoseIntegrator,
)
from .messages import (
    Header,
    Odometry,
    OdometryInfo,
    PoseStamped,
    StampedTransform,
    Twist,
    TwistWithCovariance,
)
from .pose import SE3
from .publishers import OdometryPublisher, RecordingPublisher
from .session import FrameKind, FrameOutput, KeepaliveTimer, OdometrySession
from .transforms import TransformLookupError, TransformStore
from .velocity import VelocityEstimator, elapsed_seconds
from .visualization import RerunPublisher

__all__ = [
    "__version__",
    # Pose
    "SE3",
    # Camera
    "CameraInfo",
    "CameraIntrinsics",
    "to_mono8",
    # Configuration
    "OdometryConfig",
    "merge_estimator_options",
    "normalize_correction_factor",
    # Estimator contract
    "MotionEstimator",
    "MotionEstimate",
    "MotionEstimateStatus",
    "EstimatorDiagnostics",
    "EstimatorFactory",
    "LevelStats",
    # Transforms
    "TransformStore",
    "TransformLookupError",
    # Integration
    "PoseIntegrator",
    "IntegratorState",
    "IntegratedState",
    "FusionKind",
    "FusionResult",
    "VelocityEstimator",
    "elapsed_seconds",
    # Session
    "OdometrySession",
    "KeepaliveTimer",
    "FrameKind",
    "FrameOutput",
    # Messages
    "Header",
    "Odometry",
    "OdometryInfo",
    "PoseStamped",
    "StampedTransform",
    "Twist",
    "TwistWithCovariance",
    # Output
    "OdometryPublisher",
    "RecordingPublisher",
    # Visualization
    "RerunPublisher",
]
