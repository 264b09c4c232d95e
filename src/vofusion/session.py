"""Odometry session orchestrating estimator, integrator and outputs.

Per frame, under the integrator lock:

1. initialize the estimator context if needed (first frame or after reset)
2. run the estimator on the image
3. fuse the estimate into the body trajectory
4. derive the twist from the incremental motion
5. publish trajectory, pose, diagnostics and transform

A keepalive timer re-sends the last known transform when no frame has
been published for longer than the configured interval.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping

import numpy as np

from .camera import CameraInfo, to_mono8
from .config import OdometryConfig, merge_estimator_options
from .estimator import EstimatorFactory, MotionEstimate, MotionEstimator
from .integrator import FusionKind, PoseIntegrator
from .messages import (
    Header,
    Odometry,
    OdometryInfo,
    PoseStamped,
    StampedTransform,
)
from .pose import SE3
from .publishers import OdometryPublisher
from .transforms import TransformStore
from .velocity import VelocityEstimator

logger = logging.getLogger(__name__)


class FrameKind(Enum):
    """What happened to a processed frame."""

    INITIALIZED = "INITIALIZED"  # first frame of an estimator context, no pose
    FUSED = "FUSED"
    FAILED = "FAILED"
    SUPPRESSED = "SUPPRESSED"  # non-finite estimate, nothing published


@dataclass
class FrameOutput:
    """Everything published for one frame."""

    kind: FrameKind
    stamp_ns: int
    odometry: Odometry | None = None
    pose: PoseStamped | None = None
    info: OdometryInfo | None = None
    transform: StampedTransform | None = None


class OdometrySession:
    """Single-stream visual odometry session.

    Example:
        >>> session = OdometrySession(config, transforms, factory, publisher)
        >>> session.set_depth_source(depth)
        >>> with session:
        ...     for image, info in frames:
        ...         session.process(image, info)
    """

    def __init__(
        self,
        config: OdometryConfig,
        transform_store: TransformStore,
        estimator_factory: EstimatorFactory,
        publisher: OdometryPublisher,
        default_estimator_options: Mapping[str, Any] | None = None,
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        """Initialize the session.

        Args:
            config: Odometry options
            transform_store: Source of the body -> sensor offset
            estimator_factory: Builds a fresh estimator context
            publisher: Output sink
            default_estimator_options: Estimator defaults; configured tuning
                keys are overlaid on these
            clock: Current time in nanoseconds (used for keepalive stamps)
        """
        self._config = config
        self._factory = estimator_factory
        self._publisher = publisher
        self._default_options = dict(default_estimator_options or {})
        self._clock = clock

        self._integrator = PoseIntegrator(
            transform_store,
            base_link_frame_id=config.base_link_frame_id,
            translation_correction_factor=config.translation_correction_factor,
        )
        self._velocity = VelocityEstimator()
        self._depth_source: Any = None
        self._keepalive: KeepaliveTimer | None = None

    @property
    def config(self) -> OdometryConfig:
        return self._config

    @property
    def integrator(self) -> PoseIntegrator:
        return self._integrator

    @property
    def current_pose(self) -> SE3 | None:
        """Last fused body pose, None before the first fusion."""
        return self._integrator.last_known_transform()

    @property
    def estimator_options(self) -> dict[str, str]:
        """Options handed to the estimator factory."""
        return merge_estimator_options(self._default_options, self._config.estimator_options)

    def set_depth_source(self, source: Any) -> None:
        """Set the depth source; must be called once before ``process``."""
        self._depth_source = source

    def process(self, image: np.ndarray, camera_info: CameraInfo) -> FrameOutput:
        """Run one frame through the pipeline and publish the results.

        Args:
            image: Rectified image (converted to mono8 if needed)
            camera_info: Calibration, timestamp and sensor frame of the image

        Returns:
            The messages published for this frame

        Raises:
            RuntimeError: If no depth source was set
        """
        if self._depth_source is None:
            raise RuntimeError("set_depth_source() must be called before process()")

        start_time = time.perf_counter()
        stamp_ns = camera_info.stamp_ns

        mono = to_mono8(image)

        with self._integrator.lock:
            if not self._integrator.is_initialized:
                # Installed only after its first frame; an estimator that raises
                # here leaves the integrator UNINITIALIZED.
                estimator = self._create_estimator(camera_info)
                estimator.process_frame(mono, self._depth_source)
                self._integrator.initialize(stamp_ns, camera_info.frame_id, estimator)

                # No reference frame yet, so no pose to report.
                info = self._build_info(estimator, stamp_ns, start_time)
                self._publisher.publish_info(info)
                return FrameOutput(kind=FrameKind.INITIALIZED, stamp_ns=stamp_ns, info=info)

            estimator = self._integrator.estimator
            estimator.process_frame(mono, self._depth_source)

            estimate = MotionEstimate.from_estimator(estimator)
            result = self._integrator.integrate(estimate, stamp_ns, camera_info.frame_id)

            if result.kind is FusionKind.CORRUPTED:
                return FrameOutput(kind=FrameKind.SUPPRESSED, stamp_ns=stamp_ns)

            odom_msg = Odometry(
                header=Header(stamp_ns=stamp_ns, frame_id=self._config.odom_frame_id),
                child_frame_id=self._config.base_link_frame_id,
            )
            pose_msg = PoseStamped(
                header=Header(stamp_ns=stamp_ns, frame_id=self._config.base_link_frame_id)
            )
            transform_msg = None

            if result.is_fused:
                if self._config.publish_tf:
                    transform_msg = StampedTransform(
                        stamp_ns=stamp_ns,
                        frame_id=self._config.odom_frame_id,
                        child_frame_id=self._config.base_link_frame_id,
                        transform=result.body_pose.copy(),
                    )
                    self._publisher.send_transform(transform_msg)

                odom_msg.pose = result.body_pose.copy()
                pose_msg.pose = result.body_pose.copy()
                odom_msg.twist = self._velocity.estimate(
                    estimate.motion,
                    result.base_to_sensor,
                    result.dt,
                    estimate.covariance,
                )
                kind = FrameKind.FUSED
            else:
                kind = FrameKind.FAILED

            self._publisher.publish_odometry(odom_msg)
            self._publisher.publish_pose(pose_msg)

            info = self._build_info(estimator, stamp_ns, start_time)
            self._publisher.publish_info(info)

        return FrameOutput(
            kind=kind,
            stamp_ns=stamp_ns,
            odometry=odom_msg,
            pose=pose_msg,
            info=info,
            transform=transform_msg,
        )

    def reinitialize(self) -> None:
        """Drop the estimator context; the next frame starts a new one."""
        if self._integrator.reinitialize():
            logger.info("Reinitializing visual odometry")

    def publish_last_known_transform(self, now_ns: int | None = None) -> bool:
        """Re-send the last known transform if the keepalive interval elapsed.

        Only reads the trajectory; the published stamp is the sole state
        that changes.

        Returns:
            True if a transform was sent
        """
        if not self._config.publish_tf:
            return False

        now = self._clock() if now_ns is None else int(now_ns)
        interval_ns = int(self._config.keepalive_interval * 1e9)

        with self._integrator.lock:
            pose = self._integrator.last_known_transform()
            if pose is None:
                return False
            last = self._integrator.state.last_published_stamp_ns
            if last is not None and now - last <= interval_ns:
                return False

            self._integrator.mark_published(now)
            self._publisher.send_transform(
                StampedTransform(
                    stamp_ns=now,
                    frame_id=self._config.odom_frame_id,
                    child_frame_id=self._config.base_link_frame_id,
                    transform=pose,
                )
            )
        return True

    def start(self) -> None:
        """Start the keepalive timer (if transforms are published)."""
        if self._keepalive is not None or not self._config.publish_tf:
            return
        self._keepalive = KeepaliveTimer(self, period=self._config.keepalive_check_period)
        self._keepalive.start()

    def stop(self) -> None:
        """Stop the keepalive timer."""
        if self._keepalive is not None:
            self._keepalive.stop()
            self._keepalive = None

    def _create_estimator(self, camera_info: CameraInfo) -> MotionEstimator:
        options = self.estimator_options
        estimator = self._factory(camera_info.reduced_intrinsics(), dict(options))

        lines = [f"{key.replace('-', '_')} = {value}" for key, value in options.items()]
        logger.info(
            "Initialized visual odometry with the following options:\n%s",
            "\n".join(lines),
        )
        return estimator

    @staticmethod
    def _build_info(
        estimator: MotionEstimator, stamp_ns: int, start_time: float
    ) -> OdometryInfo:
        diag = estimator.diagnostics()
        status = estimator.motion_estimate_status()
        return OdometryInfo(
            stamp_ns=stamp_ns,
            change_reference_frame=diag.change_reference_frame,
            fast_threshold=diag.fast_threshold,
            num_total_detected_keypoints=diag.num_total_detected_keypoints,
            num_total_keypoints=diag.num_total_keypoints,
            num_detected_keypoints=[lvl.num_detected_keypoints for lvl in diag.levels],
            num_keypoints=[lvl.num_keypoints for lvl in diag.levels],
            motion_estimate_status_code=status.value,
            motion_estimate_status=status.label,
            num_matches=diag.num_matches,
            num_inliers=diag.num_inliers,
            num_reprojection_failures=diag.num_reprojection_failures,
            motion_estimate_valid=diag.motion_estimate_valid,
            runtime=time.perf_counter() - start_time,
        )

    def __enter__(self) -> OdometrySession:
        """Context manager entry - starts the keepalive timer."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - stops the keepalive timer."""
        self.stop()


class KeepaliveTimer:
    """Background thread calling ``publish_last_known_transform`` periodically."""

    def __init__(self, session: OdometrySession, period: float = 1.0) -> None:
        """Create a stopped timer.

        Args:
            session: Session whose last transform is re-sent
            period: Seconds between keepalive checks
        """
        self._session = session
        self._period = float(period)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        """True while the keepalive thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the keepalive thread. Does nothing if it is already running."""
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="odometry-keepalive"
        )
        self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        """Signal the thread to stop and wait for it to exit.

        Safe to call on a timer that was never started.

        Args:
            timeout: Seconds to wait for the thread to join
        """
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._period):
            self._session.publish_last_known_transform()

    def __enter__(self) -> KeepaliveTimer:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
