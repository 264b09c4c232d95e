"""Shared fixtures: a scripted estimator test double and helpers."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pytest

from vofusion import (
    SE3,
    CameraInfo,
    CameraIntrinsics,
    EstimatorDiagnostics,
    LevelStats,
    MotionEstimateStatus,
    MotionEstimator,
    OdometryConfig,
    OdometrySession,
    RecordingPublisher,
    TransformStore,
)

SEC = 1_000_000_000


@dataclass
class Step:
    """What the fake estimator reports for one frame."""

    status: MotionEstimateStatus = MotionEstimateStatus.SUCCESS
    pose: SE3 = field(default_factory=SE3.identity)
    motion: SE3 = field(default_factory=SE3.identity)
    covariance: np.ndarray = field(default_factory=lambda: np.eye(6) * 0.01)
    inliers: int = 42


def success(pose: SE3, motion: SE3 | None = None, covariance=None) -> Step:
    step = Step(pose=pose, motion=motion if motion is not None else SE3.identity())
    if covariance is not None:
        step.covariance = np.asarray(covariance, dtype=np.float64)
    return step


def failure(status=MotionEstimateStatus.INSUFFICIENT_INLIERS) -> Step:
    return Step(status=status)


def nan_pose() -> SE3:
    return SE3(rotation=np.eye(3), translation=np.array([np.nan, 0.0, 0.0]))


class FakeEstimator(MotionEstimator):
    """Replays steps popped from its factory on every ``process_frame``."""

    def __init__(self, factory: ScriptedFactory, intrinsics, options) -> None:
        self.factory = factory
        self.intrinsics = intrinsics
        self.options = options
        self.images: list[np.ndarray] = []
        self.depth_sources: list[Any] = []
        self._step = Step(status=MotionEstimateStatus.NO_DATA)

    def process_frame(self, image, depth_source) -> None:
        self.images.append(image)
        self.depth_sources.append(depth_source)
        self._step = self.factory.next_step()

    def motion_estimate_status(self) -> MotionEstimateStatus:
        return self._step.status

    def pose(self) -> SE3:
        return self._step.pose

    def motion_estimate(self) -> SE3:
        return self._step.motion

    def motion_estimate_covariance(self) -> np.ndarray:
        return self._step.covariance

    def diagnostics(self) -> EstimatorDiagnostics:
        return EstimatorDiagnostics(
            levels=[LevelStats(120, 100), LevelStats(60, 50)],
            change_reference_frame=False,
            fast_threshold=10.0,
            num_matches=80,
            num_inliers=self._step.inliers,
            num_reprojection_failures=3,
            motion_estimate_valid=self._step.status.is_success,
        )


class ScriptedFactory:
    """Estimator factory whose estimators share one queue of steps.

    Frames beyond the script report NO_DATA.
    """

    def __init__(self, steps: list[Step] | None = None) -> None:
        self.steps: deque[Step] = deque(steps or [])
        self.created: list[FakeEstimator] = []

    def push(self, *steps: Step) -> None:
        self.steps.extend(steps)

    def next_step(self) -> Step:
        if not self.steps:
            return Step(status=MotionEstimateStatus.NO_DATA)
        return self.steps.popleft()

    def __call__(self, intrinsics, options) -> FakeEstimator:
        estimator = FakeEstimator(self, intrinsics, options)
        self.created.append(estimator)
        return estimator


def make_camera_info(stamp_ns: int, frame_id: str = "cam0") -> CameraInfo:
    return CameraInfo(
        stamp_ns=stamp_ns,
        frame_id=frame_id,
        intrinsics=CameraIntrinsics(
            fx=458.0, fy=457.0, cx=367.0, cy=248.0, width=752, height=480
        ),
    )


def blank_image() -> np.ndarray:
    return np.zeros((480, 752), dtype=np.uint8)


@pytest.fixture
def transforms() -> TransformStore:
    """Transform store with an identity body -> sensor offset."""
    store = TransformStore()
    store.set_transform("base_link", "cam0", SE3.identity())
    return store


@pytest.fixture
def factory() -> ScriptedFactory:
    return ScriptedFactory()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def clock():
    """Mutable fake clock in nanoseconds."""

    class _Clock:
        now = 0

        def __call__(self) -> int:
            return self.now

    return _Clock()


@pytest.fixture
def session(transforms, factory, publisher, clock) -> OdometrySession:
    sess = OdometrySession(
        OdometryConfig(),
        transforms,
        factory,
        publisher,
        clock=clock,
    )
    sess.set_depth_source(object())
    return sess
