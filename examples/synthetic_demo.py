#!/usr/bin/env python3
"""Demo of the odometry session on a synthetic circular trajectory.

A scripted estimator replays camera poses along a circle, with a few
tracking failures and one corrupted (NaN) estimate, and the session output
is streamed to Rerun.

Usage:
    uv run python examples/synthetic_demo.py
"""

import logging
import time

import numpy as np

from vofusion import (
    SE3,
    CameraInfo,
    CameraIntrinsics,
    EstimatorDiagnostics,
    FrameKind,
    LevelStats,
    MotionEstimateStatus,
    MotionEstimator,
    OdometryConfig,
    OdometrySession,
    RerunPublisher,
    TransformStore,
)

FRAME_PERIOD_NS = 50_000_000  # 20 Hz
FAILED_FRAMES = {40, 41, 42}
CORRUPTED_FRAME = 120


class CircleEstimator(MotionEstimator):
    """Reports the pose of a camera driving on a circle, in its own origin."""

    def __init__(self, start_frame: int, radius: float = 3.0, step: float = 0.02) -> None:
        self._frame = start_frame - 1
        self._start = self._world_pose(start_frame, radius, step)
        self._radius = radius
        self._step = step
        self._pose = SE3.identity()
        self._motion = SE3.identity()
        self._status = MotionEstimateStatus.NO_DATA

    @staticmethod
    def _world_pose(frame: int, radius: float, step: float) -> SE3:
        # Camera z forward, moving counter-clockwise in the x-z plane.
        angle = frame * step
        c, s = np.cos(angle), np.sin(angle)
        rotation = np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])
        return SE3(rotation=rotation, translation=[radius * s, 0.0, radius * (1.0 - c)])

    def process_frame(self, image, depth_source) -> None:
        self._frame += 1
        if self._frame in FAILED_FRAMES:
            self._status = MotionEstimateStatus.INSUFFICIENT_INLIERS
            return

        current = self._start.inverse() @ self._world_pose(self._frame, self._radius, self._step)
        self._motion = self._pose.inverse() @ current
        self._pose = current
        self._status = MotionEstimateStatus.SUCCESS

        if self._frame == CORRUPTED_FRAME:
            self._pose = SE3(rotation=np.eye(3), translation=[np.nan, 0.0, 0.0])

    def motion_estimate_status(self) -> MotionEstimateStatus:
        return self._status

    def pose(self) -> SE3:
        return self._pose

    def motion_estimate(self) -> SE3:
        return self._motion

    def motion_estimate_covariance(self) -> np.ndarray:
        return np.eye(6) * 1e-3

    def diagnostics(self) -> EstimatorDiagnostics:
        ok = self._status.is_success
        return EstimatorDiagnostics(
            levels=[LevelStats(400, 300), LevelStats(150, 120)],
            num_matches=250 if ok else 20,
            num_inliers=200 if ok else 5,
            motion_estimate_valid=ok,
        )


def main() -> None:
    """Run the synthetic odometry demo."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    n_frames = 300
    frame_counter = {"value": 0}

    def factory(intrinsics, options) -> CircleEstimator:
        return CircleEstimator(start_frame=frame_counter["value"])

    config = OdometryConfig()

    # Camera looking along the body x axis, mounted 0.2 m forward.
    transforms = TransformStore.from_config(config)
    transforms.set_transform(
        "base_link",
        "cam0",
        SE3(
            rotation=np.array([[0.0, 0.0, 1.0], [-1.0, 0.0, 0.0], [0.0, -1.0, 0.0]]),
            translation=[0.2, 0.0, 0.0],
        ),
    )

    camera = CameraInfo(
        stamp_ns=0,
        frame_id="cam0",
        intrinsics=CameraIntrinsics(fx=458.0, fy=457.0, cx=367.0, cy=248.0, width=752, height=480),
    )
    image = np.zeros((480, 752), dtype=np.uint8)

    session = OdometrySession(
        config,
        transforms,
        factory,
        RerunPublisher("python-vofusion-synthetic"),
    )
    session.set_depth_source(np.ones((480, 752), dtype=np.float32))

    # Keepalive stamps come from the wall clock, so frame stamps do too.
    start_ns = time.time_ns()
    counts = {kind: 0 for kind in FrameKind}
    with session:
        for i in range(n_frames):
            frame_counter["value"] = i
            output = session.process(image, camera.with_stamp(start_ns + i * FRAME_PERIOD_NS))
            counts[output.kind] += 1

    print()
    print("=" * 40)
    print("SUMMARY")
    print("=" * 40)
    for kind, count in counts.items():
        print(f"{kind.value:<12} {count:5d}")

    pose = session.current_pose
    if pose is not None:
        pos = pose.position
        print(f"Final position: [{pos[0]:.2f}, {pos[1]:.2f}, {pos[2]:.2f}]")

    print()
    print("Done! Check Rerun viewer.")


if __name__ == "__main__":
    main()
