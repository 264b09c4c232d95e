"""Rerun-based output sink for the odometry session."""

from __future__ import annotations

import numpy as np
import rerun as rr
import rerun.blueprint as rrb

from ..messages import Odometry, OdometryInfo, PoseStamped, StampedTransform
from ..publishers import OdometryPublisher


class RerunPublisher(OdometryPublisher):
    """Streams odometry outputs to a Rerun viewer.

    Entity hierarchy:
        world/
            <odom>/<base_link>  - Broadcast body transform
            trajectory          - Body positions of fused frames (yellow)
        twist/
            linear/{x,y,z}      - Linear velocity (m/s)
            angular/{x,y,z}     - Angular velocity (rad/s)
        diagnostics/
            inliers             - Inlier matches per frame
            runtime_ms          - Processing time per frame
            status              - Status text of failed frames

    Pose messages are not shown. On failed frames they carry an identity
    placeholder, so the body pose is drawn from ``send_transform`` only.
    """

    def __init__(
        self,
        app_name: str = "python-vofusion",
        spawn: bool = True,
        init: bool = True,
    ) -> None:
        """Initialize Rerun output.

        Args:
            app_name: Name for the Rerun application window
            spawn: If True, automatically spawn the Rerun viewer
            init: If False, log into an already initialized recording
        """
        if init:
            rr.init(app_name, spawn=spawn)
            self._setup_layout()
        self._positions: list[np.ndarray] = []

    def _setup_layout(self) -> None:
        """Configure the viewer layout."""
        blueprint = rrb.Blueprint(
            rrb.Horizontal(
                contents=[
                    rrb.Spatial3DView(name="Trajectory", origin="world"),
                    rrb.Vertical(
                        contents=[
                            rrb.TimeSeriesView(name="Twist", origin="twist"),
                            rrb.TimeSeriesView(name="Diagnostics", origin="diagnostics"),
                        ]
                    ),
                ]
            )
        )
        rr.send_blueprint(blueprint)

    @staticmethod
    def _set_time(stamp_ns: int) -> None:
        rr.set_time("timestamp", duration=stamp_ns / 1e9)

    def send_transform(self, msg: StampedTransform) -> None:
        self._set_time(msg.stamp_ns)
        rr.log(
            f"world/{msg.frame_id}/{msg.child_frame_id}",
            rr.Transform3D(
                translation=msg.transform.translation,
                mat3x3=msg.transform.rotation,
            ),
        )

        # Keepalive re-sends the same pose; draw each position once.
        position = msg.transform.position
        if self._positions and np.array_equal(self._positions[-1], position):
            return
        self._positions.append(position)
        if len(self._positions) < 2:
            return

        rr.log(
            "world/trajectory",
            rr.LineStrips3D(
                [np.array(self._positions)],
                colors=[[255, 255, 0]],  # Yellow
                radii=0.01,
            ),
        )

    def publish_odometry(self, msg: Odometry) -> None:
        self._set_time(msg.header.stamp_ns)
        if not msg.twist.valid:
            return

        twist = msg.twist.twist
        for axis, value in zip("xyz", twist.linear):
            rr.log(f"twist/linear/{axis}", rr.Scalars(float(value)))
        for axis, value in zip("xyz", twist.angular):
            rr.log(f"twist/angular/{axis}", rr.Scalars(float(value)))

    def publish_pose(self, msg: PoseStamped) -> None:
        """Ignore pose messages.

        The same pose arrives through ``send_transform`` on fused frames,
        while failed frames only carry an identity placeholder.

        Args:
            msg: Pose message (unused)
        """
        return None

    def publish_info(self, msg: OdometryInfo) -> None:
        self._set_time(msg.stamp_ns)
        rr.log("diagnostics/inliers", rr.Scalars(float(msg.num_inliers)))
        rr.log("diagnostics/runtime_ms", rr.Scalars(msg.runtime * 1000.0))
        if msg.motion_estimate_status != "SUCCESS":
            rr.log(
                "diagnostics/status",
                rr.TextLog(msg.motion_estimate_status, level=rr.TextLogLevel.WARN),
            )

    @property
    def trajectory_positions(self) -> np.ndarray:
        """Positions logged so far as an Nx3 array."""
        if not self._positions:
            return np.zeros((0, 3))
        return np.array(self._positions)
