"""Output sinks for the odometry session.

The publish/subscribe transport is not part of this package; a transport
adapter subclasses ``OdometryPublisher``. ``RecordingPublisher`` keeps
everything in memory, which is what tests and simple embeddings use.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod

from .messages import Odometry, OdometryInfo, PoseStamped, StampedTransform


class OdometryPublisher(ABC):
    """Receives the per-frame outputs of an ``OdometrySession``.

    Methods may be called from the keepalive thread as well as the frame
    thread, so implementations must be thread-safe.
    """

    @abstractmethod
    def publish_odometry(self, msg: Odometry) -> None:
        """Publish the trajectory message.

        Args:
            msg: Body pose in the odometry frame plus twist in the body frame
        """

    @abstractmethod
    def publish_pose(self, msg: PoseStamped) -> None:
        """Publish the pose-only message.

        Args:
            msg: Same pose and header as the matching odometry message
        """

    @abstractmethod
    def publish_info(self, msg: OdometryInfo) -> None:
        """Publish per-frame diagnostics.

        Args:
            msg: Estimator status, keypoint and inlier counts, runtime
        """

    @abstractmethod
    def send_transform(self, msg: StampedTransform) -> None:
        """Broadcast the odometry -> body transform.

        Args:
            msg: Transform from a fused frame or a keepalive re-send
        """


class RecordingPublisher(OdometryPublisher):
    """Publisher that stores every message in lists.

    Attributes:
        odometry: Odometry messages in publish order
        poses: Pose messages in publish order
        infos: Diagnostics messages in publish order
        transforms: Broadcast transforms in send order
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.odometry: list[Odometry] = []
        self.poses: list[PoseStamped] = []
        self.infos: list[OdometryInfo] = []
        self.transforms: list[StampedTransform] = []

    def publish_odometry(self, msg: Odometry) -> None:
        with self._lock:
            self.odometry.append(msg)

    def publish_pose(self, msg: PoseStamped) -> None:
        with self._lock:
            self.poses.append(msg)

    def publish_info(self, msg: OdometryInfo) -> None:
        with self._lock:
            self.infos.append(msg)

    def send_transform(self, msg: StampedTransform) -> None:
        with self._lock:
            self.transforms.append(msg)

    def clear(self) -> None:
        """Drop all recorded messages."""
        with self._lock:
            self.odometry.clear()
            self.poses.clear()
            self.infos.clear()
            self.transforms.clear()
