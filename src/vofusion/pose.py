"""Rigid transforms between named frames.

An ``SE3`` value T_a_b maps coordinates expressed in frame b into frame a:

    p_a = T_a_b.rotation @ p_b + T_a_b.translation

Chaining follows the frame names, ``T_a_b @ T_b_c == T_a_c``. The package
names variables after that convention: ``base_to_sensor`` is T_base_sensor,
a body pose is T_odom_base and an estimator pose is T_origin_sensor.
"""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np


def _skew(v: np.ndarray) -> np.ndarray:
    return np.array(
        [
            [0.0, -v[2], v[1]],
            [v[2], 0.0, -v[0]],
            [-v[1], v[0], 0.0],
        ]
    )


@dataclass
class SE3:
    """Rotation plus translation, stored as float64 numpy arrays.

    Attributes:
        rotation: 3x3 rotation matrix
        translation: (3,) translation
    """

    rotation: np.ndarray
    translation: np.ndarray

    def __post_init__(self) -> None:
        self.rotation = np.asarray(self.rotation, dtype=np.float64)
        self.translation = np.asarray(self.translation, dtype=np.float64).reshape(-1)

        if self.rotation.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got {self.rotation.shape}")
        if self.translation.shape != (3,):
            raise ValueError(f"Translation must have 3 elements, got {self.translation.shape}")

    @classmethod
    def identity(cls) -> SE3:
        """The transform between coincident frames."""
        return cls(np.eye(3), np.zeros(3))

    @classmethod
    def from_Rt(cls, R: np.ndarray, t: np.ndarray) -> SE3:
        """Build from a rotation matrix and a translation.

        Args:
            R: 3x3 rotation matrix
            t: Translation, any shape with 3 elements

        Returns:
            SE3 with float64 copies of ``R`` and ``t``

        Raises:
            ValueError: If the shapes are wrong
        """
        return cls(R, t)

    @classmethod
    def from_translation(cls, x: float, y: float, z: float) -> SE3:
        """Offset without rotation, e.g. a sensor mounted along a body axis."""
        return cls(np.eye(3), [x, y, z])

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> SE3:
        """Build from a 4x4 homogeneous matrix (e.g. EuRoC ``T_BS``).

        Raises:
            ValueError: If ``T`` is not 4x4
        """
        T = np.asarray(T, dtype=np.float64)
        if T.shape != (4, 4):
            raise ValueError(f"Homogeneous transform must be 4x4, got {T.shape}")
        return cls(T[:3, :3], T[:3, 3])

    @classmethod
    def from_rvec_tvec(cls, rvec: np.ndarray, tvec: np.ndarray) -> SE3:
        """Build from an OpenCV Rodrigues vector and translation.

        Args:
            rvec: Rotation vector, shape (3,) or (3, 1)
            tvec: Translation, shape (3,) or (3, 1)
        """
        R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
        return cls(R, tvec)

    @classmethod
    def from_quaternion(
        cls, qw: float, qx: float, qy: float, qz: float, translation: np.ndarray
    ) -> SE3:
        """Build from a Hamilton quaternion (w, x, y, z) and a translation.

        The quaternion is normalized first. NaN or zero-length input gives a
        non-finite rotation instead of an exception, so corrupted estimator
        output can be detected with ``is_finite``.

        Args:
            qw, qx, qy, qz: Quaternion components, any scale
            translation: Translation with 3 elements
        """
        q = np.array([qw, qx, qy, qz], dtype=np.float64)
        with np.errstate(invalid="ignore", divide="ignore"):
            q = q / np.linalg.norm(q)
        w, v = q[0], q[1:]

        R = (w * w - v @ v) * np.eye(3) + 2.0 * np.outer(v, v) + 2.0 * w * _skew(v)
        return cls(R, translation)

    def to_matrix(self) -> np.ndarray:
        """4x4 homogeneous matrix."""
        T = np.eye(4)
        T[:3, :3], T[:3, 3] = self.rotation, self.translation
        return T

    def to_rvec_tvec(self) -> tuple[np.ndarray, np.ndarray]:
        """Convert to OpenCV Rodrigues form.

        Returns:
            Tuple of (rvec, tvec), both of shape (3,). ``tvec`` is a copy.
        """
        rvec, _ = cv2.Rodrigues(self.rotation)
        return rvec.reshape(3), self.translation.copy()

    def to_quaternion(self) -> tuple[float, float, float, float]:
        """Unit quaternion (w, x, y, z) with w >= 0.

        Branches on the largest of the trace and the diagonal terms
        (Shepperd). Non-finite rotations give non-finite components.
        """
        R = self.rotation
        trace = np.trace(R)

        with np.errstate(invalid="ignore", divide="ignore"):
            if trace > 0.0:
                s = 2.0 * np.sqrt(trace + 1.0)
                q = [0.25 * s, (R[2, 1] - R[1, 2]) / s, (R[0, 2] - R[2, 0]) / s, (R[1, 0] - R[0, 1]) / s]
            elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
                s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
                q = [(R[2, 1] - R[1, 2]) / s, 0.25 * s, (R[0, 1] + R[1, 0]) / s, (R[0, 2] + R[2, 0]) / s]
            elif R[1, 1] > R[2, 2]:
                s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
                q = [(R[0, 2] - R[2, 0]) / s, (R[0, 1] + R[1, 0]) / s, 0.25 * s, (R[1, 2] + R[2, 1]) / s]
            else:
                s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
                q = [(R[1, 0] - R[0, 1]) / s, (R[0, 2] + R[2, 0]) / s, (R[1, 2] + R[2, 1]) / s, 0.25 * s]

        qw, qx, qy, qz = (float(c) for c in q)
        if qw < 0.0:
            qw, qx, qy, qz = -qw, -qx, -qy, -qz
        return qw, qx, qy, qz

    def components(self) -> np.ndarray:
        """Position followed by orientation: [x, y, z, qw, qx, qy, qz]."""
        return np.concatenate([self.translation, self.to_quaternion()])

    def is_finite(self) -> bool:
        """False if any matrix entry or any of the 7 pose components is NaN/Inf."""
        if not (np.isfinite(self.rotation).all() and np.isfinite(self.translation).all()):
            return False
        return bool(np.isfinite(self.components()).all())

    def axis_angle(self) -> tuple[np.ndarray, float]:
        """Unit axis and angle in [0, pi] of the rotation.

        The identity rotation has no axis; the x axis is returned with a
        zero angle.

        Returns:
            Tuple of (axis, angle) with axis of shape (3,) and angle in radians
        """
        rvec, _ = cv2.Rodrigues(self.rotation)
        rvec = rvec.reshape(3)
        angle = float(np.linalg.norm(rvec))
        if angle < 1e-12:
            return np.array([1.0, 0.0, 0.0]), 0.0
        return rvec / angle, angle

    def rotation_vector(self) -> np.ndarray:
        """Rotation as axis times angle.

        Returns:
            (3,) vector, zero for the identity rotation
        """
        axis, angle = self.axis_angle()
        return axis * angle

    def scaled_translation(self, factor: float) -> SE3:
        """Same orientation, translation multiplied by ``factor``."""
        return SE3(self.rotation.copy(), self.translation * factor)

    def inverse(self) -> SE3:
        """T_b_a for this T_a_b."""
        R_t = self.rotation.T
        return SE3(R_t, -(R_t @ self.translation))

    def compose(self, other: SE3) -> SE3:
        """T_a_c for ``self`` = T_a_b and ``other`` = T_b_c."""
        return SE3(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def __matmul__(self, other: SE3) -> SE3:
        return self.compose(other)

    def transform_point(self, point: np.ndarray) -> np.ndarray:
        """Map one point from the source frame into the target frame."""
        return self.rotation @ np.asarray(point, dtype=np.float64).reshape(3) + self.translation

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Map Nx3 points from the source frame into the target frame.

        Args:
            points: (N, 3) array, or a single (3,) point

        Returns:
            (N, 3) array of transformed points

        Raises:
            ValueError: If the points are not 3D
        """
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        if points.shape[1] != 3:
            raise ValueError(f"Points must be Nx3, got {points.shape}")
        return points @ self.rotation.T + self.translation

    def copy(self) -> SE3:
        """Deep copy.

        Returns:
            SE3 that shares no arrays with this one
        """
        return SE3(self.rotation.copy(), self.translation.copy())

    def allclose(self, other: SE3, atol: float = 1e-9) -> bool:
        """Element-wise comparison of rotation and translation."""
        return bool(
            np.allclose(self.rotation, other.rotation, atol=atol)
            and np.allclose(self.translation, other.translation, atol=atol)
        )

    @property
    def position(self) -> np.ndarray:
        """Origin of the source frame, expressed in the target frame."""
        return self.translation.copy()

    def __repr__(self) -> str:
        x, y, z = self.translation
        qw, qx, qy, qz = self.to_quaternion()
        return f"SE3(t=[{x:.3f}, {y:.3f}, {z:.3f}], q=[{qw:.3f}, {qx:.3f}, {qy:.3f}, {qz:.3f}])"
