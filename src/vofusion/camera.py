"""Camera calibration and image conversion for the odometry input."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np
import yaml


@dataclass
class CameraIntrinsics:
    """Camera intrinsic parameters (pinhole model, rectified image)."""

    fx: float  # Focal length x (pixels)
    fy: float  # Focal length y (pixels)
    cx: float  # Principal point x (pixels)
    cy: float  # Principal point y (pixels)
    width: int
    height: int

    def to_matrix(self) -> np.ndarray:
        """Return 3x3 camera intrinsic matrix K."""
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )


@dataclass
class CameraInfo:
    """Calibration that accompanies every image frame.

    Attributes:
        stamp_ns: Timestamp of the frame in nanoseconds
        frame_id: Sensor frame the image was captured in
        intrinsics: Full-resolution intrinsics
        binning_x: Horizontal binning factor (0 and 1 both mean no binning)
        binning_y: Vertical binning factor
    """

    stamp_ns: int
    frame_id: str
    intrinsics: CameraIntrinsics
    binning_x: int = 1
    binning_y: int = 1

    def reduced_intrinsics(self) -> CameraIntrinsics:
        """Return intrinsics at the reduced (binned) resolution.

        These are the parameters handed to the estimator.
        """
        bx = max(int(self.binning_x), 1)
        by = max(int(self.binning_y), 1)
        K = self.intrinsics
        return CameraIntrinsics(
            fx=K.fx / bx,
            fy=K.fy / by,
            cx=K.cx / bx,
            cy=K.cy / by,
            width=max(K.width // bx, 1),
            height=max(K.height // by, 1),
        )

    def with_stamp(self, stamp_ns: int) -> CameraInfo:
        """Return a copy carrying a different timestamp."""
        return CameraInfo(
            stamp_ns=stamp_ns,
            frame_id=self.frame_id,
            intrinsics=self.intrinsics,
            binning_x=self.binning_x,
            binning_y=self.binning_y,
        )

    @classmethod
    def from_yaml(cls, yaml_path: str | Path, frame_id: str = "cam0") -> CameraInfo:
        """Load calibration from an EuRoC sensor.yaml.

        Args:
            yaml_path: Path to sensor.yaml
            frame_id: Frame id to attach to the calibration

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If intrinsics or resolution are missing/invalid
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Calibration file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        # [fu, fv, cu, cv]
        intrinsics_list = data.get("intrinsics")
        if intrinsics_list is None or len(intrinsics_list) != 4:
            raise ValueError(f"Invalid intrinsics in {yaml_path}")

        resolution = data.get("resolution")
        if resolution is None or len(resolution) != 2:
            raise ValueError(f"Invalid resolution in {yaml_path}")

        intrinsics = CameraIntrinsics(
            fx=float(intrinsics_list[0]),
            fy=float(intrinsics_list[1]),
            cx=float(intrinsics_list[2]),
            cy=float(intrinsics_list[3]),
            width=int(resolution[0]),
            height=int(resolution[1]),
        )
        return cls(stamp_ns=0, frame_id=frame_id, intrinsics=intrinsics)


def to_mono8(image: np.ndarray) -> np.ndarray:
    """Convert an image to a contiguous single-channel uint8 array.

    Args:
        image: HxW grayscale, HxWx3 BGR or HxWx4 BGRA image

    Returns:
        HxW uint8 array whose row stride equals its width

    Raises:
        ValueError: If the image shape is not supported
    """
    image = np.asarray(image)

    if image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]

    if image.ndim == 3 and image.shape[2] == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    elif image.ndim == 3 and image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    elif image.ndim != 2:
        raise ValueError(f"Unsupported image shape {image.shape}")

    if image.dtype != np.uint8:
        if image.dtype == np.uint16:
            image = (image >> 8).astype(np.uint8)
        else:
            image = np.clip(image, 0, 255).astype(np.uint8)

    return np.ascontiguousarray(image)
