"""Transform tree holding the static and slowly varying frame offsets.

The store keeps only adjacent offsets (parent -> child). Offsets between
arbitrary frames are derived by walking both frames up to their common
ancestor and composing the chain.

EuRoC sensor calibration (``T_BS`` in ``sensor.yaml``) can be loaded
directly as a static body -> sensor edge.
"""

from __future__ import annotations

import bisect
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import yaml
from scipy.spatial.transform import Rotation, Slerp

from .logutil import ThrottledLogger
from .pose import SE3

if TYPE_CHECKING:
    from .config import OdometryConfig

logger = logging.getLogger(__name__)


class TransformLookupError(LookupError):
    """Raised internally when two frames cannot be connected."""


@dataclass
class _Edge:
    """Offset T_parent_child, either static or sampled over time."""

    parent: str
    static: SE3 | None = None
    stamps: list[int] = field(default_factory=list)
    samples: list[SE3] = field(default_factory=list)

    def add_sample(self, stamp_ns: int, transform: SE3) -> None:
        idx = bisect.bisect_left(self.stamps, stamp_ns)
        if idx < len(self.stamps) and self.stamps[idx] == stamp_ns:
            self.samples[idx] = transform
            return
        self.stamps.insert(idx, stamp_ns)
        self.samples.insert(idx, transform)

    def at(self, stamp_ns: int | None, tolerance_ns: int) -> SE3:
        """Return the offset at ``stamp_ns`` (None or 0 means latest)."""
        if self.static is not None:
            return self.static
        if not self.samples:
            raise TransformLookupError("no samples available")
        if not stamp_ns:
            return self.samples[-1]

        first, last = self.stamps[0], self.stamps[-1]
        if stamp_ns < first - tolerance_ns or stamp_ns > last + tolerance_ns:
            raise TransformLookupError(
                f"lookup at {stamp_ns} would require extrapolation "
                f"(data covers [{first}, {last}])"
            )
        if stamp_ns <= first:
            return self.samples[0]
        if stamp_ns >= last:
            return self.samples[-1]

        idx = bisect.bisect_left(self.stamps, stamp_ns)
        if self.stamps[idx] == stamp_ns:
            return self.samples[idx]

        t0, t1 = self.stamps[idx - 1], self.stamps[idx]
        pose0, pose1 = self.samples[idx - 1], self.samples[idx]
        alpha = (stamp_ns - t0) / (t1 - t0)

        translation = (1 - alpha) * pose0.translation + alpha * pose1.translation
        slerp = Slerp(
            [0.0, 1.0], Rotation.from_matrix([pose0.rotation, pose1.rotation])
        )
        rotation = slerp([alpha]).as_matrix()[0]
        return SE3(rotation=rotation, translation=translation)


class TransformStore:
    """Cache of rigid offsets between coordinate frames.

    ``lookup`` never fails the caller: when the frames cannot be connected
    (unknown frame, disconnected tree, extrapolation beyond tolerance) it
    returns identity and emits a rate-limited warning.
    """

    def __init__(
        self,
        warn_period: float = 10.0,
        extrapolation_tolerance_ns: int = 0,
        throttle: ThrottledLogger | None = None,
    ) -> None:
        """Initialize an empty transform tree.

        Args:
            warn_period: Minimum seconds between repeated missing-transform
                warnings for the same frame pair
            extrapolation_tolerance_ns: How far outside the sampled range a
                timestamped edge may be queried
            throttle: Optional pre-built throttled logger (tests inject one
                with a fake clock)
        """
        self._edges: dict[str, _Edge] = {}
        self._lock = threading.Lock()
        self._tolerance_ns = int(extrapolation_tolerance_ns)
        self._throttle = throttle or ThrottledLogger(logger, period=warn_period)

    @classmethod
    def from_config(cls, config: OdometryConfig) -> TransformStore:
        """Create an empty store using the configured warning period."""
        return cls(warn_period=config.transform_warn_period)

    def set_transform(
        self,
        parent: str,
        child: str,
        transform: SE3,
        stamp_ns: int | None = None,
    ) -> None:
        """Store the offset T_parent_child.

        Args:
            parent: Parent frame id
            child: Child frame id
            transform: Offset mapping child coordinates into parent
            stamp_ns: Sample timestamp; None stores a static transform

        Raises:
            ValueError: If ``child`` already has a different parent, or the
                edge would close a cycle
        """
        if parent == child:
            raise ValueError(f"Frame '{child}' cannot be its own parent")

        with self._lock:
            edge = self._edges.get(child)
            if edge is not None and edge.parent != parent:
                raise ValueError(
                    f"Frame '{child}' already has parent '{edge.parent}', "
                    f"cannot re-parent to '{parent}'"
                )
            if edge is None:
                if child in self._ancestors(parent):
                    raise ValueError(
                        f"Adding '{parent}' -> '{child}' would create a cycle"
                    )
                edge = _Edge(parent=parent)
                self._edges[child] = edge

            if stamp_ns is None:
                edge.static = transform.copy()
                edge.stamps.clear()
                edge.samples.clear()
            else:
                edge.static = None
                edge.add_sample(int(stamp_ns), transform.copy())

    def load_sensor_yaml(
        self, yaml_path: str | Path, parent: str, child: str
    ) -> SE3:
        """Load ``T_BS`` from an EuRoC sensor.yaml as a static edge.

        Falls back to identity (with a warning) when the file is missing or
        does not contain a valid 4x4 ``T_BS``.

        Returns:
            The stored transform
        """
        path = Path(yaml_path)
        transform = SE3.identity()

        if not path.exists():
            logger.warning("%s not found, using identity for %s -> %s", path, parent, child)
        else:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            values = (data.get("T_BS") or {}).get("data") if isinstance(data, dict) else None
            if values is None or len(values) != 16:
                logger.warning(
                    "Could not parse T_BS from %s, using identity for %s -> %s",
                    path,
                    parent,
                    child,
                )
            else:
                transform = SE3.from_matrix(np.array(values, dtype=np.float64).reshape(4, 4))

        self.set_transform(parent, child, transform)
        return transform

    def _ancestors(self, frame: str) -> list[str]:
        """Return [frame, parent, grandparent, ...] up to the root."""
        chain = [frame]
        while chain[-1] in self._edges:
            chain.append(self._edges[chain[-1]].parent)
        return chain

    def _to_ancestor(self, frame: str, ancestor: str, stamp_ns: int | None) -> SE3:
        """Compose T_ancestor_frame along the parent chain."""
        result = SE3.identity()
        current = frame
        while current != ancestor:
            edge = self._edges[current]
            result = edge.at(stamp_ns, self._tolerance_ns) @ result
            current = edge.parent
        return result

    def _resolve(self, target: str, source: str, stamp_ns: int | None) -> SE3:
        """Return T_target_source or raise TransformLookupError."""
        with self._lock:
            known = set(self._edges) | {e.parent for e in self._edges.values()}
            for frame in (target, source):
                if frame not in known:
                    raise TransformLookupError(f"frame '{frame}' does not exist")

            if target == source:
                return SE3.identity()

            target_chain = self._ancestors(target)
            source_chain = self._ancestors(source)
            common = next((f for f in source_chain if f in target_chain), None)
            if common is None:
                raise TransformLookupError(
                    f"'{target}' and '{source}' are not part of the same tree"
                )

            T_common_source = self._to_ancestor(source, common, stamp_ns)
            T_common_target = self._to_ancestor(target, common, stamp_ns)
            return T_common_target.inverse() @ T_common_source

    def can_transform(
        self, target: str, source: str, stamp_ns: int | None = None
    ) -> tuple[bool, str]:
        """Check whether ``lookup`` would succeed.

        Returns:
            Tuple of (available, error message or empty string)
        """
        try:
            self._resolve(target, source, stamp_ns)
        except TransformLookupError as e:
            return False, str(e)
        return True, ""

    def lookup(self, target: str, source: str, stamp_ns: int | None = None) -> SE3:
        """Return T_target_source at ``stamp_ns``, or identity if unavailable.

        Args:
            target: Frame the result maps into (e.g. the body frame)
            source: Frame the result maps from (e.g. the sensor frame)
            stamp_ns: Query time; None or 0 uses the latest data

        Returns:
            The offset, or identity when the frames cannot be connected
        """
        try:
            return self._resolve(target, source, stamp_ns)
        except TransformLookupError as e:
            self._throttle.warning(
                f"{target}->{source}",
                "The tf from '%s' to '%s' does not seem to be available, "
                "will assume it as identity!",
                target,
                source,
            )
            logger.debug("Transform error: %s", e)
            return SE3.identity()

    @property
    def frames(self) -> set[str]:
        """All frame ids known to the store."""
        with self._lock:
            return set(self._edges) | {e.parent for e in self._edges.values()}
