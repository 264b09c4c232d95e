"""Odometry configuration.

Options can be given as a mapping or a YAML file. Keys that are not
odometry options are estimator tuning keys and are forwarded to the
estimator as strings. Invalid values are normalized to safe defaults
instead of being rejected.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)

DEFAULT_KEEPALIVE_INTERVAL = 9.0

# Accepted spellings for options whose name differs from the attribute.
_ALIASES = {
    "tf_factor": "translation_correction_factor",
}


@dataclass
class OdometryConfig:
    """Options recognized by the odometry session.

    Attributes:
        odom_frame_id: Fixed odometry origin frame
        base_link_frame_id: Robot body frame
        publish_tf: Broadcast odom -> base_link on success and keepalive
        translation_correction_factor: Multiplier applied to the body pose
            translation (0 is coerced to 1.0)
        keepalive_interval: Seconds without a published transform after
            which the last known one is re-sent
        keepalive_check_period: Seconds between keepalive timer ticks
        transform_warn_period: Minimum seconds between repeated
            missing-transform warnings
        estimator_options: Estimator tuning keys, forwarded verbatim
    """

    odom_frame_id: str = "odom"
    base_link_frame_id: str = "base_link"
    publish_tf: bool = True
    translation_correction_factor: float = 1.0
    keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL
    keepalive_check_period: float = 1.0
    transform_warn_period: float = 10.0
    estimator_options: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.odom_frame_id = str(self.odom_frame_id)
        self.base_link_frame_id = str(self.base_link_frame_id)
        self.publish_tf = _to_bool(self.publish_tf)
        self.translation_correction_factor = normalize_correction_factor(
            self.translation_correction_factor
        )
        self.keepalive_interval = _positive_or_default(
            "keepalive_interval", self.keepalive_interval, DEFAULT_KEEPALIVE_INTERVAL
        )
        self.keepalive_check_period = _positive_or_default(
            "keepalive_check_period", self.keepalive_check_period, 1.0
        )
        self.transform_warn_period = _positive_or_default(
            "transform_warn_period", self.transform_warn_period, 10.0
        )
        self.estimator_options = {
            str(k): _to_option_string(v) for k, v in self.estimator_options.items()
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> OdometryConfig:
        """Build a config from a flat mapping.

        Keys that are not odometry options are collected into
        ``estimator_options``. An explicit ``estimator_options`` mapping is
        merged on top of those.
        """
        data = dict(data or {})
        known = {f.name for f in fields(cls)}

        kwargs: dict[str, Any] = {}
        options: dict[str, Any] = {}
        for key, value in data.items():
            name = _ALIASES.get(key, key)
            if name == "estimator_options":
                continue
            if name in known:
                kwargs[name] = value
            else:
                options[key] = value

        options.update(data.get("estimator_options") or {})
        kwargs["estimator_options"] = options
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> OdometryConfig:
        """Load a config from YAML.

        The options may sit at the top level or under an ``odometry:``
        section.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file does not contain a mapping
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {yaml_path}")
        if isinstance(data.get("odometry"), dict):
            data = data["odometry"]
        return cls.from_mapping(data)


def normalize_correction_factor(value: Any) -> float:
    """Return a usable translation correction factor.

    Exactly 0 (and anything non-numeric or non-finite) becomes 1.0.
    """
    try:
        factor = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid translation correction factor %r, using 1.0", value)
        return 1.0
    if factor == 0.0 or not math.isfinite(factor):
        return 1.0
    return factor


def merge_estimator_options(
    defaults: Mapping[str, str], overrides: Mapping[str, Any]
) -> dict[str, str]:
    """Overlay configured tuning keys onto the estimator defaults.

    Estimator keys use dashes (``fast-threshold``); configured keys may use
    underscores instead (``fast_threshold``). Keys that match no default are
    forwarded verbatim.

    Returns:
        Merged options with string values
    """
    merged = {str(k): _to_option_string(v) for k, v in defaults.items()}
    by_param_name = {key.replace("-", "_"): key for key in merged}

    for key, value in overrides.items():
        target = key if key in merged else by_param_name.get(key, key)
        merged[target] = _to_option_string(value)
    return merged


def _to_option_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _positive_or_default(name: str, value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = float("nan")
    if not math.isfinite(number) or number <= 0.0:
        logger.warning("Invalid %s %r, using %s", name, value, default)
        return default
    return number
