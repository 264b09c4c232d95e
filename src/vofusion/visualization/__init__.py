"""Visualization sinks for odometry output."""

from .rerun_publisher import RerunPublisher

__all__ = ["RerunPublisher"]
