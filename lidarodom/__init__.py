"""Lidar odometry building blocks: transforms, point clouds, features and scan matching."""

__version__ = "0.1.0"

__all__ = [
    "cloud",
    "features",
    "geometry",
    "messages",
    "params",
    "poses",
    "scan_matching",
]