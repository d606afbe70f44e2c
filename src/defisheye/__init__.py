"""Fisheye Lens Undistortion Package.

This package provides tools for calibrating fisheye cameras from chessboard
images and undistorting images and videos with the resulting model.
"""

from .camera import FisheyeCamera
from .config import CalibrationConfig, VideoConfig, DefisheyeConfig
from .calibration import (
    calibrate_fisheye,
    find_chessboard_corners,
    create_undistort_maps,
    save_calibration,
    load_calibration,
)
from .video import FrameMixer, FrameStepper, undistort_video

__version__ = "0.1.0"

__all__ = [
    "FisheyeCamera",
    "CalibrationConfig",
    "VideoConfig",
    "DefisheyeConfig",
    "calibrate_fisheye",
    "find_chessboard_corners",
    "create_undistort_maps",
    "save_calibration",
    "load_calibration",
    "FrameMixer",
    "FrameStepper",
    "undistort_video",
]
