"""
Configuration for fisheye calibration and undistortion.

Handles loading and validation of configuration from YAML files.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import yaml

from .files import list_images

logger = logging.getLogger(__name__)

INTERPOLATIONS = ("linear", "cubic", "lanczos4")


@dataclass
class CalibrationConfig:
    """
    Chessboard calibration settings.

    Attributes:
        images: Paths to the chessboard calibration images
        chessboard_width: Number of inner corners along a chessboard row
        chessboard_height: Number of inner corners along a chessboard column
        balance: Trade-off between cropping (0) and keeping all pixels (1)
        fov_scale: Divisor applied to the new focal length
    """
    images: Sequence[Union[str, Path]]
    chessboard_width: int = 6
    chessboard_height: int = 9
    balance: float = 0.0
    fov_scale: float = 1.0

    def __post_init__(self):
        if self.images is None:
            raise TypeError("images must not be None")
        self.images = list(self.images)
        if not self.images or any(image is None for image in self.images):
            raise ValueError("At least one calibration image is required and none may be None")
        self.images = [Path(image) for image in self.images]

        if self.chessboard_width <= 0:
            raise ValueError(f"Invalid chessboard width: {self.chessboard_width}")
        if self.chessboard_height <= 0:
            raise ValueError(f"Invalid chessboard height: {self.chessboard_height}")
        if not 0.0 <= self.balance <= 1.0:
            raise ValueError(f"Balance must be within [0, 1], got {self.balance}")
        if self.fov_scale <= 0:
            raise ValueError(f"fov_scale must be positive, got {self.fov_scale}")

    @property
    def chessboard_size(self) -> Tuple[int, int]:
        return self.chessboard_width, self.chessboard_height

    @property
    def corner_count(self) -> int:
        return self.chessboard_width * self.chessboard_height


@dataclass
class VideoConfig:
    """
    Video output settings.

    The defaults average each frame with the two before it, keep every
    sixth mixed frame and encode the result at 5 fps with lossless quality.
    """
    mix_frames: int = 3
    frame_step: int = 6
    fps: float = 5.0
    crf: int = 0
    interpolation: str = "linear"

    def __post_init__(self):
        if self.mix_frames < 1:
            raise ValueError(f"mix_frames must be >= 1, got {self.mix_frames}")
        if self.frame_step < 1:
            raise ValueError(f"frame_step must be >= 1, got {self.frame_step}")
        if self.fps <= 0:
            raise ValueError(f"fps must be positive, got {self.fps}")
        if self.interpolation not in INTERPOLATIONS:
            raise ValueError(
                f"Unknown interpolation '{self.interpolation}', expected one of {INTERPOLATIONS}"
            )


@dataclass
class DefisheyeConfig:
    """
    Top-level configuration: calibration set plus video output settings.

    ``calibration`` is None when the camera comes from a saved calibration file.
    """
    calibration: Optional[CalibrationConfig]
    video: VideoConfig = field(default_factory=VideoConfig)

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path]) -> "DefisheyeConfig":
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            DefisheyeConfig with loaded parameters

        Example YAML structure:
            calibration:
              image_dir: calibration      # or images: [a.jpg, b.jpg]
              chessboard_width: 6
              chessboard_height: 9
              balance: 0.0
              fov_scale: 1.0
            video:
              mix_frames: 3
              frame_step: 6
              fps: 5
              crf: 0
              interpolation: linear
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")

        logger.info(f"Loading configuration from {config_path}")

        calib_data = data.get('calibration')
        if not calib_data:
            raise ValueError(f"Configuration file {config_path} missing 'calibration' section")
        if not isinstance(calib_data, dict):
            raise ValueError(f"'calibration' section in {config_path} must be a mapping")

        # Resolve paths relative to config file location
        config_dir = path.parent
        images = _resolve_images(calib_data, config_dir)

        calibration = CalibrationConfig(
            images=images,
            chessboard_width=calib_data.get('chessboard_width', 6),
            chessboard_height=calib_data.get('chessboard_height', 9),
            balance=calib_data.get('balance', 0.0),
            fov_scale=calib_data.get('fov_scale', 1.0),
        )

        video_data = data.get('video') or {}
        if not isinstance(video_data, dict):
            raise ValueError(f"'video' section in {config_path} must be a mapping")
        video = VideoConfig(
            mix_frames=video_data.get('mix_frames', 3),
            frame_step=video_data.get('frame_step', 6),
            fps=video_data.get('fps', 5.0),
            crf=video_data.get('crf', 0),
            interpolation=video_data.get('interpolation', 'linear'),
        )

        return cls(calibration=calibration, video=video)


def _resolve_images(calib_data: dict, config_dir: Path) -> list:
    images: Optional[list] = calib_data.get('images')
    image_dir = calib_data.get('image_dir')

    if images:
        if not isinstance(images, list):
            raise ValueError("'images' must be a list of paths")
        if any(image is None for image in images):
            raise ValueError("'images' entries must not be empty")
        return [_resolve(config_dir, image) for image in images]
    if image_dir:
        return list_images(_resolve(config_dir, image_dir))
    raise ValueError("Calibration section needs either 'images' or 'image_dir'")


def _resolve(base: Path, value: Union[str, Path]) -> Path:
    p = Path(value)
    return p if p.is_absolute() else base / p
