"""Calibrated fisheye camera: calibration from chessboards and undistortion."""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from .calibration import (
    calibrate_fisheye,
    chessboard_object_points,
    collect_image_points,
    create_undistort_maps,
    interpolation_flag,
    load_calibration,
    save_calibration,
    undistort_image,
)
from .config import CalibrationConfig, VideoConfig
from .files import read_image, read_images, write_image
from .video import undistort_video

logger = logging.getLogger(__name__)


class FisheyeCamera:
    """
    Fisheye camera model with precomputed undistortion maps.

    A camera is built either from chessboard images (``calibrate``) or from
    known parameters (constructor, ``from_calibration_file``). Once built,
    the same maps are reused for every image and video frame.
    """

    def __init__(
        self,
        K: np.ndarray,
        D: np.ndarray,
        image_size: Tuple[int, int],
        new_K: Optional[np.ndarray] = None,
        balance: float = 0.0,
        fov_scale: float = 1.0,
        rms_error: Optional[float] = None
    ):
        """
        Args:
            K: (3, 3) camera intrinsic matrix
            D: Fisheye distortion coefficients [k1, k2, k3, k4]
            image_size: (width, height) the calibration applies to
            new_K: Camera matrix of the undistorted output (estimated if None)
            balance: New camera matrix balance, used when new_K is None
            fov_scale: New camera matrix fov scale, used when new_K is None
            rms_error: RMS reprojection error of the calibration, if known
        """
        self.K = np.asarray(K, dtype=np.float64)
        self.D = np.asarray(D, dtype=np.float64).reshape(4, 1)
        self.image_size = (int(image_size[0]), int(image_size[1]))
        self.rms_error = rms_error

        self.used_images: List[Path] = []
        self.rejected_images: List[Path] = []

        self.map1, self.map2, self.new_K = create_undistort_maps(
            self.K, self.D, self.image_size,
            new_K=new_K, balance=balance, fov_scale=fov_scale
        )

    @classmethod
    def calibrate(cls, config: CalibrationConfig) -> "FisheyeCamera":
        """
        Calibrate from chessboard images.

        Every image must be readable and share the first image's size.
        Images where the full board is not found are skipped.

        Args:
            config: Calibration image set and chessboard geometry

        Returns:
            Calibrated camera
        """
        logger.info(f"Loading {len(config.images)} calibration images")
        images = read_images(config.images)
        image_size = _validate_image_sizes(images, config.images)

        image_points, used = collect_image_points(images, config.chessboard_size)
        del images

        used_set = set(used)
        used_paths = [config.images[i] for i in used]
        rejected_paths = [p for i, p in enumerate(config.images) if i not in used_set]
        for p in rejected_paths:
            logger.warning(f"No {config.chessboard_width}x{config.chessboard_height} chessboard found in {p}")

        if not image_points:
            raise ValueError(
                f"No {config.chessboard_width}x{config.chessboard_height} chessboard "
                f"detected in any of the {len(config.images)} calibration images"
            )
        logger.info(f"Detected chessboard in {len(image_points)}/{len(config.images)} images")

        objp = chessboard_object_points(config.chessboard_width, config.chessboard_height)
        object_points = [objp] * len(image_points)

        logger.info("Calibrating fisheye camera...")
        rms, K, D = calibrate_fisheye(object_points, image_points, image_size)

        logger.info(f"RMS reprojection error: {rms:.4f} pixels")
        logger.info(f"Camera matrix:\n{K}")
        logger.info(f"Distortion coefficients: {D.ravel()}")

        camera = cls(K, D, image_size, balance=config.balance, fov_scale=config.fov_scale, rms_error=rms)
        camera.used_images = used_paths
        camera.rejected_images = rejected_paths
        return camera

    @classmethod
    def from_calibration_file(
        cls,
        calib_path: Union[str, Path],
        balance: Optional[float] = None,
        fov_scale: Optional[float] = None
    ) -> "FisheyeCamera":
        """
        Build a camera from a calibration saved with ``save``.

        Args:
            calib_path: Calibration YAML file
            balance: If given, re-estimate the new camera matrix with this balance
            fov_scale: If given, re-estimate the new camera matrix with this fov scale

        Returns:
            Camera using the stored new camera matrix unless balance or
            fov_scale is given
        """
        logger.info(f"Loading calibration: {calib_path}")
        calib = load_calibration(calib_path)

        new_K = calib['new_K']
        if balance is not None or fov_scale is not None:
            new_K = None
            balance = 0.0 if balance is None else balance
            fov_scale = 1.0 if fov_scale is None else fov_scale
            if not 0.0 <= balance <= 1.0:
                raise ValueError(f"Balance must be within [0, 1], got {balance}")
            if fov_scale <= 0:
                raise ValueError(f"fov_scale must be positive, got {fov_scale}")
            logger.info(f"Re-estimating new camera matrix (balance={balance}, fov_scale={fov_scale})")

        camera = cls(
            calib['K'], calib['D'], calib['image_size'],
            new_K=new_K, balance=balance or 0.0,
            fov_scale=1.0 if fov_scale is None else fov_scale,
            rms_error=calib['rms_error']
        )
        if camera.rms_error is not None:
            logger.info(f"Loaded calibration with RMS error: {camera.rms_error:.4f} pixels")
        return camera

    def save(self, save_path: Union[str, Path], metadata: Optional[Dict] = None) -> None:
        meta = dict(metadata or {})
        if self.used_images:
            meta.setdefault('calibration_images', [str(p) for p in self.used_images])
        save_calibration(
            save_path, self.K, self.D, self.new_K,
            self.rms_error, self.image_size, metadata=meta or None
        )

    def undistort_frame(self, image: np.ndarray, interpolation: str = "linear") -> np.ndarray:
        """
        Undistort an in-memory image.

        Args:
            image: Image with the calibrated (width, height)
            interpolation: "linear", "cubic" or "lanczos4"

        Returns:
            Undistorted copy of the image
        """
        h, w = image.shape[:2]
        if (w, h) != self.image_size:
            raise ValueError(
                f"Image size {w}x{h} does not match calibration size "
                f"{self.image_size[0]}x{self.image_size[1]}"
            )

        flag = interpolation_flag(interpolation)

        # remap drops a trailing singleton channel
        if image.ndim == 3 and image.shape[2] == 1:
            return undistort_image(image[:, :, 0], self.map1, self.map2, flag)[:, :, np.newaxis]
        return undistort_image(image, self.map1, self.map2, flag)

    def undistort_image(
        self,
        source: Union[str, Path],
        destination: Union[str, Path],
        interpolation: str = "linear"
    ) -> Path:
        """Read an image, undistort it and write the result."""
        image = read_image(source)
        undistorted = self.undistort_frame(image, interpolation=interpolation)
        path = write_image(undistorted, destination)
        logger.debug(f"Undistorted {source} -> {path}")
        return path

    def undistort_video(
        self,
        source: Union[str, Path],
        destination: Union[str, Path],
        video_config: Optional[VideoConfig] = None,
        show_progress: bool = True
    ) -> int:
        """
        Undistort a video; see ``defisheye.video.undistort_video``.

        Returns:
            Number of frames written
        """
        return undistort_video(
            self, source, destination,
            config=video_config, show_progress=show_progress
        )

    def __repr__(self):
        return (f"FisheyeCamera(size={self.image_size[0]}x{self.image_size[1]}, "
                f"fx={self.K[0, 0]:.1f}, fy={self.K[1, 1]:.1f}, "
                f"cx={self.K[0, 2]:.1f}, cy={self.K[1, 2]:.1f}, "
                f"D={np.round(self.D.ravel(), 6).tolist()})")


def _validate_image_sizes(images: List[np.ndarray], paths: List[Path]) -> Tuple[int, int]:
    """Return the shared (width, height) of the images or raise ValueError."""
    if not images:
        raise ValueError("No calibration images")

    h0, w0 = images[0].shape[:2]
    for image, path in zip(images[1:], paths[1:]):
        h, w = image.shape[:2]
        if (w, h) != (w0, h0):
            raise ValueError(
                f"Calibration image {path} is {w}x{h}, expected {w0}x{h0} like {paths[0]}"
            )
    return w0, h0
