"""Fisheye camera calibration functions using OpenCV."""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np
import yaml

logger = logging.getLogger(__name__)

CHESSBOARD_FLAGS = (
    cv2.CALIB_CB_ADAPTIVE_THRESH
    | cv2.CALIB_CB_FAST_CHECK
    | cv2.CALIB_CB_NORMALIZE_IMAGE
)

FISHEYE_CALIBRATION_FLAGS = (
    cv2.fisheye.CALIB_RECOMPUTE_EXTRINSIC
    | cv2.fisheye.CALIB_CHECK_COND
    | cv2.fisheye.CALIB_FIX_SKEW
)

INTERPOLATION_FLAGS = {
    "linear": cv2.INTER_LINEAR,
    "cubic": cv2.INTER_CUBIC,
    "lanczos4": cv2.INTER_LANCZOS4,
}

_REQUIRED_KEYS = ('camera_matrix', 'distortion_coefficients', 'image_size')


def chessboard_object_points(width: int, height: int) -> np.ndarray:
    """
    Build the planar chessboard model in square units.

    Corner i sits at (i % width, i // width, 0), matching the row-major
    order in which OpenCV reports detected corners.

    Returns:
        (width*height, 1, 3) float32 array
    """
    idx = np.arange(width * height)
    objp = np.zeros((width * height, 1, 3), dtype=np.float32)
    objp[:, 0, 0] = idx % width
    objp[:, 0, 1] = idx // width
    return objp


def find_chessboard_corners(
    image: np.ndarray,
    chessboard_size: Tuple[int, int]
) -> Optional[np.ndarray]:
    """
    Detect and refine inner chessboard corners.

    Args:
        image: BGR or grayscale image
        chessboard_size: (width, height) in inner corners

    Returns:
        (N, 1, 2) float32 corners refined to sub-pixel accuracy, or None
        if the full board was not found
    """
    if image.ndim == 3 and image.shape[2] == 3:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    elif image.ndim == 3 and image.shape[2] == 4:
        gray = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    elif image.ndim == 3:
        gray = image[:, :, 0]
    else:
        gray = image

    found, corners = cv2.findChessboardCorners(gray, chessboard_size, None, CHESSBOARD_FLAGS)
    if not found or corners is None or len(corners) == 0:
        return None

    criteria = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 0.1)
    corners = cv2.cornerSubPix(gray, corners, (3, 3), (-1, -1), criteria)

    w, h = chessboard_size
    if len(corners) != w * h:
        return None

    return corners.reshape(-1, 1, 2).astype(np.float32)


def calibrate_fisheye(
    object_points: Sequence[np.ndarray],
    image_points: Sequence[np.ndarray],
    image_size: Tuple[int, int]
) -> Tuple[float, np.ndarray, np.ndarray]:
    """
    Calibrate a fisheye camera from chessboard correspondences.

    Args:
        object_points: Per-view (N, 1, 3) model points
        image_points: Per-view (N, 1, 2) detected corners in pixels
        image_size: (width, height) of the calibration images

    Returns:
        Tuple of (rms_error, K, D):
            - rms_error: RMS reprojection error in pixels
            - K: (3, 3) camera intrinsic matrix
            - D: (4, 1) fisheye distortion coefficients [k1, k2, k3, k4]
    """
    if len(image_points) == 0:
        raise ValueError("No chessboard views to calibrate from")
    if len(object_points) != len(image_points):
        raise ValueError(
            f"Got {len(object_points)} object point sets for {len(image_points)} image point sets"
        )

    objp = [np.asarray(p, dtype=np.float64).reshape(-1, 1, 3) for p in object_points]
    imgp = [np.asarray(p, dtype=np.float64).reshape(-1, 1, 2) for p in image_points]

    K = np.zeros((3, 3), dtype=np.float64)
    D = np.zeros((4, 1), dtype=np.float64)

    criteria = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 1e-6)

    rms, K, D, _, _ = cv2.fisheye.calibrate(
        objp, imgp, tuple(image_size), K, D,
        flags=FISHEYE_CALIBRATION_FLAGS, criteria=criteria
    )

    return float(rms), K, D


def estimate_new_camera_matrix(
    K: np.ndarray,
    D: np.ndarray,
    image_size: Tuple[int, int],
    balance: float = 0.0,
    fov_scale: float = 1.0
) -> np.ndarray:
    """
    Estimate the camera matrix of the undistorted image.

    Args:
        K: (3, 3) camera intrinsic matrix
        D: (4,) or (4, 1) fisheye distortion coefficients
        image_size: (width, height) of image
        balance: 0 keeps only valid pixels, 1 keeps the whole field of view
        fov_scale: Divisor for the new focal length

    Returns:
        (3, 3) new camera matrix
    """
    return cv2.fisheye.estimateNewCameraMatrixForUndistortRectify(
        K, D.reshape(4, 1), tuple(image_size), np.eye(3),
        balance=balance, fov_scale=fov_scale
    )


def create_undistort_maps(
    K: np.ndarray,
    D: np.ndarray,
    image_size: Tuple[int, int],
    new_K: Optional[np.ndarray] = None,
    balance: float = 0.0,
    fov_scale: float = 1.0
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Create undistortion maps for efficient remapping.

    Args:
        K: (3, 3) camera intrinsic matrix
        D: Fisheye distortion coefficients
        image_size: (width, height) of image
        new_K: Camera matrix of the output; estimated when None
        balance: Passed to the new camera matrix estimate
        fov_scale: Passed to the new camera matrix estimate

    Returns:
        Tuple of (map1, map2, new_K):
            - map1: CV_16SC2 fixed-point coordinate map
            - map2: Interpolation table for map1
            - new_K: Camera matrix of the undistorted image
    """
    if new_K is None:
        new_K = estimate_new_camera_matrix(K, D, image_size, balance=balance, fov_scale=fov_scale)

    map1, map2 = cv2.fisheye.initUndistortRectifyMap(
        K, D.reshape(4, 1), np.eye(3), new_K, tuple(image_size), cv2.CV_16SC2
    )

    return map1, map2, new_K


def interpolation_flag(name: str) -> int:
    try:
        return INTERPOLATION_FLAGS[name]
    except KeyError:
        raise ValueError(
            f"Unknown interpolation '{name}', expected one of {tuple(INTERPOLATION_FLAGS)}"
        ) from None


def undistort_image(
    image: np.ndarray,
    map1: np.ndarray,
    map2: np.ndarray,
    interpolation: int = cv2.INTER_LINEAR
) -> np.ndarray:
    """
    Undistort an image using precomputed maps.

    Args:
        image: Input image
        map1: Coordinate map
        map2: Interpolation table
        interpolation: Interpolation method (INTER_LINEAR, INTER_LANCZOS4, etc.)

    Returns:
        Undistorted image; the input is left untouched
    """
    return cv2.remap(image, map1, map2, interpolation=interpolation, borderMode=cv2.BORDER_CONSTANT)


def save_calibration(
    save_path: Union[str, Path],
    K: np.ndarray,
    D: np.ndarray,
    new_K: np.ndarray,
    rms_error: Optional[float],
    image_size: Tuple[int, int],
    metadata: Optional[Dict] = None
) -> None:
    """
    Save calibration parameters to YAML file.

    Args:
        save_path: Path to save calibration file
        K: Camera intrinsic matrix
        D: Fisheye distortion coefficients
        new_K: New camera matrix for undistorted image
        rms_error: RMS reprojection error, None if unknown
        image_size: Image dimensions (width, height)
        metadata: Optional additional metadata
    """
    data = {
        'model': 'fisheye',
        'camera_matrix': np.asarray(K).tolist(),
        'distortion_coefficients': np.asarray(D).ravel().tolist(),
        'new_camera_matrix': np.asarray(new_K).tolist(),
        'rms_error': None if rms_error is None else float(rms_error),
        'image_size': [int(v) for v in image_size],
    }

    if metadata:
        data['metadata'] = metadata

    save_path = Path(save_path)
    save_path.parent.mkdir(parents=True, exist_ok=True)
    with open(save_path, 'w') as f:
        yaml.safe_dump(data, f, default_flow_style=False)

    logger.info(f"Calibration saved to: {save_path}")


def load_calibration(calib_path: Union[str, Path]) -> Dict:
    """
    Load calibration parameters from YAML file.

    Args:
        calib_path: Path to calibration YAML file

    Returns:
        Dictionary with calibration parameters:
            - 'K': Camera intrinsic matrix
            - 'D': Fisheye distortion coefficients, shape (4, 1)
            - 'new_K': New camera matrix, or None if not stored
            - 'rms_error': RMS reprojection error
            - 'image_size': Image dimensions (width, height)
            - 'metadata': Extra metadata dict
    """
    calib_path = Path(calib_path)
    if not calib_path.exists():
        raise FileNotFoundError(f"Calibration file not found: {calib_path}")

    with open(calib_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    missing = [key for key in _REQUIRED_KEYS if key not in data]
    if missing:
        raise ValueError(f"Calibration file {calib_path} missing keys: {missing}")

    new_K = data.get('new_camera_matrix')

    return {
        'K': np.array(data['camera_matrix'], dtype=np.float64),
        'D': np.array(data['distortion_coefficients'], dtype=np.float64).reshape(4, 1),
        'new_K': None if new_K is None else np.array(new_K, dtype=np.float64),
        'rms_error': data.get('rms_error'),
        'image_size': tuple(int(v) for v in data['image_size']),
        'metadata': data.get('metadata') or {},
    }


def collect_image_points(
    images: Sequence[np.ndarray],
    chessboard_size: Tuple[int, int]
) -> Tuple[List[np.ndarray], List[int]]:
    """
    Detect chessboards across a set of images.

    Returns:
        Tuple of (image_points, used_indices) for the images where the
        full board was found
    """
    image_points = []
    used = []
    for i, image in enumerate(images):
        corners = find_chessboard_corners(image, chessboard_size)
        if corners is None:
            continue
        image_points.append(corners)
        used.append(i)
    return image_points, used
