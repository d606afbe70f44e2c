"""Shared fixtures: synthetic chessboards and cameras."""

import cv2
import numpy as np
import pytest

from defisheye.camera import FisheyeCamera

SQUARE = 30
MARGIN = 60


def draw_chessboard(width: int = 6, height: int = 9, square: int = SQUARE, margin: int = MARGIN) -> np.ndarray:
    """
    Draw a BGR chessboard with ``width`` x ``height`` inner corners.

    The board has (width + 1) x (height + 1) squares on a white margin.
    """
    cols, rows = width + 1, height + 1
    img = np.full((rows * square + 2 * margin, cols * square + 2 * margin), 255, dtype=np.uint8)
    for r in range(rows):
        for c in range(cols):
            if (r + c) % 2 == 0:
                y0 = margin + r * square
                x0 = margin + c * square
                img[y0:y0 + square, x0:x0 + square] = 0
    return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)


def expected_corners(width: int = 6, height: int = 9, square: int = SQUARE, margin: int = MARGIN) -> np.ndarray:
    xs = margin + square * (np.arange(width) + 1)
    ys = margin + square * (np.arange(height) + 1)
    gx, gy = np.meshgrid(xs, ys)
    return np.column_stack([gx.ravel(), gy.ravel()]).astype(np.float64)


def gradient_image(width: int = 160, height: int = 120) -> np.ndarray:
    x = np.linspace(0, 255, width)
    y = np.linspace(0, 255, height)
    gx, gy = np.meshgrid(x, y)
    img = np.stack([gx, gy, (gx + gy) / 2], axis=-1)
    return img.astype(np.uint8)


def render_fisheye_view(
    K: np.ndarray,
    D: np.ndarray,
    rvec,
    tvec,
    image_size=(640, 480),
    width: int = 6,
    height: int = 9,
) -> np.ndarray:
    """
    Photograph ``draw_chessboard`` through a fisheye camera.

    The board lies in the z=0 plane with inner corner (i, j) at (i, j, 0)
    in square units, posed by ``rvec`` and ``tvec``. Pixels that do not see
    the board come out white.
    """
    board = cv2.cvtColor(draw_chessboard(width, height), cv2.COLOR_BGR2GRAY)
    w, h = image_size
    u, v = np.meshgrid(np.arange(w, dtype=np.float64), np.arange(h, dtype=np.float64))
    pixels = np.column_stack([u.ravel(), v.ravel()])

    # Stay well inside the 90 degree limit of the fisheye model
    radius = np.hypot(pixels[:, 0] - K[0, 2], pixels[:, 1] - K[1, 2]) / K[0, 0]
    rays = cv2.fisheye.undistortPoints(
        pixels.reshape(-1, 1, 2), K, np.asarray(D, dtype=np.float64).reshape(4, 1)
    ).reshape(-1, 2)
    rays = np.column_stack([rays, np.ones(len(rays))])

    R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64))
    H = np.column_stack([R[:, 0], R[:, 1], np.asarray(tvec, dtype=np.float64)])
    plane = rays @ np.linalg.inv(H).T
    valid = (radius < 1.2) & (plane[:, 2] > 1e-9)

    board_xy = np.full((len(rays), 2), -100.0)
    board_xy[valid] = plane[valid, :2] / plane[valid, 2:3]
    map_x = np.where(valid, MARGIN + SQUARE * (board_xy[:, 0] + 1) - 0.5, -100.0)
    map_y = np.where(valid, MARGIN + SQUARE * (board_xy[:, 1] + 1) - 0.5, -100.0)

    view = cv2.remap(
        board,
        map_x.reshape(h, w).astype(np.float32),
        map_y.reshape(h, w).astype(np.float32),
        interpolation=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=255,
    )
    return cv2.cvtColor(view, cv2.COLOR_GRAY2BGR)

@pytest.fixture
def equidistant_camera():
    """Zero-distortion camera whose output matrix equals its input matrix."""
    K = np.array([[100.0, 0, 80.0], [0, 100.0, 60.0], [0, 0, 1]])
    D = np.zeros(4)
    return FisheyeCamera(K, D, (160, 120), new_K=K.copy())


@pytest.fixture
def fisheye_camera():
    K = np.array([[300.0, 0, 320.0], [0, 300.0, 240.0], [0, 0, 1]])
    D = np.array([0.05, -0.01, 0.002, 0.0])
    return FisheyeCamera(K, D, (640, 480))
