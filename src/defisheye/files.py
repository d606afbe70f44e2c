"""File listing and image I/O helpers."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = ('.jpg', '.jpeg', '.png', '.bmp', '.tif', '.tiff', '.webp')
VIDEO_SUFFIXES = ('.mp4', '.avi', '.mov', '.mkv', '.webm', '.m4v')


def list_directory(directory: Union[str, Path]) -> List[Path]:
    """
    List regular files in a directory, sorted by name.

    Args:
        directory: Directory to list

    Returns:
        Sorted list of file paths
    """
    path = Path(directory)
    if not path.exists():
        raise FileNotFoundError(f"No such directory: {path}")
    if not path.is_dir():
        raise NotADirectoryError(f"Not a directory: {path}")

    return sorted(p for p in path.iterdir() if p.is_file())


def list_images(directory: Union[str, Path]) -> List[Path]:
    """List image files in a directory, sorted by name."""
    return [p for p in list_directory(directory) if is_image(p)]


def is_image(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() in IMAGE_SUFFIXES


def is_video(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() in VIDEO_SUFFIXES


def read_image(path: Union[str, Path]) -> np.ndarray:
    """
    Read an image from disk in BGR order.

    Args:
        path: Image file path

    Returns:
        Decoded image array

    Raises:
        FileNotFoundError if the file is missing or cannot be decoded
    """
    image = cv2.imread(str(path))
    if image is None or image.size == 0:
        raise FileNotFoundError(f"Could not read image: {path}")
    return image


def read_images(paths: Iterable[Union[str, Path]]) -> List[np.ndarray]:
    return [read_image(p) for p in paths]


def write_image(image: np.ndarray, path: Union[str, Path]) -> Path:
    """
    Write an image to disk, creating parent directories as needed.

    Args:
        image: Image array
        path: Destination path; the suffix selects the encoder

    Returns:
        The destination path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), image):
        raise OSError(f"Could not write image: {path}")
    return path


def create_temporary_file(prefix: str, suffix: str) -> Path:
    """Create an empty temporary file and return its path."""
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix)
    os.close(fd)
    return Path(name)


def default_output_path(
    source: Union[str, Path],
    output_dir: Optional[Union[str, Path]] = None,
    suffix_tag: str = "_undistorted"
) -> Path:
    """
    Choose where the undistorted copy of a source file goes.

    Args:
        source: Input image or video path
        output_dir: Directory for outputs; a temporary file is used when None
        suffix_tag: Text appended to the source stem

    Returns:
        Output path with the same extension as the source
    """
    source = Path(source)
    if output_dir is None:
        return create_temporary_file("undistorted", source.suffix)
    return Path(output_dir) / f"{source.stem}{suffix_tag}{source.suffix}"
