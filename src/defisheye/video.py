"""Video undistortion with temporal mixing and frame decimation."""

import logging
from collections import deque
from pathlib import Path
from typing import Optional, Union

import imageio.v3 as iio
import numpy as np
import sleap_io as sio
from tqdm import tqdm

from .config import VideoConfig

logger = logging.getLogger(__name__)


class FrameMixer:
    """
    Temporal mix of consecutive frames.

    Each pushed frame is averaged with the ``mix_frames - 1`` frames before
    it. The first frame of a stream fills the whole window, so early outputs
    weight it more heavily, the same way ffmpeg's tmix filter starts up.
    """

    def __init__(self, mix_frames: int = 3):
        if mix_frames < 1:
            raise ValueError(f"mix_frames must be >= 1, got {mix_frames}")
        self.mix_frames = mix_frames
        self._window = deque(maxlen=mix_frames)

    def push(self, frame: np.ndarray) -> np.ndarray:
        if self._window and self._window[-1].shape != frame.shape:
            raise ValueError(
                f"Frame shape {frame.shape} differs from previous {self._window[-1].shape}"
            )
        if not self._window:
            self._window.extend([frame] * (self.mix_frames - 1))
        self._window.append(frame)
        if self.mix_frames == 1:
            return frame.copy()

        mixed = np.mean(np.stack(self._window, axis=0), axis=0)
        if np.issubdtype(frame.dtype, np.integer):
            info = np.iinfo(frame.dtype)
            mixed = np.clip(np.rint(mixed), info.min, info.max)
        return mixed.astype(frame.dtype)

    def reset(self) -> None:
        self._window.clear()


class FrameStepper:
    """Keep the first frame and every ``step``-th frame after it."""

    def __init__(self, step: int = 6):
        if step < 1:
            raise ValueError(f"step must be >= 1, got {step}")
        self.step = step
        self._count = 0

    def accept(self) -> bool:
        keep = self._count % self.step == 0
        self._count += 1
        return keep

    def reset(self) -> None:
        self._count = 0


def read_video_fps(video_path: Union[str, Path], default: float = 30.0) -> float:
    """Read the container frame rate, falling back to ``default``."""
    meta = iio.immeta(str(video_path), exclude_applied=False)
    fps = meta.get("fps") or (meta.get("video") or {}).get("fps")
    return float(fps) if fps else default


def undistort_video(
    camera,
    source: Union[str, Path],
    destination: Union[str, Path],
    config: Optional[VideoConfig] = None,
    show_progress: bool = True
) -> int:
    """
    Undistort every frame of a video and write a mixed, decimated result.

    Frames are undistorted, mixed with the frames before them and then
    decimated, so every output frame summarises ``mix_frames`` inputs.

    Args:
        camera: FisheyeCamera whose maps match the video frame size
        source: Input video path
        destination: Output video path
        config: Mixing, decimation and encoder settings (defaults if None)
        show_progress: Show progress bar

    Returns:
        Number of frames written
    """
    config = config or VideoConfig()
    source = Path(source)
    destination = Path(destination)
    if not source.exists():
        raise FileNotFoundError(f"Video file not found: {source}")

    logger.info(f"Loading video: {source}")
    video = sio.load_video(str(source))
    n_frames = len(video)
    try:
        source_fps = read_video_fps(source)
    except (OSError, ValueError, RuntimeError) as e:
        logger.warning(f"Could not read frame rate of {source}: {e}")
        source_fps = "unknown"
    logger.info(f"Source FPS: {source_fps}, frames: {n_frames}, output FPS: {config.fps}")

    mixer = FrameMixer(config.mix_frames)
    stepper = FrameStepper(config.frame_step)

    destination.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Writing undistorted video: {destination}")

    written = 0
    with sio.VideoWriter(str(destination), fps=config.fps, crf=config.crf) as vw:
        indices = range(n_frames)
        iterator = tqdm(indices, desc="Undistorting") if show_progress else indices

        for idx in iterator:
            frame = np.asarray(video[idx])
            und = camera.undistort_frame(frame, interpolation=config.interpolation)
            mixed = mixer.push(und)
            if stepper.accept():
                vw(mixed)
                written += 1

    logger.info(f"Done! Wrote {written} frames to: {destination}")
    return written
