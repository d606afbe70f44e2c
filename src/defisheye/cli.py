"""Command-line interface for fisheye undistortion."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .camera import FisheyeCamera
from .config import INTERPOLATIONS, CalibrationConfig, DefisheyeConfig, VideoConfig
from .files import default_output_path, is_image, is_video, list_directory, list_images


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="defisheye",
        description="Calibrate a fisheye camera from chessboard images and undistort images and videos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Calibrate from a folder of 6x9 chessboard photos, undistort a folder of images
  defisheye candidate/ --calibration-dir calibration/ -o out/

  # Save calibration for reuse
  defisheye --calibration-dir calibration/ --save-calibration calib.yml

  # Reuse existing calibration on a video
  defisheye clip.mp4 --calibration calib.yml -o out/

  # Calibration set and video settings from YAML
  defisheye clip.mp4 --config defisheye.yml

  # Keep every frame, no mixing, at 30 fps
  defisheye clip.mp4 --calibration calib.yml --mix-frames 1 --frame-step 1 --fps 30
        """
    )

    parser.add_argument(
        "candidates",
        nargs="*",
        help="Images, videos or directories to undistort"
    )

    parser.add_argument(
        "-o", "--output-dir",
        type=str,
        default=None,
        help="Directory for undistorted outputs (default: temporary files)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output"
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--calibration-dir",
        type=str,
        help="Directory of chessboard calibration images"
    )
    source.add_argument(
        "--config",
        type=str,
        help="YAML configuration file with calibration and video settings"
    )
    source.add_argument(
        "--calibration",
        type=str,
        help="Path to an existing calibration file"
    )

    # Calibration options
    calib_group = parser.add_argument_group("calibration options")
    calib_group.add_argument(
        "--chessboard-width",
        type=int,
        default=None,
        help="Inner corners per chessboard row (default: 6)"
    )
    calib_group.add_argument(
        "--chessboard-height",
        type=int,
        default=None,
        help="Inner corners per chessboard column (default: 9)"
    )
    calib_group.add_argument(
        "--balance",
        type=float,
        default=None,
        help="0 crops to valid pixels, 1 keeps the full field of view (default: 0.0); "
             "with --calibration, re-estimates the stored output matrix"
    )
    calib_group.add_argument(
        "--fov-scale",
        type=float,
        default=None,
        help="Divisor for the new focal length (default: 1.0); "
             "with --calibration, re-estimates the stored output matrix"
    )
    calib_group.add_argument(
        "--save-calibration",
        type=str,
        default=None,
        help="Path to save calibration for reuse"
    )

    # Video options
    video_group = parser.add_argument_group("video options")
    video_group.add_argument(
        "--mix-frames",
        type=int,
        default=None,
        help="Number of consecutive frames averaged together (default: 3)"
    )
    video_group.add_argument(
        "--frame-step",
        type=int,
        default=None,
        help="Keep one mixed frame out of every N (default: 6)"
    )
    video_group.add_argument(
        "--fps",
        type=float,
        default=None,
        help="Output frame rate (default: 5)"
    )
    video_group.add_argument(
        "--crf",
        type=int,
        default=None,
        help="Encoder constant rate factor, 0 is lossless (default: 0)"
    )

    # Output options
    output_group = parser.add_argument_group("output options")
    output_group.add_argument(
        "--interpolation",
        choices=INTERPOLATIONS,
        default=None,
        help="Interpolation method (default: linear)"
    )
    output_group.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress bar"
    )

    return parser


def _override(value, fallback):
    return fallback if value is None else value


def resolve_config(args: argparse.Namespace) -> Optional[DefisheyeConfig]:
    """
    Merge YAML configuration and command-line flags.

    Returns:
        DefisheyeConfig, or None when an existing calibration file is used
        and only video settings apply
    """
    if args.config:
        base = DefisheyeConfig.from_yaml(args.config)
        calib, video = base.calibration, base.video
        images = calib.images
    else:
        calib, video = None, VideoConfig()
        images = list_images(args.calibration_dir) if args.calibration_dir else None

    video = VideoConfig(
        mix_frames=_override(args.mix_frames, video.mix_frames),
        frame_step=_override(args.frame_step, video.frame_step),
        fps=_override(args.fps, video.fps),
        crf=_override(args.crf, video.crf),
        interpolation=_override(args.interpolation, video.interpolation),
    )

    if images is None:
        return DefisheyeConfig(calibration=None, video=video)

    calibration = CalibrationConfig(
        images=images,
        chessboard_width=_override(args.chessboard_width, calib.chessboard_width if calib else 6),
        chessboard_height=_override(args.chessboard_height, calib.chessboard_height if calib else 9),
        balance=_override(args.balance, calib.balance if calib else 0.0),
        fov_scale=_override(args.fov_scale, calib.fov_scale if calib else 1.0),
    )
    return DefisheyeConfig(calibration=calibration, video=video)


def expand_candidates(candidates: List[str]) -> List[Path]:
    """Expand directories to the images and videos they contain."""
    paths = []
    for candidate in candidates:
        p = Path(candidate)
        if p.is_dir():
            paths.extend(f for f in list_directory(p) if is_image(f) or is_video(f))
        elif p.exists():
            paths.append(p)
        else:
            raise FileNotFoundError(f"Candidate not found: {p}")
    return paths


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point for defisheye command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        config = resolve_config(args)

        if config.calibration is None:
            ignored = [
                flag for flag, value in (
                    ("--chessboard-width", args.chessboard_width),
                    ("--chessboard-height", args.chessboard_height),
                ) if value is not None
            ]
            if ignored:
                logger.warning(f"{', '.join(ignored)} ignored when loading an existing calibration")
            camera = FisheyeCamera.from_calibration_file(
                args.calibration, balance=args.balance, fov_scale=args.fov_scale
            )
        else:
            camera = FisheyeCamera.calibrate(config.calibration)

        if args.save_calibration:
            camera.save(args.save_calibration)

        candidates = expand_candidates(args.candidates)
        if not candidates:
            logger.info("No candidates given, calibration only")

        show_progress = not args.no_progress
        for source in candidates:
            destination = default_output_path(source, args.output_dir)
            try:
                if is_video(source):
                    camera.undistort_video(
                        source, destination,
                        video_config=config.video, show_progress=show_progress
                    )
                else:
                    camera.undistort_image(
                        source, destination, interpolation=config.video.interpolation
                    )
            except Exception:
                # Temporary outputs are created up front; drop them on failure
                if args.output_dir is None:
                    destination.unlink(missing_ok=True)
                raise
            print(destination)

        return 0

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
