"""Tests for the command-line interface."""

import logging
import tempfile
from pathlib import Path

import cv2
import numpy as np
import pytest

import defisheye.camera as camera_module
from defisheye.calibration import load_calibration
from defisheye.cli import build_parser, expand_candidates, main, resolve_config

from conftest import draw_chessboard, gradient_image


@pytest.fixture
def calibration_file(tmp_path, equidistant_camera):
    path = tmp_path / "calib.yml"
    equidistant_camera.save(path)
    return path


@pytest.fixture
def candidate(tmp_path):
    path = tmp_path / "candidates" / "frame.png"
    path.parent.mkdir()
    cv2.imwrite(str(path), gradient_image())
    return path


class TestParser:

    def test_requires_a_calibration_source(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["x.jpg"])

    def test_sources_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--calibration", "a.yml", "--calibration-dir", "d"])

    def test_flags_override_yaml(self, tmp_path):
        (tmp_path / "calibration").mkdir()
        (tmp_path / "calibration" / "a.jpg").touch()
        cfg = tmp_path / "d.yml"
        cfg.write_text(
            "calibration:\n  image_dir: calibration\n  chessboard_width: 7\n"
            "video:\n  fps: 12\n  frame_step: 2\n"
        )
        args = build_parser().parse_args(["--config", str(cfg), "--fps", "24", "--chessboard-height", "4"])

        config = resolve_config(args)

        assert config.calibration.chessboard_size == (7, 4)
        assert config.video.fps == 24
        assert config.video.frame_step == 2

    def test_saved_calibration_has_no_calibration_set(self):
        args = build_parser().parse_args(["--calibration", "calib.yml", "--mix-frames", "1"])
        config = resolve_config(args)
        assert config.calibration is None
        assert config.video.mix_frames == 1


class TestExpandCandidates:

    def test_directories_and_files(self, tmp_path):
        d = tmp_path / "in"
        d.mkdir()
        for name in ("b.jpg", "a.mp4", "notes.txt"):
            (d / name).touch()
        single = tmp_path / "single.png"
        single.touch()

        paths = expand_candidates([str(d), str(single)])

        assert paths == [d / "a.mp4", d / "b.jpg", single]

    def test_missing_candidate(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Candidate not found"):
            expand_candidates([str(tmp_path / "nope.jpg")])


class TestMain:

    def test_undistorts_image_with_saved_calibration(self, tmp_path, calibration_file, candidate, capsys):
        out_dir = tmp_path / "out"

        code = main([str(candidate), "--calibration", str(calibration_file), "-o", str(out_dir)])

        assert code == 0
        expected = out_dir / "frame_undistorted.png"
        assert expected.exists()
        assert str(expected) in capsys.readouterr().out

    def test_temporary_outputs_without_output_dir(self, calibration_file, candidate, capsys):
        code = main([str(candidate.parent), "--calibration", str(calibration_file)])

        assert code == 0
        printed = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
        assert len(printed) == 1
        out = Path(printed[0])
        try:
            assert out.name.startswith("undistorted")
            assert cv2.imread(str(out)).shape == (120, 160, 3)
        finally:
            out.unlink()

    def test_calibrate_and_save(self, tmp_path, monkeypatch):
        calib_dir = tmp_path / "calibration"
        calib_dir.mkdir()
        cv2.imwrite(str(calib_dir / "board.png"), draw_chessboard())
        K = np.array([[150.0, 0, 165.0], [0, 150.0, 210.0], [0, 0, 1]])
        monkeypatch.setattr(
            camera_module, "calibrate_fisheye",
            lambda objp, imgp, size: (0.2, K.copy(), np.zeros((4, 1)))
        )
        saved = tmp_path / "calib.yml"

        code = main(["--calibration-dir", str(calib_dir), "--save-calibration", str(saved)])

        assert code == 0
        assert saved.exists()

    def test_missing_calibration_file(self, tmp_path, candidate):
        code = main([str(candidate), "--calibration", str(tmp_path / "nope.yml")])
        assert code == 1

    def test_candidate_size_mismatch(self, tmp_path, calibration_file):
        big = tmp_path / "big.png"
        cv2.imwrite(str(big), np.zeros((50, 50, 3), dtype=np.uint8))

        code = main([str(big), "--calibration", str(calibration_file), "-o", str(tmp_path / "out")])

        assert code == 1

    def test_failed_candidate_leaves_no_temporary_file(self, tmp_path, calibration_file, monkeypatch):
        temp_dir = tmp_path / "tmp"
        temp_dir.mkdir()
        monkeypatch.setattr(tempfile, "tempdir", str(temp_dir))
        big = tmp_path / "big.png"
        cv2.imwrite(str(big), np.zeros((50, 50, 3), dtype=np.uint8))

        code = main([str(big), "--calibration", str(calibration_file)])

        assert code == 1
        assert list(temp_dir.iterdir()) == []

    def test_failed_candidate_in_output_dir_is_not_touched(self, tmp_path, calibration_file):
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        existing = out_dir / "big_undistorted.png"
        existing.write_bytes(b"previous run")
        big = tmp_path / "big.png"
        cv2.imwrite(str(big), np.zeros((50, 50, 3), dtype=np.uint8))

        code = main([str(big), "--calibration", str(calibration_file), "-o", str(out_dir)])

        assert code == 1
        assert existing.read_bytes() == b"previous run"

    def test_balance_reestimates_saved_calibration(self, tmp_path, fisheye_camera):
        calib = tmp_path / "fisheye.yml"
        fisheye_camera.save(calib)
        resaved = tmp_path / "wide.yml"

        code = main(["--calibration", str(calib), "--balance", "1.0", "--save-calibration", str(resaved)])

        assert code == 0
        assert load_calibration(resaved)["new_K"][0, 0] < fisheye_camera.new_K[0, 0]

    def test_chessboard_flags_warn_with_saved_calibration(self, calibration_file, caplog):
        with caplog.at_level(logging.WARNING):
            code = main(["--calibration", str(calibration_file), "--chessboard-width", "7"])

        assert code == 0
        assert "--chessboard-width ignored" in caplog.text

    def test_invalid_yaml_reports_invalid_input(self, tmp_path, caplog):
        cfg = tmp_path / "d.yml"
        cfg.write_text("calibration:\n  images: [a.jpg, null]\n")

        with caplog.at_level(logging.ERROR):
            code = main(["--config", str(cfg)])

        assert code == 1
        assert "Invalid input" in caplog.text
