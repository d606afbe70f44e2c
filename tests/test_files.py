"""Tests for file helpers."""

from pathlib import Path

import numpy as np
import pytest

from defisheye.files import (
    create_temporary_file,
    default_output_path,
    is_video,
    list_directory,
    list_images,
    read_image,
    write_image,
)


class TestListing:

    def test_sorted_files_only(self, tmp_path):
        (tmp_path / "b.jpg").touch()
        (tmp_path / "a.txt").touch()
        (tmp_path / "sub").mkdir()

        assert list_directory(tmp_path) == [tmp_path / "a.txt", tmp_path / "b.jpg"]
        assert list_images(tmp_path) == [tmp_path / "b.jpg"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="No such directory"):
            list_directory(tmp_path / "nope")

    def test_not_a_directory(self, tmp_path):
        f = tmp_path / "f.jpg"
        f.touch()
        with pytest.raises(NotADirectoryError):
            list_directory(f)

    def test_is_video(self):
        assert is_video("clip.MP4")
        assert is_video(Path("a/b.mkv"))
        assert not is_video("still.jpg")


class TestImageIO:

    def test_write_then_read(self, tmp_path):
        img = np.zeros((10, 12, 3), dtype=np.uint8)
        img[2:5, 3:7] = (10, 20, 30)
        path = write_image(img, tmp_path / "nested" / "x.png")

        assert path.exists()
        assert np.array_equal(read_image(path), img)

    def test_read_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Could not read image"):
            read_image(tmp_path / "missing.png")


class TestOutputPaths:

    def test_output_dir(self, tmp_path):
        out = default_output_path("in/photo.jpg", tmp_path)
        assert out == tmp_path / "photo_undistorted.jpg"

    def test_temporary_when_no_dir(self):
        out = default_output_path("in/clip.mp4")
        try:
            assert out.exists()
            assert out.name.startswith("undistorted")
            assert out.suffix == ".mp4"
        finally:
            out.unlink()

    def test_create_temporary_file(self):
        path = create_temporary_file("undistorted", ".jpg")
        try:
            assert path.exists()
            assert path.suffix == ".jpg"
        finally:
            path.unlink()
