"""
Tests for Pillow-backed image conversion.

Run with: pytest tests/test_convert_utils.py -v
"""

import os
import sys
from pathlib import Path

import pytest
from PIL import Image

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "textures"))

from convert_utils import ConversionError, convert_image, normalise_format, target_path  # noqa: E402


class TestFormats:
    def test_normalise(self):
        assert normalise_format(".PNG") == "png"
        assert normalise_format("jpeg") == "jpeg"

    def test_unsupported(self):
        with pytest.raises(ValueError):
            normalise_format("psd")

    def test_target_path_in_place(self):
        assert target_path(Path("tex/wall.tif"), "png") == Path("tex/wall.png")

    def test_target_path_dest_dir(self):
        assert target_path(Path("tex/wall.tif"), ".jpg", Path("out")) == Path("out/wall.jpg")


class TestConvertImage:
    def test_tiff_to_png_keeps_alpha(self, tmp_path):
        src = tmp_path / "wall_albedo.tif"
        Image.new("RGBA", (4, 4), (255, 0, 0, 128)).save(src)

        logs = []
        out = convert_image(src, tmp_path / "wall_albedo.png", logger=logs.append)

        with Image.open(out) as img:
            assert img.format == "PNG"
            assert img.mode == "RGBA"
            assert img.getpixel((0, 0)) == (255, 0, 0, 128)
        assert logs and logs[0].startswith("[CONVERT]")

    def test_alpha_dropped_for_jpeg(self, tmp_path):
        src = tmp_path / "wall.png"
        Image.new("RGBA", (4, 4), (0, 255, 0, 255)).save(src)

        out = convert_image(src, tmp_path / "out" / "wall.jpg")

        with Image.open(out) as img:
            assert img.format == "JPEG"
            assert img.mode == "RGB"

    def test_decode_failure(self, tmp_path):
        src = tmp_path / "broken.tif"
        src.write_bytes(b"not an image")
        with pytest.raises(ConversionError, match="Failed to decode: broken.tif"):
            convert_image(src, tmp_path / "broken.png")
        assert not (tmp_path / "broken.png").exists()
