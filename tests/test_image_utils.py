"""
Unit tests for image utilities (utils.image_utils).

Tests frame to Pillow conversion, aspect scaling, and the PNG display sink.
"""

import unittest
import tempfile
import sys
import os
from pathlib import Path

import numpy as np
from PIL import Image

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from core.intensity_windower import RenderedFrame, grayscale_to_rgba
from core.slice_extractor import Axis
from core.view_session import SlicePosition
from utils.image_utils import PNGDisplaySink, frame_to_image, scale_to_aspect


def _frame(width=3, height=2):
    gray = np.arange(width * height, dtype=np.uint8).reshape(height, width) * 40
    return RenderedFrame(width, height, grayscale_to_rgba(gray).tobytes())


class TestFrameToImage(unittest.TestCase):
    """Tests for frame_to_image and scale_to_aspect."""

    def test_rgba_image(self):
        image = frame_to_image(_frame())
        self.assertEqual(image.mode, "RGBA")
        self.assertEqual(image.size, (3, 2))
        self.assertEqual(image.getpixel((2, 1)), (200, 200, 200, 255))

    def test_scale_to_aspect_stretches_short_side(self):
        image = Image.new("RGBA", (4, 4))
        self.assertEqual(scale_to_aspect(image, 2.0).size, (8, 4))
        self.assertEqual(scale_to_aspect(image, 0.5).size, (4, 8))

    def test_scale_to_aspect_unchanged(self):
        image = Image.new("RGBA", (6, 3))
        self.assertIs(scale_to_aspect(image, 2.0), image)
        self.assertIs(scale_to_aspect(image, 0.0), image)


class TestPNGDisplaySink(unittest.TestCase):
    """Tests for PNGDisplaySink."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_show_frame_writes_png(self):
        sink = PNGDisplaySink(self.temp_dir.name, prefix="brain")
        path = sink.show_frame(_frame(), SlicePosition(Axis.CORONAL, 7, 20))
        self.assertEqual(path, Path(self.temp_dir.name) / "brain_coronal_0007.png")
        self.assertEqual(sink.written, [path])
        with Image.open(path) as written:
            self.assertEqual(written.size, (3, 2))

    def test_show_frame_applies_aspect(self):
        sink = PNGDisplaySink(self.temp_dir.name, aspect_ratio=0.5)
        path = sink.show_frame(_frame(2, 2), SlicePosition(Axis.AXIAL, 0, 0))
        with Image.open(path) as written:
            self.assertEqual(written.size, (2, 4))

    def test_placeholder_writes_nothing(self):
        sink = PNGDisplaySink(self.temp_dir.name)
        sink.show_placeholder(SlicePosition(Axis.AXIAL, 3, 6))
        self.assertEqual(sink.placeholders, 1)
        self.assertEqual(list(Path(self.temp_dir.name).iterdir()), [])


if __name__ == '__main__':
    unittest.main()
