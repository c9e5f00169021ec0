"""
Tests for the command line entry point (src/main.py).

Runs main() against synthetic files in a temporary directory, with HOME and
APPDATA pointed there so the user's settings file is never touched.
"""

import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import numpy as np
from PIL import Image

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.dirname(__file__))

from main import main
from synthetic_files import dicom_image, nifti_image


class TestMain(unittest.TestCase):
    """End-to-end runs of main()."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.out_dir = self.root / "out"
        env = {"HOME": str(self.root), "APPDATA": str(self.root)}
        self.env_patch = mock.patch.dict(os.environ, env)
        self.env_patch.start()

    def tearDown(self):
        self.env_patch.stop()
        self.temp_dir.cleanup()

    def test_renders_middle_axial_slice(self):
        data = np.arange(4 * 3 * 5, dtype=np.int16).reshape(5, 3, 4)
        path = self.root / "head.nii"
        path.write_bytes(nifti_image(data, 4))
        self.assertEqual(main([str(path), "--out", str(self.out_dir)]), 0)
        written = self.out_dir / "head_axial_0002.png"
        self.assertTrue(written.exists())
        with Image.open(written) as image:
            self.assertEqual(image.size, (4, 3))

    def test_axis_and_slice_arguments(self):
        data = np.zeros((6, 2, 3), dtype=np.uint8)
        path = self.root / "vol.nii.gz"
        path.write_bytes(nifti_image(data, 2, compress=True))
        args = [str(path), "--axis", "sagittal", "--slice", "99", "--out", str(self.out_dir)]
        self.assertEqual(main(args), 0)
        self.assertTrue((self.out_dir / "vol_sagittal_0002.png").exists())

    def test_local_range_mode_argument(self):
        data = np.arange(4 * 3 * 5, dtype=np.int16).reshape(5, 3, 4)
        path = self.root / "head.nii"
        path.write_bytes(nifti_image(data, 4))
        args = [str(path), "--range-mode", "local", "--out", str(self.out_dir)]
        self.assertEqual(main(args), 0)
        with Image.open(self.out_dir / "head_axial_0002.png") as image:
            red = np.asarray(image)[..., 0]
        self.assertEqual((int(red.min()), int(red.max())), (0, 255))

    def test_brightness_saved_to_settings(self):
        path = self.root / "scan.nii"
        path.write_bytes(nifti_image(np.zeros((1, 2, 2), dtype=np.int16), 4))
        self.assertEqual(main([str(path), "--brightness", "140", "--out", str(self.out_dir)]), 0)
        settings = list(self.root.rglob("medview_config.json"))
        self.assertEqual(len(settings), 1)
        self.assertIn('"brightness": 140', settings[0].read_text(encoding="utf-8"))

    def test_series_directory(self):
        series = self.root / "series"
        series.mkdir()
        for i in range(2):
            (series / f"IM{i}.dcm").write_bytes(dicom_image(np.full((2, 2), i, dtype=np.uint16)))
        self.assertEqual(main([str(series), "--out", str(self.out_dir)]), 0)
        names = sorted(p.name for p in self.out_dir.iterdir())
        self.assertEqual(names, ["series_0000_axial_0000.png", "series_0001_axial_0000.png"])

    def test_missing_file_fails(self):
        self.assertEqual(main([str(self.root / "missing.nii"), "--out", str(self.out_dir)]), 1)

    def test_short_payload_fails(self):
        path = self.root / "short.nii"
        path.write_bytes(nifti_image(np.zeros((2, 2, 2), dtype=np.int16), 4, payload=b"\x00" * 4))
        self.assertEqual(main([str(path), "--out", str(self.out_dir)]), 1)


if __name__ == '__main__':
    unittest.main()
