"""
Unit tests for fixed-layout volume headers (core.volume_header_reader).

Tests header field extraction, byte order detection, compressed buffers,
lazy loading, and malformed headers.
"""

import gzip
import struct
import unittest
import warnings
import sys
import os

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.dirname(__file__))

from core.errors import (
    DegradedDecodeWarning,
    MalformedHeaderError,
    MissingRequiredFieldError,
    VolumeDecodeError,
    VolumeNotReadyError,
)
from core.tag_stream_decoder import ByteOrder
from core.volume import VolumeState
from core.volume_header_reader import is_compressed, load_volume, read_volume_header
from synthetic_files import nifti_image


def _ramp(nz=2, ny=3, nx=4, dtype=np.int16):
    return np.arange(nz * ny * nx, dtype=dtype).reshape(nz, ny, nx)


class TestReadVolumeHeader(unittest.TestCase):
    """Tests for read_volume_header."""

    def test_header_fields(self):
        buffer = nifti_image(_ramp(), 4, pixdim=(0.5, 0.75, 2.0), scl_slope=2.0, scl_inter=-10.0,
                             cal_min=0.0, cal_max=100.0)
        header, _ = read_volume_header(buffer)
        self.assertEqual(header.spatial_dimensions, (4, 3, 2))
        self.assertEqual(header.voxel_spacing, (0.5, 0.75, 2.0))
        self.assertEqual(header.datatype_code, 4)
        self.assertEqual(header.bits_per_voxel, 16)
        self.assertEqual(header.vox_offset, 352)
        self.assertEqual(header.rescale, (2.0, -10.0))
        self.assertEqual(header.calibration, (0.0, 100.0))
        self.assertEqual(header.magic, "n+1")
        self.assertEqual(header.description, "synthetic")
        self.assertIs(header.byte_order, ByteOrder.LITTLE)

    def test_big_endian_detected(self):
        header, _ = read_volume_header(nifti_image(_ramp(), 4, byte_order=">"))
        self.assertIs(header.byte_order, ByteOrder.BIG)
        self.assertEqual(header.spatial_dimensions, (4, 3, 2))

    def test_invalid_pixdims_become_one(self):
        header, _ = read_volume_header(nifti_image(_ramp(), 4, pixdim=(0.0, -2.0, float("nan"))))
        self.assertEqual(header.voxel_spacing, (1.0, 1.0, 1.0))

    def test_zero_slope_means_no_scaling(self):
        header, _ = read_volume_header(nifti_image(_ramp(), 4, scl_slope=0.0, scl_inter=50.0))
        self.assertEqual(header.rescale, (1.0, 0.0))

    def test_unset_calibration(self):
        header, _ = read_volume_header(nifti_image(_ramp(), 4))
        self.assertEqual(header.calibration, (None, None))

    def test_two_dimensional_volume(self):
        data = _ramp(nz=1)
        buffer = nifti_image(data, 4, dims=[2, 4, 3, 0, 0, 0, 0, 0])
        header, _ = read_volume_header(buffer)
        self.assertEqual(header.spatial_dimensions, (4, 3, 1))

    def test_truncated_header(self):
        buffer = nifti_image(_ramp(), 4)[:200]
        with self.assertRaises(MalformedHeaderError):
            read_volume_header(buffer)

    def test_unrecognized_size_field(self):
        with self.assertRaises(MalformedHeaderError):
            read_volume_header(b"\x01\x02\x03\x04" + b"\x00" * 400)

    def test_invalid_dimension_count(self):
        buffer = nifti_image(_ramp(), 4, dims=[0, 4, 3, 2, 1, 1, 1, 1])
        with self.assertRaises(MalformedHeaderError):
            read_volume_header(buffer)

    def test_zero_spatial_dimension(self):
        buffer = nifti_image(_ramp(), 4, dims=[3, 4, 0, 2, 1, 1, 1, 1])
        header, _ = read_volume_header(buffer)
        with self.assertRaises(MissingRequiredFieldError):
            header.spatial_dimensions

    def test_nifti2_header(self):
        data = _ramp(dtype=np.float32)
        header = bytearray(540)
        struct.pack_into("<i", header, 0, 540)
        header[4:12] = b"n+2\x00\r\n\x1a\n"
        struct.pack_into("<2h", header, 12, 16, 32)
        struct.pack_into("<8q", header, 16, 3, 4, 3, 2, 1, 1, 1, 1)
        struct.pack_into("<8d", header, 104, 1.0, 0.9, 0.8, 3.0, 0, 0, 0, 0)
        struct.pack_into("<q", header, 168, 544)
        buffer = bytes(header) + b"\x00" * 4 + data.tobytes()
        volume = load_volume(buffer, lazy=False)
        self.assertEqual(volume.dimensions, (4, 3, 2))
        self.assertEqual(volume.voxel_spacing, (0.9, 0.8, 3.0))
        self.assertEqual(volume.metadata["version"], 2)
        np.testing.assert_array_equal(volume.samples, data.ravel())


class TestCompression(unittest.TestCase):
    """Tests for compressed buffers."""

    def test_gzip_buffer(self):
        data = _ramp()
        buffer = nifti_image(data, 4, compress=True)
        self.assertTrue(is_compressed(buffer))
        volume = load_volume(buffer, lazy=False)
        np.testing.assert_array_equal(volume.samples, data.ravel())

    def test_no_decompressor(self):
        buffer = nifti_image(_ramp(), 4, compress=True)
        with self.assertRaises(MalformedHeaderError):
            read_volume_header(buffer, decompress=None)

    def test_custom_decompressor(self):
        calls = []

        def decompress(raw):
            calls.append(len(raw))
            return gzip.decompress(raw)

        buffer = nifti_image(_ramp(), 4, compress=True)
        header, _ = read_volume_header(buffer, decompress=decompress)
        self.assertEqual(len(calls), 1)
        self.assertEqual(header.spatial_dimensions, (4, 3, 2))

    def test_corrupt_gzip(self):
        buffer = b"\x1f\x8b" + b"\x00" * 20
        with self.assertRaises(MalformedHeaderError):
            read_volume_header(buffer)


class TestLoadVolume(unittest.TestCase):
    """Tests for load_volume and the header-only state."""

    def test_lazy_then_loaded(self):
        data = _ramp()
        volume = load_volume(nifti_image(data, 4))
        self.assertIs(volume.state, VolumeState.HEADER_ONLY)
        with self.assertRaises(VolumeNotReadyError):
            volume.samples
        volume.load_samples()
        self.assertIs(volume.state, VolumeState.LOADED)
        np.testing.assert_array_equal(volume.samples, data.ravel())
        self.assertIs(volume.load_samples(), volume.samples)

    def test_big_endian_samples(self):
        data = _ramp(dtype=np.uint16)
        volume = load_volume(nifti_image(data, 512, byte_order=">"), lazy=False)
        np.testing.assert_array_equal(volume.samples, data.ravel())

    def test_scaling_carried_to_volume(self):
        volume = load_volume(nifti_image(_ramp(), 4, scl_slope=0.5, scl_inter=3.0))
        self.assertEqual(volume.rescale_slope, 0.5)
        self.assertEqual(volume.rescale_intercept, 3.0)
        self.assertEqual(volume.source_format, "nifti")

    def test_unknown_datatype_degrades(self):
        data = _ramp(dtype=np.float32)
        volume = load_volume(nifti_image(data, 128))
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            volume.load_samples()
        self.assertTrue(any(issubclass(w.category, DegradedDecodeWarning) for w in caught))
        self.assertEqual(len(volume.decode_warnings), 1)
        np.testing.assert_array_equal(volume.samples, data.ravel())

    def test_short_payload(self):
        data = _ramp()
        buffer = nifti_image(data, 4, payload=data.tobytes()[:10])
        volume = load_volume(buffer)
        with self.assertRaises(VolumeDecodeError):
            volume.load_samples()
        self.assertIs(volume.state, VolumeState.HEADER_ONLY)


if __name__ == '__main__':
    unittest.main()
