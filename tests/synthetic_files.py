"""
Builders for synthetic test files.

Creates tag stream (DICOM-style) and fixed-layout (NIfTI-1) byte buffers in
memory so tests do not depend on sample data on disk.
"""

import gzip
import struct

import numpy as np

LONG_LENGTH_VRS = {"OB", "OD", "OF", "OL", "OV", "OW", "SQ", "UC", "UN", "UR", "UT"}

ROWS = 0x00280010
COLUMNS = 0x00280011
SAMPLES_PER_PIXEL = 0x00280002
PHOTOMETRIC_INTERPRETATION = 0x00280004
BITS_ALLOCATED = 0x00280100
PIXEL_REPRESENTATION = 0x00280103
PIXEL_SPACING = 0x00280030
WINDOW_CENTER = 0x00281050
WINDOW_WIDTH = 0x00281051
RESCALE_INTERCEPT = 0x00281052
RESCALE_SLOPE = 0x00281053
SLICE_THICKNESS = 0x00180050
MODALITY = 0x00080060
PIXEL_DATA = 0x7FE00010


def pad_even(value: bytes, pad: bytes = b" ") -> bytes:
    return value + pad if len(value) % 2 else value


def element(tag: int, vr: str, value: bytes, byte_order: str = "<", explicit: bool = True) -> bytes:
    """Encode one data element."""
    head = struct.pack(byte_order + "HH", tag >> 16, tag & 0xFFFF)
    if not explicit:
        return head + struct.pack(byte_order + "I", len(value)) + value
    if vr in LONG_LENGTH_VRS:
        return head + vr.encode("ascii") + b"\x00\x00" + struct.pack(byte_order + "I", len(value)) + value
    return head + vr.encode("ascii") + struct.pack(byte_order + "H", len(value)) + value


def us(value: int, byte_order: str = "<") -> bytes:
    return struct.pack(byte_order + "H", value)


def ds(*values) -> bytes:
    return pad_even("\\".join(str(v) for v in values).encode("ascii"))


def tag_stream(elements, preamble: bool = True) -> bytes:
    body = b"".join(elements)
    if preamble:
        return b"\x00" * 128 + b"DICM" + body
    return body


def dicom_image(
    pixels: np.ndarray,
    bits_allocated: int = 16,
    byte_order: str = "<",
    explicit: bool = True,
    preamble: bool = True,
    pixel_representation: int = 0,
    samples_per_pixel: int = 1,
    extra_elements=(),
    pixel_bytes: bytes = None,
) -> bytes:
    """
    Build a single-frame tag stream image.

    pixels is (rows, columns) or (rows, columns, samples); its bytes are
    written in byte_order unless pixel_bytes is given.
    """
    rows, columns = pixels.shape[:2]
    if pixel_bytes is None:
        pixel_bytes = pixels.astype(pixels.dtype.newbyteorder(byte_order)).tobytes()
    pixel_bytes = pad_even(pixel_bytes, b"\x00")
    elements = [
        element(SAMPLES_PER_PIXEL, "US", us(samples_per_pixel, byte_order), byte_order, explicit),
        element(ROWS, "US", us(rows, byte_order), byte_order, explicit),
        element(COLUMNS, "US", us(columns, byte_order), byte_order, explicit),
        element(BITS_ALLOCATED, "US", us(bits_allocated, byte_order), byte_order, explicit),
        element(PIXEL_REPRESENTATION, "US", us(pixel_representation, byte_order), byte_order, explicit),
    ]
    elements.extend(extra_elements)
    elements.append(element(PIXEL_DATA, "OW", pixel_bytes, byte_order, explicit))
    return tag_stream(elements, preamble)


def nifti_image(
    data: np.ndarray,
    datatype: int,
    pixdim=(1.0, 1.0, 1.0),
    scl_slope: float = 0.0,
    scl_inter: float = 0.0,
    cal_min: float = 0.0,
    cal_max: float = 0.0,
    byte_order: str = "<",
    dims=None,
    payload: bytes = None,
    compress: bool = False,
) -> bytes:
    """
    Build a single-file NIfTI-1 buffer.

    data is (nz, ny, nx); its C-order bytes put x fastest.
    """
    nz, ny, nx = data.shape
    header = bytearray(348)
    struct.pack_into(byte_order + "i", header, 0, 348)
    if dims is None:
        dims = [3, nx, ny, nz, 1, 1, 1, 1]
    struct.pack_into(byte_order + "8h", header, 40, *dims)
    bitpix = data.dtype.itemsize * 8
    struct.pack_into(byte_order + "2h", header, 70, datatype, bitpix)
    pixdims = [1.0] + list(pixdim) + [0.0] * (7 - len(pixdim))
    struct.pack_into(byte_order + "8f", header, 76, *pixdims)
    struct.pack_into(byte_order + "f", header, 108, 352.0)
    struct.pack_into(byte_order + "2f", header, 112, scl_slope, scl_inter)
    struct.pack_into(byte_order + "2f", header, 124, cal_max, cal_min)
    header[148:148 + 9] = b"synthetic"
    header[344:348] = b"n+1\x00"
    if payload is None:
        payload = data.astype(data.dtype.newbyteorder(byte_order)).tobytes()
    buffer = bytes(header) + b"\x00" * 4 + payload
    if compress:
        return gzip.compress(buffer)
    return buffer
