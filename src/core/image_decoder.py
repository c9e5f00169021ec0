"""
Image Decoder

This module reinterprets a raw byte region as a flat typed sample array,
either from a fixed-layout datatype code or from a tag stream's bits
allocated / pixel representation pair.

Inputs:
    - Raw sample bytes
    - Datatype code (or bits allocated + signedness)
    - ByteOrder of the source file

Outputs:
    - 1-D NumPy arrays in native byte order

Requirements:
    - numpy
    - core.errors (DegradedDecodeWarning, VolumeDecodeError)
"""

import warnings
from typing import List, Optional, Tuple

import numpy as np

from core.errors import DegradedDecodeWarning, VolumeDecodeError
from core.tag_stream_decoder import ByteOrder

# Datatype code -> element type
DATATYPE_UINT8 = 2
DATATYPE_INT16 = 4
DATATYPE_INT32 = 8
DATATYPE_FLOAT32 = 16
DATATYPE_FLOAT64 = 64
DATATYPE_INT8 = 256
DATATYPE_UINT16 = 512
DATATYPE_UINT32 = 768

DATATYPE_DTYPES = {
    DATATYPE_UINT8: np.uint8,
    DATATYPE_INT16: np.int16,
    DATATYPE_INT32: np.int32,
    DATATYPE_FLOAT32: np.float32,
    DATATYPE_FLOAT64: np.float64,
    DATATYPE_INT8: np.int8,
    DATATYPE_UINT16: np.uint16,
    DATATYPE_UINT32: np.uint32,
}

FALLBACK_DATATYPE = DATATYPE_FLOAT32

# (bits allocated, signed) -> datatype code
_BITS_ALLOCATED_CODES = {
    (8, False): DATATYPE_UINT8,
    (8, True): DATATYPE_INT8,
    (16, False): DATATYPE_UINT16,
    (16, True): DATATYPE_INT16,
    (32, False): DATATYPE_UINT32,
    (32, True): DATATYPE_INT32,
}


def _degraded(message: str, warnings_out: Optional[List[str]]) -> None:
    if warnings_out is not None:
        warnings_out.append(message)
    warnings.warn(message, DegradedDecodeWarning, stacklevel=3)


def resolve_datatype(code: int, warnings_out: Optional[List[str]] = None) -> Tuple[int, np.dtype]:
    """
    Map a datatype code to (effective code, dtype).

    Unknown codes fall back to 4-byte float; the fallback is reported as a
    DegradedDecodeWarning and appended to warnings_out when given.
    """
    base = DATATYPE_DTYPES.get(code)
    if base is None:
        _degraded(f"Unknown datatype code {code}; decoding samples as 32-bit float", warnings_out)
        return FALLBACK_DATATYPE, np.dtype(np.float32)
    return code, np.dtype(base)


def datatype_for_bits_allocated(
    bits_allocated: int,
    signed: bool = False,
    warnings_out: Optional[List[str]] = None,
) -> int:
    """Datatype code for a tag stream's BitsAllocated / PixelRepresentation pair."""
    code = _BITS_ALLOCATED_CODES.get((bits_allocated, bool(signed)))
    if code is None:
        _degraded(f"Unsupported bits allocated {bits_allocated}; decoding samples as 32-bit float", warnings_out)
        return FALLBACK_DATATYPE
    return code


def bits_per_sample(code: int) -> int:
    base = DATATYPE_DTYPES.get(code, np.float32)
    return np.dtype(base).itemsize * 8


def decode_samples(
    raw,
    datatype_code: int,
    byte_order: ByteOrder,
    count: Optional[int] = None,
    warnings_out: Optional[List[str]] = None,
) -> np.ndarray:
    """
    Reinterpret raw bytes as a flat sample array.

    Args:
        raw: Sample bytes (bytes, bytearray, or memoryview)
        datatype_code: Declared datatype code
        byte_order: Byte order of the stored samples
        count: Number of samples required; extra trailing bytes are ignored
        warnings_out: Optional list collecting degraded-decode messages

    Returns:
        1-D array in native byte order

    Raises:
        VolumeDecodeError: If raw holds fewer than count samples
    """
    _, dtype = resolve_datatype(datatype_code, warnings_out)
    dtype = dtype.newbyteorder(byte_order.value)
    available = len(raw) // dtype.itemsize
    if count is None:
        count = available
    elif available < count:
        raise VolumeDecodeError(
            f"Sample payload holds {available} samples, {count} required"
        )
    samples = np.frombuffer(raw, dtype=dtype, count=count)
    return samples.astype(dtype.newbyteorder("="), copy=True)
