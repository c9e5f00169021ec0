"""
Volume Header Reader

This module parses the fixed-layout volumetric header format (NIfTI-1 and
NIfTI-2 single-file layouts) and builds header-only or fully loaded Volume
objects from it. Compressed buffers are passed through a pluggable
decompression step first.

Inputs:
    - Complete file buffer, optionally gzip-compressed
    - Optional decompression callable

Outputs:
    - VolumeHeader (dimensions, spacing, datatype, scaling, calibration)
    - Volume (header-only or loaded)

Requirements:
    - struct for fixed-offset reads
    - gzip for the default decompression step
    - core.volume, core.errors
"""

import gzip
import struct
from typing import Callable, List, Optional, Tuple

import numpy as np

from core.errors import MalformedHeaderError, MissingRequiredFieldError
from core.tag_stream_decoder import ByteOrder
from core.volume import Volume, sanitize_spacing
from utils.debug_log import debug_log

GZIP_MAGIC = b"\x1f\x8b"

NIFTI1_HEADER_SIZE = 348
NIFTI2_HEADER_SIZE = 540
NIFTI1_DEFAULT_VOX_OFFSET = 352
NIFTI2_DEFAULT_VOX_OFFSET = 544

# NIfTI-1 field offsets
_N1_DIM = 40
_N1_DATATYPE = 70
_N1_BITPIX = 72
_N1_PIXDIM = 76
_N1_VOX_OFFSET = 108
_N1_SCL_SLOPE = 112
_N1_SCL_INTER = 116
_N1_CAL_MAX = 124
_N1_CAL_MIN = 128
_N1_DESCRIP = 148
_N1_MAGIC = 344

# NIfTI-2 field offsets
_N2_MAGIC = 4
_N2_DATATYPE = 12
_N2_BITPIX = 14
_N2_DIM = 16
_N2_PIXDIM = 104
_N2_VOX_OFFSET = 168
_N2_SCL_SLOPE = 176
_N2_SCL_INTER = 184
_N2_CAL_MAX = 192
_N2_CAL_MIN = 200
_N2_DESCRIP = 240

Decompressor = Callable[[bytes], bytes]


def is_compressed(buffer) -> bool:
    """True if the buffer starts with the gzip signature."""
    return len(buffer) >= 2 and bytes(buffer[:2]) == GZIP_MAGIC


def gzip_decompress(buffer) -> bytes:
    try:
        return gzip.decompress(bytes(buffer))
    except (OSError, EOFError) as e:
        raise MalformedHeaderError(f"Could not decompress volume file: {e}") from e


class VolumeHeader:
    """
    Fields read from a fixed-layout header.

    dims and pixdims keep all 8 stored entries; only indices 1-3 are spatial.
    """

    def __init__(
        self,
        dims: List[int],
        pixdims: List[float],
        datatype_code: int,
        bits_per_voxel: int,
        vox_offset: int,
        scl_slope: float,
        scl_inter: float,
        cal_min: float,
        cal_max: float,
        byte_order: ByteOrder,
        magic: str = "",
        description: str = "",
        version: int = 1,
    ):
        self.dims = list(dims)
        self.pixdims = list(pixdims)
        self.datatype_code = datatype_code
        self.bits_per_voxel = bits_per_voxel
        self.vox_offset = vox_offset
        self.scl_slope = scl_slope
        self.scl_inter = scl_inter
        self.cal_min = cal_min
        self.cal_max = cal_max
        self.byte_order = byte_order
        self.magic = magic
        self.description = description
        self.version = version

    @property
    def spatial_dimensions(self) -> Tuple[int, int, int]:
        """
        (nx, ny, nz) from dims[1..3].

        Entries beyond dims[0] count as 1. A declared spatial dimension that
        is zero or negative raises MissingRequiredFieldError.
        """
        ndim = self.dims[0]
        result = []
        for i, name in ((1, "nx"), (2, "ny"), (3, "nz")):
            if i > ndim:
                result.append(1)
                continue
            if self.dims[i] <= 0:
                raise MissingRequiredFieldError(f"spatial dimension {name}")
            result.append(int(self.dims[i]))
        return tuple(result)

    @property
    def voxel_spacing(self) -> Tuple[float, float, float]:
        return sanitize_spacing(self.pixdims[1:4])

    @property
    def rescale(self) -> Tuple[float, float]:
        """(slope, intercept); a zero or non-finite slope means no scaling."""
        slope, intercept = self.scl_slope, self.scl_inter
        if not np.isfinite(slope) or slope == 0:
            return 1.0, 0.0
        if not np.isfinite(intercept):
            intercept = 0.0
        return float(slope), float(intercept)

    @property
    def calibration(self) -> Tuple[Optional[float], Optional[float]]:
        """(cal_min, cal_max), or (None, None) when the header leaves them unset."""
        if not (np.isfinite(self.cal_min) and np.isfinite(self.cal_max)):
            return None, None
        if self.cal_max <= self.cal_min:
            return None, None
        return float(self.cal_min), float(self.cal_max)


def _decode_text(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("latin-1").strip()


def _detect_layout(buffer) -> Tuple[int, ByteOrder]:
    """Return (version, byte order) from the sizeof_hdr field."""
    if len(buffer) < 4:
        raise MalformedHeaderError("Volume header truncated: fewer than 4 bytes")
    for byte_order in (ByteOrder.LITTLE, ByteOrder.BIG):
        size = struct.unpack_from(byte_order.value + "i", buffer, 0)[0]
        if size == NIFTI1_HEADER_SIZE:
            return 1, byte_order
        if size == NIFTI2_HEADER_SIZE:
            return 2, byte_order
    raise MalformedHeaderError("Unrecognized volume header size field")


def _parse_nifti1(buffer, byte_order: ByteOrder) -> VolumeHeader:
    p = byte_order.value
    dims = list(struct.unpack_from(p + "8h", buffer, _N1_DIM))
    pixdims = list(struct.unpack_from(p + "8f", buffer, _N1_PIXDIM))
    datatype_code, bitpix = struct.unpack_from(p + "2h", buffer, _N1_DATATYPE)
    vox_offset = struct.unpack_from(p + "f", buffer, _N1_VOX_OFFSET)[0]
    scl_slope, scl_inter = struct.unpack_from(p + "2f", buffer, _N1_SCL_SLOPE)
    cal_max, cal_min = struct.unpack_from(p + "2f", buffer, _N1_CAL_MAX)
    vox_offset = int(vox_offset) if np.isfinite(vox_offset) else 0
    if vox_offset < NIFTI1_HEADER_SIZE:
        vox_offset = NIFTI1_DEFAULT_VOX_OFFSET
    return VolumeHeader(
        dims, pixdims, datatype_code, bitpix, vox_offset, scl_slope, scl_inter,
        cal_min, cal_max, byte_order,
        magic=_decode_text(bytes(buffer[_N1_MAGIC:_N1_MAGIC + 4])),
        description=_decode_text(bytes(buffer[_N1_DESCRIP:_N1_DESCRIP + 80])),
        version=1,
    )


def _parse_nifti2(buffer, byte_order: ByteOrder) -> VolumeHeader:
    p = byte_order.value
    datatype_code, bitpix = struct.unpack_from(p + "2h", buffer, _N2_DATATYPE)
    dims = list(struct.unpack_from(p + "8q", buffer, _N2_DIM))
    pixdims = list(struct.unpack_from(p + "8d", buffer, _N2_PIXDIM))
    vox_offset = struct.unpack_from(p + "q", buffer, _N2_VOX_OFFSET)[0]
    scl_slope, scl_inter, cal_max, cal_min = struct.unpack_from(p + "4d", buffer, _N2_SCL_SLOPE)
    if vox_offset < NIFTI2_HEADER_SIZE:
        vox_offset = NIFTI2_DEFAULT_VOX_OFFSET
    return VolumeHeader(
        dims, pixdims, datatype_code, bitpix, vox_offset, scl_slope, scl_inter,
        cal_min, cal_max, byte_order,
        magic=_decode_text(bytes(buffer[_N2_MAGIC:_N2_MAGIC + 8])),
        description=_decode_text(bytes(buffer[_N2_DESCRIP:_N2_DESCRIP + 80])),
        version=2,
    )


def read_volume_header(
    buffer,
    decompress: Optional[Decompressor] = gzip_decompress,
) -> Tuple[VolumeHeader, bytes]:
    """
    Parse a fixed-layout header.

    Args:
        buffer: Complete file contents
        decompress: Called on gzip-signed buffers; None disables decompression

    Returns:
        Tuple of (header, uncompressed buffer)

    Raises:
        MalformedHeaderError: If the header is truncated, compressed with no
            decompressor, or its dimension array is invalid
    """
    if is_compressed(buffer):
        if decompress is None:
            raise MalformedHeaderError("Volume file is compressed and no decompressor was given")
        buffer = decompress(buffer)
        debug_log("volume_header_reader.py:read_volume_header", "Decompressed buffer", {"size": len(buffer)})

    version, byte_order = _detect_layout(buffer)
    header_size = NIFTI1_HEADER_SIZE if version == 1 else NIFTI2_HEADER_SIZE
    if len(buffer) < header_size:
        raise MalformedHeaderError(
            f"Volume header truncated: {len(buffer)} bytes, {header_size} required"
        )

    header = _parse_nifti1(buffer, byte_order) if version == 1 else _parse_nifti2(buffer, byte_order)

    if len(header.dims) < 4 or not 1 <= header.dims[0] <= 7:
        raise MalformedHeaderError(f"Invalid dimension array: {header.dims}")

    return header, buffer


def load_volume(
    buffer,
    lazy: bool = True,
    decompress: Optional[Decompressor] = gzip_decompress,
) -> Volume:
    """
    Build a Volume from a fixed-layout file buffer.

    Args:
        buffer: Complete file contents
        lazy: If True, return a header-only volume; call load_samples() later
        decompress: Decompression step for compressed buffers

    Returns:
        Volume in HEADER_ONLY or LOADED state
    """
    header, buffer = read_volume_header(buffer, decompress)
    dimensions = header.spatial_dimensions
    slope, intercept = header.rescale
    cal_min, cal_max = header.calibration

    print(
        f"[NIFTI] {dimensions[0]}x{dimensions[1]}x{dimensions[2]}, "
        f"datatype {header.datatype_code}, {header.bits_per_voxel} bits per voxel"
    )

    volume = Volume(
        dimensions,
        voxel_spacing=header.voxel_spacing,
        datatype_code=header.datatype_code,
        raw_payload=memoryview(buffer)[header.vox_offset:],
        byte_order=header.byte_order,
        rescale_slope=slope,
        rescale_intercept=intercept,
        calibration_min=cal_min,
        calibration_max=cal_max,
        source_format="nifti",
        metadata={"description": header.description, "magic": header.magic, "version": header.version},
    )
    if not lazy:
        volume.load_samples()
    return volume
