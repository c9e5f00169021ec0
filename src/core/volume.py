"""
Volume Model

This module holds the decoded volumetric sample buffer and its geometry.
A volume is created either fully loaded or header-only; a header-only volume
keeps its raw payload until load_samples() decodes it once.

Sample order is x fastest, then y, then z:
    index = z * nx * ny + y * nx + x

Inputs:
    - Dimensions, voxel spacing, datatype code, rescale/window parameters
    - Either decoded samples or a raw payload for lazy decoding

Outputs:
    - Volume objects exposing a flat read-only sample array

Requirements:
    - numpy
    - core.image_decoder (decode_samples)
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from core.errors import VolumeDecodeError, VolumeNotReadyError
from core.image_decoder import bits_per_sample, decode_samples
from core.tag_stream_decoder import ByteOrder
from utils.debug_log import debug_log


class VolumeState(Enum):
    HEADER_ONLY = "header_only"
    LOADED = "loaded"


def sanitize_spacing(values, count: int = 3) -> Tuple[float, ...]:
    """Voxel spacing with missing, non-numeric, non-finite, or non-positive entries replaced by 1."""
    result = []
    for i in range(count):
        try:
            value = float(values[i])
        except (IndexError, TypeError, ValueError):
            value = 1.0
        if not np.isfinite(value) or value <= 0:
            value = 1.0
        result.append(value)
    return tuple(result)


class Volume:
    """
    Decoded 3-D sample volume.

    Geometry and scaling fields are fixed at construction. The sample buffer
    is either supplied up front or decoded once from the raw payload.
    """

    def __init__(
        self,
        dimensions: Tuple[int, int, int],
        voxel_spacing: Tuple[float, float, float] = (1.0, 1.0, 1.0),
        datatype_code: int = 16,
        samples: Optional[np.ndarray] = None,
        raw_payload=None,
        byte_order: ByteOrder = ByteOrder.LITTLE,
        rescale_slope: float = 1.0,
        rescale_intercept: float = 0.0,
        window_center: Optional[float] = None,
        window_width: Optional[float] = None,
        calibration_min: Optional[float] = None,
        calibration_max: Optional[float] = None,
        source_format: str = "",
        metadata: Optional[Dict[str, Any]] = None,
        decode_warnings: Optional[List[str]] = None,
    ):
        """
        Initialize the volume.

        Args:
            dimensions: (nx, ny, nz), each >= 1
            voxel_spacing: (sx, sy, sz) in mm; invalid entries become 1
            datatype_code: Datatype code of the stored samples
            samples: Decoded samples (flat or any shape with nx*ny*nz elements)
            raw_payload: Undecoded sample bytes for a header-only volume
            byte_order: Byte order of raw_payload
            rescale_slope: Slope mapping stored values to physical values
            rescale_intercept: Intercept mapping stored values to physical values
            window_center: Suggested display window center (physical units)
            window_width: Suggested display window width (physical units)
            calibration_min: Header calibration minimum, if any
            calibration_max: Header calibration maximum, if any
            source_format: "dicom" or "nifti"
            metadata: Descriptive header fields (strings, numbers)
            decode_warnings: Degraded-decode messages collected so far
        """
        nx, ny, nz = (int(d) for d in dimensions)
        if nx < 1 or ny < 1 or nz < 1:
            raise VolumeDecodeError(f"Invalid volume dimensions: {nx}x{ny}x{nz}")
        if samples is None and raw_payload is None:
            raise VolumeDecodeError("Volume needs either samples or a raw payload")

        self.dimensions = (nx, ny, nz)
        self.voxel_spacing = sanitize_spacing(voxel_spacing)
        self.datatype_code = int(datatype_code)
        self.bits_per_sample = bits_per_sample(self.datatype_code)
        self.byte_order = byte_order
        self.rescale_slope = float(rescale_slope)
        self.rescale_intercept = float(rescale_intercept)
        self.window_center = window_center
        self.window_width = window_width
        self.calibration_min = calibration_min
        self.calibration_max = calibration_max
        self.source_format = source_format
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self.decode_warnings: List[str] = list(decode_warnings or [])

        self._samples: Optional[np.ndarray] = None
        self._raw_payload = None
        if samples is not None:
            self._set_samples(np.asarray(samples))
        else:
            self._raw_payload = raw_payload

    @property
    def nx(self) -> int:
        return self.dimensions[0]

    @property
    def ny(self) -> int:
        return self.dimensions[1]

    @property
    def nz(self) -> int:
        return self.dimensions[2]

    @property
    def voxel_count(self) -> int:
        return self.nx * self.ny * self.nz

    @property
    def state(self) -> VolumeState:
        return VolumeState.LOADED if self._samples is not None else VolumeState.HEADER_ONLY

    @property
    def is_loaded(self) -> bool:
        return self._samples is not None

    @property
    def samples(self) -> np.ndarray:
        """Flat read-only sample array. Raises VolumeNotReadyError while header-only."""
        if self._samples is None:
            raise VolumeNotReadyError("Volume samples have not been loaded")
        return self._samples

    def _set_samples(self, samples: np.ndarray) -> None:
        flat = samples.reshape(-1)
        if flat.size != self.voxel_count:
            raise VolumeDecodeError(
                f"Sample count {flat.size} does not match dimensions "
                f"{self.nx}x{self.ny}x{self.nz} ({self.voxel_count})"
            )
        flat = np.array(flat, copy=True, order="C")
        flat.setflags(write=False)
        self._samples = flat

    def load_samples(self) -> np.ndarray:
        """
        Decode the raw payload into samples. Runs once; later calls return the
        already decoded array.
        """
        if self._samples is not None:
            return self._samples
        samples = decode_samples(
            self._raw_payload,
            self.datatype_code,
            self.byte_order,
            count=self.voxel_count,
            warnings_out=self.decode_warnings,
        )
        self._set_samples(samples)
        self._raw_payload = None
        debug_log(
            "volume.py:load_samples",
            "Samples decoded",
            {"dimensions": self.dimensions, "datatype": self.datatype_code},
        )
        return self._samples

    def as_array(self) -> np.ndarray:
        """Samples viewed as a (nz, ny, nx) array."""
        return self.samples.reshape(self.nz, self.ny, self.nx)

    def has_window(self) -> bool:
        return (
            self.window_center is not None
            and self.window_width is not None
            and self.window_width > 0
        )

    def __repr__(self) -> str:
        return (
            f"Volume({self.nx}x{self.ny}x{self.nz}, datatype={self.datatype_code}, "
            f"state={self.state.value}, format={self.source_format or 'unknown'})"
        )
