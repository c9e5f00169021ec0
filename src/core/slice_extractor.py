"""
Volume Slice Extractor

This module computes per-axis view geometry and extracts 2-D cross-sections
from a loaded Volume at native resolution (no interpolation).

Axis layout:
    - Axial:    width=nx, height=ny, slice index over z
    - Sagittal: width=ny, height=nz, slice index over x (z flipped)
    - Coronal:  width=nx, height=nz, slice index over y (z flipped)

For sagittal and coronal views, destination row r holds source z = nz-1-r,
so the depth axis reads top-to-bottom.

Inputs:
    - Volume (LOADED), Axis, slice index

Outputs:
    - SliceGeometry, Slice (flat float32 samples, row-major)

Requirements:
    - numpy
    - core.volume, core.errors
"""

from enum import Enum
from typing import NamedTuple

import numpy as np

from core.errors import SliceOutOfRangeError
from core.volume import Volume


class Axis(Enum):
    AXIAL = "axial"
    SAGITTAL = "sagittal"
    CORONAL = "coronal"

    @classmethod
    def from_name(cls, name: str) -> "Axis":
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown axis: {name!r}") from None


class SliceGeometry(NamedTuple):
    """Output size, slice index bound, and physical extent for one axis."""
    data_width: int
    data_height: int
    max_slice: int
    physical_width: float
    physical_height: float

    @property
    def aspect_ratio(self) -> float:
        """Physical width / height."""
        return self.physical_width / self.physical_height


class Slice:
    """One extracted cross-section. samples has width * height float32 values."""

    def __init__(self, axis: Axis, index: int, width: int, height: int, samples: np.ndarray):
        self.axis = axis
        self.index = index
        self.width = width
        self.height = height
        self.samples = samples

    def as_array(self) -> np.ndarray:
        """Samples viewed as (height, width)."""
        return self.samples.reshape(self.height, self.width)

    def __repr__(self) -> str:
        return f"Slice({self.axis.value}, index={self.index}, {self.width}x{self.height})"


def get_slice_geometry(volume: Volume, axis: Axis) -> SliceGeometry:
    """
    Compute output dimensions and maximum slice index for an axis.

    Works on header-only volumes; only dimensions and spacing are used.
    """
    nx, ny, nz = volume.dimensions
    sx, sy, sz = volume.voxel_spacing
    if axis is Axis.AXIAL:
        return SliceGeometry(nx, ny, nz - 1, nx * sx, ny * sy)
    if axis is Axis.SAGITTAL:
        return SliceGeometry(ny, nz, nx - 1, ny * sy, nz * sz)
    if axis is Axis.CORONAL:
        return SliceGeometry(nx, nz, ny - 1, nx * sx, nz * sz)
    raise ValueError(f"Unknown axis: {axis!r}")


def extract_slice(volume: Volume, axis: Axis, index: int) -> Slice:
    """
    Extract one cross-section.

    Args:
        volume: Loaded volume
        axis: Slice axis
        index: Slice index in [0, max_slice]

    Returns:
        Slice with contiguous float32 samples

    Raises:
        SliceOutOfRangeError: If index is outside [0, max_slice]
        VolumeNotReadyError: If the volume is still header-only
    """
    geometry = get_slice_geometry(volume, axis)
    if index < 0 or index > geometry.max_slice:
        raise SliceOutOfRangeError(axis, index, geometry.max_slice)

    samples = volume.samples
    nx, ny, nz = volume.dimensions
    if axis is Axis.AXIAL:
        plane = nx * ny
        start = index * plane
        data = samples[start:start + plane]
    else:
        stacked = samples.reshape(nz, ny, nx)
        if axis is Axis.SAGITTAL:
            data = stacked[::-1, :, index]
        else:
            data = stacked[::-1, index, :]

    flat = np.array(data, dtype=np.float32, order="C").ravel()
    return Slice(axis, index, geometry.data_width, geometry.data_height, flat)
