"""
Intensity Windowing

This module computes the sample range used for display normalization and maps
float samples to 8-bit grayscale RGBA with brightness/contrast adjustment.

Range modes:
    - GLOBAL: min/max over the whole volume, computed once per loaded volume
      so every slice on every axis shares one normalization
    - LOCAL: min/max over the current slice only
    - WINDOW: the volume's window center/width, converted to stored sample
      units; GLOBAL is used when the volume has no window

Per-sample transform (brightness b and contrast c as fractions, 1.0 neutral):
    v = (sample - min) * norm_factor        (128 when norm_factor is 0)
    v = (v - 128) * c + 128 + (b - 1) * 128
    v = clamp(v, 0, 255), rounded half to even

Inputs:
    - Volume or Slice samples, brightness/contrast

Outputs:
    - IntensityRange, uint8 grayscale arrays, RenderedFrame (RGBA bytes)

Requirements:
    - numpy
"""

from enum import Enum
from typing import NamedTuple, Optional, Tuple

import numpy as np

from core.slice_extractor import Slice
from core.volume import Volume

DISPLAY_MAX = 255.0
DISPLAY_MID = 128.0


class RangeMode(Enum):
    GLOBAL = "global"
    LOCAL = "local"
    WINDOW = "window"

    @classmethod
    def from_name(cls, name: str) -> "RangeMode":
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown range mode: {name!r}") from None


class IntensityRange(NamedTuple):
    minimum: float
    maximum: float

    @property
    def norm_factor(self) -> float:
        return normalization_factor(self.minimum, self.maximum)


class RenderedFrame:
    """8-bit RGBA output: rgba holds width * height * 4 bytes."""

    def __init__(self, width: int, height: int, rgba: bytes):
        self.width = width
        self.height = height
        self.rgba = rgba

    def as_array(self) -> np.ndarray:
        """RGBA bytes viewed as (height, width, 4) uint8."""
        return np.frombuffer(self.rgba, dtype=np.uint8).reshape(self.height, self.width, 4)

    def __repr__(self) -> str:
        return f"RenderedFrame({self.width}x{self.height})"


def normalization_factor(minimum: float, maximum: float) -> float:
    """255 / (max - min), or 0 when the range is empty."""
    if maximum > minimum:
        return DISPLAY_MAX / (maximum - minimum)
    return 0.0


def compute_intensity_range(samples: np.ndarray) -> IntensityRange:
    """Min and max of samples, ignoring NaN. All-NaN or empty input gives (0, 0)."""
    if samples.size == 0:
        return IntensityRange(0.0, 0.0)
    if np.issubdtype(samples.dtype, np.floating):
        finite = samples[np.isfinite(samples)]
        if finite.size == 0:
            return IntensityRange(0.0, 0.0)
        return IntensityRange(float(finite.min()), float(finite.max()))
    return IntensityRange(float(samples.min()), float(samples.max()))


def compute_global_range(volume: Volume) -> IntensityRange:
    """Range over every sample of a loaded volume."""
    return compute_intensity_range(volume.samples)


def compute_local_range(slice_: Slice) -> IntensityRange:
    return compute_intensity_range(slice_.samples)


def convert_window_rescaled_to_raw(
    center: float, width: float, slope: float, intercept: float
) -> Tuple[float, float]:
    """Convert window center/width from physical to stored sample units."""
    if slope == 0.0:
        return center, width
    return (center - intercept) / slope, width / abs(slope)


def compute_window_range(volume: Volume) -> Optional[IntensityRange]:
    """Range [c - w/2, c + w/2] in stored units, or None without a window."""
    if not volume.has_window():
        return None
    center, width = convert_window_rescaled_to_raw(
        volume.window_center, volume.window_width, volume.rescale_slope, volume.rescale_intercept
    )
    return IntensityRange(center - width / 2.0, center + width / 2.0)


def window_samples(
    samples: np.ndarray,
    intensity_range: IntensityRange,
    brightness: float = 1.0,
    contrast: float = 1.0,
) -> np.ndarray:
    """
    Map samples to 0-255 grayscale.

    Args:
        samples: Float samples
        intensity_range: Normalization range
        brightness: Brightness fraction (1.0 neutral)
        contrast: Contrast fraction (1.0 neutral)

    Returns:
        uint8 array with the same shape as samples
    """
    norm_factor = intensity_range.norm_factor
    values = np.asarray(samples, dtype=np.float64)
    if norm_factor > 0:
        normalized = (values - intensity_range.minimum) * norm_factor
    else:
        normalized = np.full(values.shape, DISPLAY_MID)
    adjusted = (normalized - DISPLAY_MID) * contrast + DISPLAY_MID + (brightness - 1.0) * DISPLAY_MID
    adjusted = np.nan_to_num(adjusted, nan=0.0)
    return np.rint(np.clip(adjusted, 0.0, DISPLAY_MAX)).astype(np.uint8)


def grayscale_to_rgba(gray: np.ndarray) -> np.ndarray:
    """Replicate grayscale into R, G, B with alpha fixed at 255. Returns (..., 4) uint8."""
    rgba = np.empty(gray.shape + (4,), dtype=np.uint8)
    rgba[..., 0] = gray
    rgba[..., 1] = gray
    rgba[..., 2] = gray
    rgba[..., 3] = 255
    return rgba


def render_frame(
    slice_: Slice,
    intensity_range: IntensityRange,
    brightness: float = 1.0,
    contrast: float = 1.0,
) -> RenderedFrame:
    """Window a slice and pack it as an RGBA frame."""
    gray = window_samples(slice_.samples, intensity_range, brightness, contrast)
    rgba = grayscale_to_rgba(gray)
    return RenderedFrame(slice_.width, slice_.height, rgba.tobytes())


def percent_to_fraction(percent: float) -> float:
    """Settings store percentage (100 = neutral) to a windowing fraction."""
    return percent / 100.0
