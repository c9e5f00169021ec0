"""
View Session

This module manages the view state for one loaded volume: current axis and
slice, brightness/contrast, the slice cache, and the shared intensity range.
Each session owns its state, so several volumes can be viewed side by side.

Inputs:
    - Volume (header-only or loaded)
    - Axis changes, slice navigation, brightness/contrast changes
    - Display sink with show_frame(frame, position) and show_placeholder(position)

Outputs:
    - RenderedFrame objects for the current slice
    - Updated (brightness, contrast) pairs for the settings store

Requirements:
    - core.slice_extractor, core.slice_cache, core.intensity_windower
"""

from typing import Callable, NamedTuple, Optional, Tuple

from core.intensity_windower import (
    IntensityRange,
    RangeMode,
    RenderedFrame,
    compute_global_range,
    compute_local_range,
    compute_window_range,
    percent_to_fraction,
    render_frame,
)
from core.slice_cache import DEFAULT_CACHE_CAPACITY, SliceCache
from core.slice_extractor import Axis, Slice, SliceGeometry, extract_slice, get_slice_geometry
from core.volume import Volume
from utils.debug_log import debug_log

DEFAULT_PERCENT = 100
MIN_PERCENT = 0
MAX_PERCENT = 200
PAGE_STEP = 10

SettingsCallback = Callable[[int, int], None]


class SlicePosition(NamedTuple):
    """Axis/slice indicator handed to the display sink with each frame."""
    axis: Axis
    index: int
    max_index: int


def clamp_percent(value) -> int:
    return max(MIN_PERCENT, min(MAX_PERCENT, int(round(float(value)))))


class ViewSession:
    """
    Manages the view of one volume.

    Handles:
    - Axis selection (clears the slice cache, centres the slice index)
    - Slice navigation with clamping
    - Brightness/contrast state and change notification
    - Cached slice extraction and rendering
    """

    def __init__(
        self,
        volume: Volume,
        axis: Axis = Axis.AXIAL,
        brightness: int = DEFAULT_PERCENT,
        contrast: int = DEFAULT_PERCENT,
        range_mode: RangeMode = RangeMode.GLOBAL,
        cache_capacity: int = DEFAULT_CACHE_CAPACITY,
        on_settings_changed: Optional[SettingsCallback] = None,
    ):
        """
        Initialize the view session.

        Args:
            volume: Volume to view; may still be header-only
            axis: Initial axis
            brightness: Brightness percentage (100 = neutral)
            contrast: Contrast percentage (100 = neutral)
            range_mode: How the normalization range is chosen
            cache_capacity: Slice cache capacity
            on_settings_changed: Called with (brightness, contrast) after each change
        """
        self.volume = volume
        self.range_mode = range_mode
        self.cache = SliceCache(cache_capacity)
        self.brightness = clamp_percent(brightness)
        self.contrast = clamp_percent(contrast)
        self.on_settings_changed = on_settings_changed
        self._global_range: Optional[IntensityRange] = None
        self.axis = axis
        self.geometry: SliceGeometry = get_slice_geometry(volume, axis)
        self.current_slice = self.geometry.max_slice // 2

    # Volume state

    @property
    def is_ready(self) -> bool:
        return self.volume.is_loaded

    def load(self) -> None:
        """Decode the volume's samples if it is still header-only."""
        self.volume.load_samples()
        self._global_range = None

    # Axis and slice navigation

    @property
    def position(self) -> SlicePosition:
        return SlicePosition(self.axis, self.current_slice, self.geometry.max_slice)

    def set_axis(self, axis: Axis) -> SlicePosition:
        """Switch axis: clears the cache, recomputes geometry, centres the slice."""
        self.cache.clear()
        self.axis = axis
        self.geometry = get_slice_geometry(self.volume, axis)
        self.current_slice = self.geometry.max_slice // 2
        debug_log(
            "view_session.py:set_axis",
            "Axis changed",
            {"axis": axis.value, "geometry": self.geometry._asdict()},
        )
        return self.position

    def set_slice(self, index: int) -> int:
        """Set the current slice, clamped to [0, max_slice]. Returns the new index."""
        self.current_slice = max(0, min(self.geometry.max_slice, int(index)))
        return self.current_slice

    def step(self, delta: int) -> int:
        return self.set_slice(self.current_slice + delta)

    def next_slice(self) -> int:
        return self.step(1)

    def previous_slice(self) -> int:
        return self.step(-1)

    def page_down(self) -> int:
        return self.step(PAGE_STEP)

    def page_up(self) -> int:
        return self.step(-PAGE_STEP)

    def first_slice(self) -> int:
        return self.set_slice(0)

    def last_slice(self) -> int:
        return self.set_slice(self.geometry.max_slice)

    # Brightness / contrast

    @property
    def settings(self) -> Tuple[int, int]:
        """(brightness, contrast) percentages."""
        return self.brightness, self.contrast

    def _settings_changed(self) -> Tuple[int, int]:
        if self.on_settings_changed is not None:
            self.on_settings_changed(self.brightness, self.contrast)
        return self.settings

    def set_brightness(self, percent) -> Tuple[int, int]:
        self.brightness = clamp_percent(percent)
        return self._settings_changed()

    def set_contrast(self, percent) -> Tuple[int, int]:
        self.contrast = clamp_percent(percent)
        return self._settings_changed()

    def reset_view(self) -> Tuple[int, int]:
        """Restore neutral brightness and contrast."""
        self.brightness = DEFAULT_PERCENT
        self.contrast = DEFAULT_PERCENT
        return self._settings_changed()

    def set_range_mode(self, mode: RangeMode) -> None:
        self.range_mode = mode

    # Extraction and rendering

    def get_slice(self, index: Optional[int] = None) -> Slice:
        """
        Current (or given) slice on the current axis, served from the cache when possible.

        Raises:
            SliceOutOfRangeError: If index is outside the axis range
            VolumeNotReadyError: If the volume is header-only
        """
        if index is None:
            index = self.current_slice
        cached = self.cache.get(self.axis, index)
        if cached is not None:
            return cached
        slice_ = extract_slice(self.volume, self.axis, index)
        self.cache.put(self.axis, index, slice_)
        return slice_

    def global_range(self) -> IntensityRange:
        """Whole-volume range, computed once per loaded volume."""
        if self._global_range is None:
            self._global_range = compute_global_range(self.volume)
        return self._global_range

    def intensity_range(self, slice_: Slice) -> IntensityRange:
        if self.range_mode is RangeMode.LOCAL:
            return compute_local_range(slice_)
        if self.range_mode is RangeMode.WINDOW:
            window = compute_window_range(self.volume)
            if window is not None:
                return window
        return self.global_range()

    def render(self) -> Optional[RenderedFrame]:
        """Render the current slice, or None while the volume is header-only."""
        if not self.volume.is_loaded:
            return None
        slice_ = self.get_slice()
        return render_frame(
            slice_,
            self.intensity_range(slice_),
            percent_to_fraction(self.brightness),
            percent_to_fraction(self.contrast),
        )

    def render_to(self, sink) -> Optional[RenderedFrame]:
        """Render and hand the result (or a placeholder) to a display sink."""
        frame = self.render()
        if frame is None:
            sink.show_placeholder(self.position)
        else:
            sink.show_frame(frame, self.position)
        return frame
