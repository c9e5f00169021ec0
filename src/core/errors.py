"""
Volume Decode Errors

This module defines the error and warning types raised by the decode, volume,
and slice modules. Each failure kind has its own type so callers can react to
it without parsing messages.

Inputs:
    - Failure details (field names, tags, slice indices)

Outputs:
    - Exception and warning classes

Requirements:
    - pydicom (InvalidDicomError as base for tag stream failures)
"""

from typing import Optional
from pydicom.errors import InvalidDicomError


class VolumeDecodeError(ValueError):
    """A file could not be decoded into a volume."""


class TagStreamError(VolumeDecodeError, InvalidDicomError):
    """A tag/length/value stream could not yield a usable image."""


class MissingRequiredFieldError(VolumeDecodeError):
    """
    A field needed to build a volume is absent or zero.

    Attributes:
        field_name: Human-readable name of the first missing requirement
        tag: Tag number for tag stream fields, None for fixed-layout headers
    """

    def __init__(self, field_name: str, tag: Optional[int] = None):
        self.field_name = field_name
        self.tag = tag
        if tag is not None:
            message = f"Missing required field: {field_name} ({tag >> 16:04X},{tag & 0xFFFF:04X})"
        else:
            message = f"Missing required field: {field_name}"
        super().__init__(message)


class MalformedHeaderError(VolumeDecodeError):
    """A fixed-layout volume header is truncated or has an invalid dimension array."""


class SliceOutOfRangeError(IndexError):
    """A slice index outside [0, max_index] was requested for an axis."""

    def __init__(self, axis, index: int, max_index: int):
        self.axis = axis
        self.index = index
        self.max_index = max_index
        axis_name = getattr(axis, "value", axis)
        super().__init__(f"Slice index {index} out of range for {axis_name} axis (0..{max_index})")


class VolumeNotReadyError(RuntimeError):
    """Samples were requested from a volume that holds only its header."""


class DegradedDecodeWarning(UserWarning):
    """Samples were decoded with a fallback interpretation."""
