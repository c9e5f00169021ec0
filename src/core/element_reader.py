"""
Element Value Reader

Typed, read-only accessors over an element directory and its buffer. Each
accessor returns None when the tag is absent or the stored length does not
fit the requested type, so callers can apply their own defaults.

Inputs:
    - ElementDirectory from core.tag_stream_decoder
    - The buffer the directory was built from

Outputs:
    - int / float / str / list values, or None

Requirements:
    - struct for fixed-width reads
"""

import struct
from typing import List, Optional

from core.tag_stream_decoder import ElementDirectory, ElementEntry

# VRs that carry no type of their own; 4-byte values of these are read as float32
_UNTYPED_VRS = frozenset({"OB", "UN"})


class ElementValueReader:
    """Reads element values from a buffer using the directory's byte order."""

    def __init__(self, directory: ElementDirectory, buffer):
        self.directory = directory
        self.buffer = buffer
        self._prefix = directory.byte_order.value

    def _entry(self, tag: int) -> Optional[ElementEntry]:
        return self.directory.get(tag)

    def read_bytes(self, tag: int) -> Optional[bytes]:
        """Raw value bytes, or None if the tag is absent."""
        entry = self._entry(tag)
        if entry is None:
            return None
        return bytes(self.buffer[entry.offset:entry.offset + entry.length])

    def read_uint16(self, tag: int) -> Optional[int]:
        entry = self._entry(tag)
        if entry is None or entry.length != 2:
            return None
        return struct.unpack_from(self._prefix + "H", self.buffer, entry.offset)[0]

    def read_float32(self, tag: int) -> Optional[float]:
        entry = self._entry(tag)
        if entry is None or entry.length != 4:
            return None
        return struct.unpack_from(self._prefix + "f", self.buffer, entry.offset)[0]

    def read_string(self, tag: int) -> Optional[str]:
        """Value decoded as text with surrounding whitespace and NUL padding removed."""
        entry = self._entry(tag)
        if entry is None or entry.length == 0:
            return None
        raw = bytes(self.buffer[entry.offset:entry.offset + entry.length])
        return raw.decode("utf-8", errors="replace").rstrip("\x00").strip()

    def read_float_array(self, tag: int) -> Optional[List[float]]:
        entry = self._entry(tag)
        if entry is None or entry.length == 0 or entry.length % 4 != 0:
            return None
        count = entry.length // 4
        return list(struct.unpack_from(f"{self._prefix}{count}f", self.buffer, entry.offset))

    def read_decimal_strings(self, tag: int) -> Optional[List[float]]:
        """
        Parse a backslash-separated decimal/integer string value (DS, IS).

        Returns:
            List of floats, or None if the tag is absent or any part is not numeric
        """
        text = self.read_string(tag)
        if not text:
            return None
        values = []
        for part in text.split("\\"):
            part = part.strip()
            if not part:
                continue
            try:
                values.append(float(part))
            except ValueError:
                return None
        return values or None

    def read_number(self, tag: int) -> Optional[float]:
        """
        Read a single numeric value stored either as binary or as text.

        Binary FL (4 bytes) and US (2 bytes) are tried first according to the
        element's VR; otherwise the value is parsed as a decimal string. Text
        that does not parse gives None.
        """
        entry = self._entry(tag)
        if entry is None:
            return None
        if entry.vr in ("FL", "OF") and entry.length == 4:
            return self.read_float32(tag)
        if entry.vr in ("US", "SS") and entry.length == 2:
            value = self.read_uint16(tag)
            if entry.vr == "SS" and value is not None and value >= 0x8000:
                value -= 0x10000
            return float(value)
        values = self.read_decimal_strings(tag)
        if values:
            return values[0]
        if entry.vr in _UNTYPED_VRS and entry.length == 4:
            return self.read_float32(tag)
        return None

    def read_numbers(self, tag: int) -> Optional[List[float]]:
        """Like read_number, for multi-valued elements (FL arrays or DS lists)."""
        entry = self._entry(tag)
        if entry is None:
            return None
        if entry.vr in ("FL", "OF"):
            return self.read_float_array(tag)
        values = self.read_decimal_strings(tag)
        if values:
            return values
        if entry.vr in _UNTYPED_VRS:
            return self.read_float_array(tag)
        return None
