"""
Tag Stream Decoder

This module walks a tag/length/value byte stream (DICOM-style) and builds an
element directory mapping each tag to the byte offset, length, and value
representation of its value. Values are not decoded here; see
core.element_reader for typed access.

The byte order and the way explicit value representations are recognised are
both explicit decoder parameters, since files in the wild use either
convention.

Inputs:
    - Complete file buffer (bytes, bytearray, or memoryview)
    - ByteOrder and VRDetectionStrategy

Outputs:
    - ElementDirectory (tag -> ElementEntry)

Requirements:
    - struct for fixed-width reads
    - pydicom.datadict for value representations of implicit-VR elements
"""

import re
import struct
from enum import Enum
from typing import Dict, Iterator, NamedTuple, Optional, Sequence

from pydicom.datadict import dictionary_VR

from utils.debug_log import debug_log
from utils.dicom_utils import describe_tag

DICOM_PREAMBLE_LENGTH = 128
DICOM_MAGIC = b"DICM"
PIXEL_DATA_TAG = 0x7FE00010
SEQUENCE_DELIMITER_TAG = 0xFFFEE0DD
UNDEFINED_LENGTH = 0xFFFFFFFF

# Upper bound on elements walked per file
DEFAULT_MAX_ELEMENTS = 4096

# Codes accepted as explicit VR by the registry strategy
REGISTRY_VRS = frozenset({"US", "SS", "FL", "DS", "LO", "SH", "DA", "CS", "SQ", "OB", "OW"})

# Explicit VRs followed by 2 reserved bytes and a 4-byte length
LONG_LENGTH_VRS = frozenset({"OB", "OD", "OF", "OL", "OV", "OW", "SQ", "UC", "UN", "UR", "UT"})

_VR_PATTERN = re.compile(rb"[A-Z]{2}")


class ByteOrder(Enum):
    """Byte order of multi-byte fields; values are struct/numpy prefixes."""
    LITTLE = "<"
    BIG = ">"

    @classmethod
    def from_name(cls, name: str) -> "ByteOrder":
        """Resolve 'little'/'big' (case-insensitive) to a ByteOrder."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown byte order: {name!r}") from None


class VRDetectionStrategy(Enum):
    """How the two bytes after a tag are recognised as an explicit VR."""
    REGISTRY = "registry"  # membership in REGISTRY_VRS
    PATTERN = "pattern"  # any two uppercase ASCII letters

    @classmethod
    def from_name(cls, name: str) -> "VRDetectionStrategy":
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown VR detection strategy: {name!r}") from None


class ElementEntry(NamedTuple):
    """Location of one element value inside the file buffer."""
    offset: int
    length: int
    vr: str
    explicit: bool


class ElementDirectory:
    """
    Mapping of tag -> ElementEntry for one parsed buffer.

    Every entry satisfies offset + length <= buffer_length. The directory also
    records why the walk stopped ("pixel_data", "end", "truncated", "limit").
    """

    def __init__(self, buffer_length: int, byte_order: ByteOrder):
        self.buffer_length = buffer_length
        self.byte_order = byte_order
        self.start_offset = 0
        self.stop_reason = "end"
        self._entries: Dict[int, ElementEntry] = {}

    def add(self, tag: int, entry: ElementEntry) -> None:
        if entry.offset + entry.length > self.buffer_length:
            raise ValueError(f"Element {tag:08X} extends beyond buffer")
        self._entries[tag] = entry

    def get(self, tag: int) -> Optional[ElementEntry]:
        return self._entries.get(tag)

    def __getitem__(self, tag: int) -> ElementEntry:
        return self._entries[tag]

    def __contains__(self, tag: object) -> bool:
        return tag in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def items(self):
        return self._entries.items()

    @property
    def has_pixel_data(self) -> bool:
        return PIXEL_DATA_TAG in self._entries

    def first_missing(self, required: Sequence[int]) -> Optional[int]:
        """Return the first tag in required that is not in the directory, or None."""
        for tag in required:
            if tag not in self._entries:
                return tag
        return None


def has_dicom_preamble(buffer) -> bool:
    """True if bytes [128, 132) hold the DICM marker."""
    end = DICOM_PREAMBLE_LENGTH + len(DICOM_MAGIC)
    return len(buffer) >= end and bytes(buffer[DICOM_PREAMBLE_LENGTH:end]) == DICOM_MAGIC


class TagStreamDecoder:
    """
    Walks a tag/length/value stream and produces an ElementDirectory.

    The walk stops at the pixel data element, at the first element whose
    declared length runs past the end of the buffer, when fewer than 8 bytes
    remain, or after max_elements elements. A partial directory is returned
    in every case; checking for required tags is the caller's job.
    """

    def __init__(
        self,
        byte_order: ByteOrder,
        vr_detection: VRDetectionStrategy,
        max_elements: int = DEFAULT_MAX_ELEMENTS,
    ):
        """
        Initialize the decoder.

        Args:
            byte_order: Byte order of tags and lengths
            vr_detection: Strategy for recognising explicit VR codes
            max_elements: Maximum number of elements to walk
        """
        if max_elements <= 0:
            raise ValueError("max_elements must be positive")
        self.byte_order = byte_order
        self.vr_detection = vr_detection
        self.max_elements = max_elements
        prefix = byte_order.value
        self._u16 = struct.Struct(prefix + "H")
        self._u32 = struct.Struct(prefix + "I")
        self._tag = struct.Struct(prefix + "HH")
        self._delimiter = self._tag.pack(SEQUENCE_DELIMITER_TAG >> 16, SEQUENCE_DELIMITER_TAG & 0xFFFF)

    def is_explicit_vr(self, candidate: bytes) -> bool:
        if self.vr_detection is VRDetectionStrategy.REGISTRY:
            return candidate.decode("ascii", errors="replace") in REGISTRY_VRS
        return _VR_PATTERN.fullmatch(candidate) is not None

    def decode(self, buffer) -> ElementDirectory:
        """
        Build the element directory for a buffer.

        Args:
            buffer: Complete file contents

        Returns:
            ElementDirectory holding every element confirmed to lie inside the buffer
        """
        buffer_length = len(buffer)
        directory = ElementDirectory(buffer_length, self.byte_order)

        offset = 0
        if has_dicom_preamble(buffer):
            offset = DICOM_PREAMBLE_LENGTH + len(DICOM_MAGIC)
        directory.start_offset = offset

        element_count = 0
        while True:
            if element_count >= self.max_elements:
                directory.stop_reason = "limit"
                break
            if buffer_length - offset < 8:
                directory.stop_reason = "end"
                break

            group, element = self._tag.unpack_from(buffer, offset)
            tag = (group << 16) | element
            offset += 4

            candidate = bytes(buffer[offset:offset + 2])
            if self.is_explicit_vr(candidate):
                vr = candidate.decode("ascii")
                explicit = True
                offset += 2
                if vr in LONG_LENGTH_VRS:
                    if buffer_length - offset < 6:
                        directory.stop_reason = "truncated"
                        break
                    offset += 2
                    length = self._u32.unpack_from(buffer, offset)[0]
                    offset += 4
                else:
                    length = self._u16.unpack_from(buffer, offset)[0]
                    offset += 2
            else:
                explicit = False
                vr = self._implicit_vr(tag)
                length = self._u32.unpack_from(buffer, offset)[0]
                offset += 4

            if length == UNDEFINED_LENGTH:
                length = self._undefined_length(buffer, offset)
                if length is None:
                    directory.stop_reason = "truncated"
                    break
                skip = length + 8
            else:
                skip = length

            if offset + length > buffer_length:
                directory.stop_reason = "truncated"
                debug_log(
                    "tag_stream_decoder.py:decode",
                    "Element length runs past buffer",
                    {"tag": describe_tag(tag), "offset": offset, "length": length, "buffer_length": buffer_length},
                )
                break

            directory.add(tag, ElementEntry(offset, length, vr, explicit))
            offset += skip
            element_count += 1

            if tag == PIXEL_DATA_TAG:
                directory.stop_reason = "pixel_data"
                break

        return directory

    def _implicit_vr(self, tag: int) -> str:
        try:
            return dictionary_VR(tag)
        except KeyError:
            return "UN"

    def _undefined_length(self, buffer, offset: int) -> Optional[int]:
        """Length up to the next sequence delimiter, or None if there is none."""
        position = bytes(buffer[offset:]).find(self._delimiter)
        if position < 0:
            return None
        if offset + position + 8 > len(buffer):
            return None
        return position


def parse_element_directory(
    buffer,
    byte_order: ByteOrder,
    vr_detection: VRDetectionStrategy,
    max_elements: int = DEFAULT_MAX_ELEMENTS,
) -> ElementDirectory:
    """Convenience wrapper around TagStreamDecoder(...).decode(buffer)."""
    return TagStreamDecoder(byte_order, vr_detection, max_elements).decode(buffer)
