"""
Tag Stream Image Decoding

This module turns a tag/length/value file buffer into a typed image header
and a single-slice Volume. The header has a fixed set of typed fields the
pipeline consumes; every other element is kept as raw bytes in
extra_elements.

Inputs:
    - Complete file buffer
    - ByteOrder and VRDetectionStrategy for the tag stream decoder

Outputs:
    - DicomImageHeader
    - Volume (nx=Columns, ny=Rows, nz=1)

Requirements:
    - numpy
    - core.tag_stream_decoder, core.element_reader, core.image_decoder
    - utils.dicom_utils (tag descriptions for error messages)
"""

from typing import Dict, List, Optional

import numpy as np

from core.element_reader import ElementValueReader
from core.errors import MissingRequiredFieldError, TagStreamError
from core.image_decoder import DATATYPE_FLOAT32, datatype_for_bits_allocated, decode_samples
from core.tag_stream_decoder import (
    DEFAULT_MAX_ELEMENTS,
    PIXEL_DATA_TAG,
    ByteOrder,
    ElementDirectory,
    TagStreamDecoder,
    VRDetectionStrategy,
)
from core.volume import Volume
from utils.debug_log import debug_log
from utils.dicom_utils import tag_keyword

ROWS = 0x00280010
COLUMNS = 0x00280011
SAMPLES_PER_PIXEL = 0x00280002
PHOTOMETRIC_INTERPRETATION = 0x00280004
PLANAR_CONFIGURATION = 0x00280006
BITS_ALLOCATED = 0x00280100
PIXEL_REPRESENTATION = 0x00280103
PIXEL_SPACING = 0x00280030
WINDOW_CENTER = 0x00281050
WINDOW_WIDTH = 0x00281051
RESCALE_INTERCEPT = 0x00281052
RESCALE_SLOPE = 0x00281053
SLICE_THICKNESS = 0x00180050
IMAGE_POSITION = 0x00200032
IMAGE_ORIENTATION = 0x00200037
SERIES_DESCRIPTION = 0x0008103E
STUDY_DESCRIPTION = 0x00081030
PATIENT_NAME = 0x00100010
STUDY_DATE = 0x00080020
MODALITY = 0x00080060

REQUIRED_TAGS = (ROWS, COLUMNS, PIXEL_DATA_TAG)

KNOWN_TAGS = frozenset({
    ROWS, COLUMNS, SAMPLES_PER_PIXEL, PHOTOMETRIC_INTERPRETATION, PLANAR_CONFIGURATION,
    BITS_ALLOCATED, PIXEL_REPRESENTATION, PIXEL_SPACING, WINDOW_CENTER, WINDOW_WIDTH,
    RESCALE_INTERCEPT, RESCALE_SLOPE, SLICE_THICKNESS, IMAGE_POSITION, IMAGE_ORIENTATION,
    SERIES_DESCRIPTION, STUDY_DESCRIPTION, PATIENT_NAME, STUDY_DATE, MODALITY, PIXEL_DATA_TAG,
})

# Luminance weights for collapsing RGB samples to grayscale
_LUMINANCE = np.array([0.299, 0.587, 0.114], dtype=np.float32)


class DicomImageHeader:
    """
    Typed image fields read from a tag stream.

    Required fields are rows, columns and the pixel data location; the rest
    are optional and None when absent. extra_elements maps every unrecognized
    tag to its raw value bytes.
    """

    def __init__(self):
        self.rows: int = 0
        self.columns: int = 0
        self.bits_allocated: int = 16
        self.samples_per_pixel: int = 1
        self.photometric_interpretation: str = "MONOCHROME2"
        self.planar_configuration: int = 0
        self.pixel_representation: int = 0
        self.window_center: Optional[float] = None
        self.window_width: Optional[float] = None
        self.rescale_slope: float = 1.0
        self.rescale_intercept: float = 0.0
        self.pixel_spacing: Optional[List[float]] = None
        self.slice_thickness: Optional[float] = None
        self.image_position: Optional[List[float]] = None
        self.image_orientation: Optional[List[float]] = None
        self.series_description: Optional[str] = None
        self.study_description: Optional[str] = None
        self.patient_name: Optional[str] = None
        self.study_date: Optional[str] = None
        self.modality: Optional[str] = None
        self.pixel_data_offset: int = 0
        self.pixel_data_length: int = 0
        self.extra_elements: Dict[int, bytes] = {}

    @property
    def is_signed(self) -> bool:
        return self.pixel_representation == 1

    def descriptive_fields(self) -> Dict[str, object]:
        fields = {
            "photometric_interpretation": self.photometric_interpretation,
            "series_description": self.series_description,
            "study_description": self.study_description,
            "patient_name": self.patient_name,
            "study_date": self.study_date,
            "modality": self.modality,
            "image_position": self.image_position,
            "image_orientation": self.image_orientation,
        }
        return {k: v for k, v in fields.items() if v is not None}


def _first_int(reader: ElementValueReader, tag: int) -> Optional[int]:
    value = reader.read_uint16(tag)
    if value is not None:
        return value
    number = reader.read_number(tag)
    if number is None or not np.isfinite(number) or number != int(number):
        return None
    return int(number)


def read_image_header(directory: ElementDirectory, buffer) -> DicomImageHeader:
    """
    Extract the typed header from a parsed directory.

    Raises:
        MissingRequiredFieldError: Naming the first of Rows, Columns, Pixel Data
            that is absent or zero
    """
    missing = directory.first_missing(REQUIRED_TAGS)
    if missing is not None:
        raise MissingRequiredFieldError(tag_keyword(missing), missing)

    reader = ElementValueReader(directory, buffer)
    header = DicomImageHeader()

    for tag, attribute in ((ROWS, "rows"), (COLUMNS, "columns")):
        value = _first_int(reader, tag)
        if not value:
            raise MissingRequiredFieldError(tag_keyword(tag), tag)
        setattr(header, attribute, value)

    header.bits_allocated = _first_int(reader, BITS_ALLOCATED) or 16
    header.samples_per_pixel = _first_int(reader, SAMPLES_PER_PIXEL) or 1
    header.planar_configuration = _first_int(reader, PLANAR_CONFIGURATION) or 0
    header.pixel_representation = _first_int(reader, PIXEL_REPRESENTATION) or 0
    header.photometric_interpretation = reader.read_string(PHOTOMETRIC_INTERPRETATION) or "MONOCHROME2"

    header.window_center = reader.read_number(WINDOW_CENTER)
    header.window_width = reader.read_number(WINDOW_WIDTH)
    slope = reader.read_number(RESCALE_SLOPE)
    if slope:
        header.rescale_slope = slope
    intercept = reader.read_number(RESCALE_INTERCEPT)
    if intercept is not None:
        header.rescale_intercept = intercept

    spacing = reader.read_numbers(PIXEL_SPACING)
    header.pixel_spacing = spacing[:2] if spacing and len(spacing) >= 2 else None
    header.slice_thickness = reader.read_number(SLICE_THICKNESS)
    position = reader.read_numbers(IMAGE_POSITION)
    header.image_position = position[:3] if position and len(position) >= 3 else None
    orientation = reader.read_numbers(IMAGE_ORIENTATION)
    header.image_orientation = orientation[:6] if orientation and len(orientation) >= 6 else None

    header.series_description = reader.read_string(SERIES_DESCRIPTION)
    header.study_description = reader.read_string(STUDY_DESCRIPTION)
    header.patient_name = reader.read_string(PATIENT_NAME)
    header.study_date = reader.read_string(STUDY_DATE)
    header.modality = reader.read_string(MODALITY)

    pixel_entry = directory[PIXEL_DATA_TAG]
    header.pixel_data_offset = pixel_entry.offset
    header.pixel_data_length = pixel_entry.length

    for tag, _ in directory.items():
        if tag not in KNOWN_TAGS:
            header.extra_elements[tag] = reader.read_bytes(tag)

    return header


def _to_grayscale(samples: np.ndarray, header: DicomImageHeader) -> np.ndarray:
    """Collapse multi-sample pixels to one luminance value per pixel."""
    spp = header.samples_per_pixel
    pixel_count = header.rows * header.columns
    if header.planar_configuration == 1:
        planes = samples.reshape(spp, pixel_count).T
    else:
        planes = samples.reshape(pixel_count, spp)
    if spp == 3:
        return planes.astype(np.float32) @ _LUMINANCE
    return planes.astype(np.float32).mean(axis=1)


def decode_dicom_image(
    buffer,
    byte_order: ByteOrder,
    vr_detection: VRDetectionStrategy,
    max_elements: int = DEFAULT_MAX_ELEMENTS,
) -> Volume:
    """
    Decode a tag stream file into a single-slice Volume.

    Args:
        buffer: Complete file contents
        byte_order: Byte order of the tag stream
        vr_detection: Explicit VR recognition strategy
        max_elements: Element walk bound

    Returns:
        Loaded Volume with dimensions (Columns, Rows, 1)

    Raises:
        MissingRequiredFieldError: If Rows, Columns or Pixel Data is missing
        TagStreamError: If the pixel payload is shorter than Rows x Columns
    """
    directory = TagStreamDecoder(byte_order, vr_detection, max_elements).decode(buffer)
    debug_log(
        "dicom_image.py:decode_dicom_image",
        "Parsed element directory",
        {"elements": len(directory), "stop_reason": directory.stop_reason},
    )
    header = read_image_header(directory, buffer)

    decode_warnings: List[str] = []
    datatype_code = datatype_for_bits_allocated(
        header.bits_allocated, header.is_signed, warnings_out=decode_warnings
    )
    count = header.rows * header.columns * header.samples_per_pixel
    raw = memoryview(buffer)[header.pixel_data_offset:header.pixel_data_offset + header.pixel_data_length]
    try:
        samples = decode_samples(raw, datatype_code, byte_order, count=count, warnings_out=decode_warnings)
    except ValueError as e:
        raise TagStreamError(f"Pixel Data too short for {header.columns}x{header.rows} image: {e}") from e

    if header.samples_per_pixel > 1:
        samples = _to_grayscale(samples, header)
        datatype_code = DATATYPE_FLOAT32

    spacing = header.pixel_spacing or [1.0, 1.0]
    # Pixel Spacing is (row spacing, column spacing): y first
    voxel_spacing = (spacing[1], spacing[0], header.slice_thickness or 1.0)

    return Volume(
        (header.columns, header.rows, 1),
        voxel_spacing=voxel_spacing,
        datatype_code=datatype_code,
        samples=samples,
        byte_order=byte_order,
        rescale_slope=header.rescale_slope,
        rescale_intercept=header.rescale_intercept,
        window_center=header.window_center,
        window_width=header.window_width,
        source_format="dicom",
        metadata=header.descriptive_fields(),
        decode_warnings=decode_warnings,
    )
