"""
DICOM Utility Functions

This module provides helper functions for naming and formatting tags in
diagnostics and error messages.

Inputs:
    - 32-bit tag numbers (group << 16 | element)

Outputs:
    - Formatted tag strings, keywords, and descriptions

Requirements:
    - pydicom data dictionary
"""

from pydicom.datadict import dictionary_description, keyword_for_tag


def format_tag(tag: int) -> str:
    """Format a tag number as "(GGGG,EEEE)"."""
    return f"({tag >> 16:04X},{tag & 0xFFFF:04X})"


def tag_keyword(tag: int) -> str:
    """
    Get the data dictionary keyword for a tag.

    Args:
        tag: Tag number

    Returns:
        Keyword (e.g. "Rows"), or the formatted tag when the tag is private or unknown
    """
    keyword = keyword_for_tag(tag)
    return keyword if keyword else format_tag(tag)


def describe_tag(tag: int) -> str:
    """Dictionary name plus formatted tag, e.g. "Rows (0028,0010)"."""
    try:
        name = dictionary_description(tag)
    except KeyError:
        return format_tag(tag)
    return f"{name} {format_tag(tag)}"
