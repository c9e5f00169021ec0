"""
Volume File Loader

This module reads files from disk and decodes them into Volume objects:
- Single files (tag stream or fixed-layout volume format)
- Directories of single-slice files (a series), each decoded on its own

Format is detected from the DICM marker, the gzip signature, the header
size field, and the file extension.

Inputs:
    - File paths and directory paths
    - Decode configuration (byte order, VR detection, lazy loading)

Outputs:
    - List of successfully loaded Volume objects
    - List of files that failed to load, with the typed error raised

Requirements:
    - pathlib for path handling
    - core.dicom_image, core.volume_header_reader
"""

import struct
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from core.dicom_image import decode_dicom_image
from core.errors import VolumeDecodeError
from core.tag_stream_decoder import (
    DEFAULT_MAX_ELEMENTS,
    ByteOrder,
    VRDetectionStrategy,
    has_dicom_preamble,
)
from core.volume import Volume
from core.volume_header_reader import (
    NIFTI1_HEADER_SIZE,
    NIFTI2_HEADER_SIZE,
    Decompressor,
    gzip_decompress,
    is_compressed,
    load_volume,
)

FORMAT_DICOM = "dicom"
FORMAT_NIFTI = "nifti"

NIFTI_EXTENSIONS = (".nii", ".nii.gz")
DICOM_EXTENSIONS = (".dcm", ".dicom", ".ima")


def _has_nifti_size_field(buffer) -> bool:
    if len(buffer) < 4:
        return False
    for prefix in ("<", ">"):
        if struct.unpack_from(prefix + "i", buffer, 0)[0] in (NIFTI1_HEADER_SIZE, NIFTI2_HEADER_SIZE):
            return True
    return False


def detect_format(buffer, name: str = "") -> str:
    """
    Decide whether a buffer holds a tag stream or a fixed-layout volume.

    Args:
        buffer: File contents
        name: File name, used for its extension

    Returns:
        FORMAT_DICOM or FORMAT_NIFTI
    """
    lower = name.lower()
    if has_dicom_preamble(buffer):
        return FORMAT_DICOM
    if lower.endswith(NIFTI_EXTENSIONS) or is_compressed(buffer):
        return FORMAT_NIFTI
    if lower.endswith(DICOM_EXTENSIONS):
        return FORMAT_DICOM
    if _has_nifti_size_field(buffer):
        return FORMAT_NIFTI
    return FORMAT_DICOM


class VolumeLoader:
    """
    Loads volumes from files and directories.

    Supports:
    - Single file loading (format auto-detected)
    - Directory loading, one single-slice volume per member file
    - Header-first loading of fixed-layout volumes (lazy=True)
    """

    def __init__(
        self,
        byte_order: ByteOrder,
        vr_detection: VRDetectionStrategy,
        lazy: bool = True,
        decompress: Optional[Decompressor] = gzip_decompress,
        max_elements: int = DEFAULT_MAX_ELEMENTS,
    ):
        """
        Initialize the loader.

        Args:
            byte_order: Byte order for tag stream files
            vr_detection: Explicit VR recognition for tag stream files
            lazy: Return fixed-layout volumes header-only
            decompress: Decompression step for compressed volume files
            max_elements: Element walk bound for tag stream files
        """
        self.byte_order = byte_order
        self.vr_detection = vr_detection
        self.lazy = lazy
        self.decompress = decompress
        self.max_elements = max_elements
        self.loaded_files: List[Tuple[str, Volume]] = []
        self.failed_files: List[Tuple[str, Exception]] = []

    def decode_buffer(self, buffer, name: str = "") -> Volume:
        """
        Decode an in-memory file buffer.

        Raises:
            VolumeDecodeError: Or a subclass naming the failure kind
        """
        file_format = detect_format(buffer, name)
        if file_format == FORMAT_NIFTI:
            return load_volume(buffer, lazy=self.lazy, decompress=self.decompress)
        return decode_dicom_image(buffer, self.byte_order, self.vr_detection, self.max_elements)

    def load_file(self, file_path: str) -> Optional[Volume]:
        """
        Load a single file.

        Args:
            file_path: Path to the file

        Returns:
            Volume if successful, None otherwise (the error is recorded in failed_files)
        """
        path = Path(file_path)
        try:
            buffer = path.read_bytes()
            volume = self.decode_buffer(buffer, path.name)
        except (OSError, VolumeDecodeError) as e:
            print(f"[LOADER] Failed to load {path.name}: {e}")
            self.failed_files.append((str(file_path), e))
            return None
        for message in volume.decode_warnings:
            print(f"[DECODE] {path.name}: {message}")
        self.loaded_files.append((str(file_path), volume))
        return volume

    def list_series_files(self, directory_path: str, recursive: bool = False) -> List[Path]:
        """Regular, non-hidden member files of a series directory, sorted by name."""
        directory = Path(directory_path)
        candidates = directory.rglob("*") if recursive else directory.iterdir()
        return sorted(
            (p for p in candidates if p.is_file() and not p.name.startswith(".")),
            key=lambda p: str(p),
        )

    def load_directory(
        self,
        directory_path: str,
        recursive: bool = False,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> List[Volume]:
        """
        Load every member file of a directory as its own single-slice volume.

        Args:
            directory_path: Series directory
            recursive: Include files in subdirectories
            progress_callback: Called as (current, total, filename) before each file

        Returns:
            Volumes for the files that decoded, in file name order
        """
        directory = Path(directory_path)
        if not directory.is_dir():
            error = NotADirectoryError(f"Not a directory: {directory_path}")
            self.failed_files.append((str(directory_path), error))
            return []

        files = self.list_series_files(directory_path, recursive)
        volumes = []
        for idx, path in enumerate(files):
            if progress_callback:
                progress_callback(idx + 1, len(files), path.name)
            volume = self.load_file(str(path))
            if volume is not None:
                volumes.append(volume)
        print(f"[LOADER] Loaded {len(volumes)} of {len(files)} files from {directory.name}")
        return volumes

    def get_failed_files(self) -> List[Tuple[str, str]]:
        """(path, message) pairs for every failed file."""
        return [(path, str(error)) for path, error in self.failed_files]

    def clear(self) -> None:
        self.loaded_files = []
        self.failed_files = []
