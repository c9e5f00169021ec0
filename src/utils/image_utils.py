"""
Image Utility Functions

This module converts rendered frames to Pillow images and provides a display
sink that writes each frame to a PNG file.

Inputs:
    - RenderedFrame objects
    - SlicePosition indicators
    - Output directory

Outputs:
    - PIL Images
    - PNG files

Requirements:
    - PIL/Pillow for image handling
    - numpy for array operations
"""

from pathlib import Path
from typing import List, Optional

from PIL import Image

from core.intensity_windower import RenderedFrame


def frame_to_image(frame: RenderedFrame) -> Image.Image:
    """
    Convert a rendered frame to an RGBA PIL Image.

    Args:
        frame: RenderedFrame with width * height * 4 bytes

    Returns:
        PIL Image in RGBA mode
    """
    return Image.fromarray(frame.as_array())


def scale_to_aspect(image: Image.Image, aspect_ratio: float) -> Image.Image:
    """
    Stretch one side of an image so width / height matches a physical aspect ratio.

    The larger native side is kept; nearest-neighbour sampling preserves
    sample values.
    """
    width, height = image.size
    if aspect_ratio <= 0:
        return image
    if width / height >= aspect_ratio:
        new_size = (width, max(1, round(width / aspect_ratio)))
    else:
        new_size = (max(1, round(height * aspect_ratio)), height)
    if new_size == (width, height):
        return image
    return image.resize(new_size, Image.Resampling.NEAREST)


class PNGDisplaySink:
    """
    Display sink that saves every frame as a PNG file.

    Files are named <prefix>_<axis>_<index>.png. Placeholder requests are
    recorded but write nothing.
    """

    def __init__(self, output_dir: str, prefix: str = "slice", aspect_ratio: Optional[float] = None):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        self.aspect_ratio = aspect_ratio
        self.written: List[Path] = []
        self.placeholders = 0

    def show_frame(self, frame: RenderedFrame, position) -> Path:
        image = frame_to_image(frame)
        if self.aspect_ratio:
            image = scale_to_aspect(image, self.aspect_ratio)
        path = self.output_dir / f"{self.prefix}_{position.axis.value}_{position.index:04d}.png"
        image.save(path, format="PNG")
        self.written.append(path)
        return path

    def show_placeholder(self, position) -> None:
        self.placeholders += 1
        print(f"[DISPLAY] Volume still loading ({position.axis.value} {position.index}/{position.max_index})")
