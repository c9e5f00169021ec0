"""
MedView - Command Line Entry Point

Decodes a volume file (or a directory of single-slice files), extracts a
cross-section, and writes the windowed frame to PNG. Brightness and contrast
default to the persisted settings and are saved back when given.

Inputs:
    - Command line arguments: path, --axis, --slice, --brightness,
      --contrast, --range-mode, --out

Outputs:
    - PNG files in the output directory
    - Exit status 0 on success, 1 on failure

Requirements:
    - core.volume_loader, core.view_session
    - utils.config_manager, utils.image_utils
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

# Add src directory to path
src_dir = Path(__file__).parent
sys.path.insert(0, str(src_dir))

from core.errors import VolumeDecodeError, VolumeNotReadyError
from core.intensity_windower import RangeMode
from core.slice_extractor import Axis
from core.view_session import ViewSession
from core.volume_loader import VolumeLoader
from utils.config_manager import ConfigManager
from utils.image_utils import PNGDisplaySink


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="medview", description="Render a cross-section of a medical volume to PNG")
    parser.add_argument("path", help="Volume file, or a directory of single-slice files")
    parser.add_argument("--axis", choices=[a.value for a in Axis], help="Slice axis (default from settings)")
    parser.add_argument("--slice", type=int, dest="slice_index", help="Slice index (default: middle slice)")
    parser.add_argument("--brightness", type=int, help="Brightness percent, 0-200")
    parser.add_argument("--contrast", type=int, help="Contrast percent, 0-200")
    parser.add_argument("--range-mode", choices=[m.value for m in RangeMode], help="Normalization range")
    parser.add_argument("--out", default=".", help="Output directory")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = ConfigManager()

    loader = VolumeLoader(config.get_byte_order(), config.get_vr_detection(), lazy=True)
    path = Path(args.path)
    if path.is_dir():
        volumes = loader.load_directory(str(path))
    else:
        volume = loader.load_file(str(path))
        volumes = [volume] if volume is not None else []

    if not volumes:
        for failed_path, message in loader.get_failed_files():
            print(f"Error: {failed_path}: {message}", file=sys.stderr)
        return 1
    config.set_last_path(str(path))

    axis = Axis(args.axis) if args.axis else config.get_default_axis()
    brightness, contrast = config.get_display_settings()

    base_name = path.name.split(".")[0] or "slice"
    sink = PNGDisplaySink(args.out, prefix=base_name)
    for number, volume in enumerate(volumes):
        if len(volumes) > 1:
            sink.prefix = f"{base_name}_{number:04d}"
        session = ViewSession(
            volume,
            axis=axis,
            brightness=brightness,
            contrast=contrast,
            range_mode=config.get_range_mode(),
            cache_capacity=config.get_slice_cache_capacity(),
            on_settings_changed=config.save_display_settings,
        )
        if args.brightness is not None:
            session.set_brightness(args.brightness)
        if args.contrast is not None:
            session.set_contrast(args.contrast)
        if args.range_mode:
            session.set_range_mode(RangeMode(args.range_mode))
        if args.slice_index is not None:
            session.set_slice(args.slice_index)
        try:
            session.load()
        except (VolumeDecodeError, VolumeNotReadyError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        sink.aspect_ratio = session.geometry.aspect_ratio
        session.render_to(sink)

    for written in sink.written:
        print(written)
    return 0


if __name__ == "__main__":
    sys.exit(main())
