"""
Configuration Manager

This module handles persistent storage and retrieval of viewer settings.
Settings are stored in a JSON file in the user's application data directory.

Inputs:
    - Display settings (brightness, contrast as percentages)
    - Decode preferences (byte order, VR detection, range mode)

Outputs:
    - Loaded configuration values
    - Saved configuration file

Requirements:
    - json module (standard library)
    - pathlib module (standard library)
    - os module (standard library)
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from core.intensity_windower import RangeMode
from core.slice_extractor import Axis
from core.tag_stream_decoder import ByteOrder, VRDetectionStrategy

MIN_PERCENT = 0
MAX_PERCENT = 200


class ConfigManager:
    """
    Manages viewer configuration and user preferences.

    Handles loading and saving of settings including:
    - Brightness and contrast (percentages, 100 = neutral)
    - Slice cache capacity and default axis
    - Intensity range mode
    - Tag stream byte order and VR detection strategy
    - Last opened file/folder path
    """

    def __init__(self, config_filename: str = "medview_config.json", config_dir: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            config_filename: Name of the configuration file to use
            config_dir: Directory for the configuration file; defaults to the
                per-user application data directory
        """
        if config_dir is not None:
            self.config_dir = Path(config_dir)
        elif os.name == 'nt':  # Windows
            app_data = os.getenv('APPDATA', os.path.expanduser('~'))
            self.config_dir = Path(app_data) / "MedView"
        else:  # Mac/Linux
            self.config_dir = Path.home() / ".config" / "MedView"

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_path = self.config_dir / config_filename

        self.default_config = {
            "brightness": 100,
            "contrast": 100,
            "slice_cache_capacity": 10,
            "default_axis": "axial",
            "range_mode": "global",
            "byte_order": "little",
            "vr_detection": "pattern",
            "last_path": "",
        }

        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from file, or return defaults if file doesn't exist.

        Returns:
            Dictionary containing configuration values
        """
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded_config = json.load(f)
                if not isinstance(loaded_config, dict):
                    raise ValueError("configuration root is not an object")
                config = self.default_config.copy()
                config.update(loaded_config)
                return config
            except (json.JSONDecodeError, ValueError, IOError) as e:
                print(f"Warning: Could not load config file: {e}")
                return self.default_config.copy()
        return self.default_config.copy()

    def save_config(self) -> bool:
        """
        Save current configuration to file.

        Returns:
            True if save was successful, False otherwise
        """
        try:
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=4, ensure_ascii=False)
            return True
        except IOError as e:
            print(f"Error saving config file: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.config[key] = value

    def _get_percent(self, key: str) -> int:
        try:
            value = int(self.config.get(key, 100))
        except (TypeError, ValueError):
            return 100
        return max(MIN_PERCENT, min(MAX_PERCENT, value))

    def get_brightness(self) -> int:
        """Brightness percentage in [0, 200], default 100."""
        return self._get_percent("brightness")

    def set_brightness(self, value: int) -> None:
        self.config["brightness"] = max(MIN_PERCENT, min(MAX_PERCENT, int(value)))
        self.save_config()

    def get_contrast(self) -> int:
        """Contrast percentage in [0, 200], default 100."""
        return self._get_percent("contrast")

    def set_contrast(self, value: int) -> None:
        self.config["contrast"] = max(MIN_PERCENT, min(MAX_PERCENT, int(value)))
        self.save_config()

    def get_display_settings(self) -> Tuple[int, int]:
        """(brightness, contrast) for the start of a session."""
        return self.get_brightness(), self.get_contrast()

    def save_display_settings(self, brightness: int, contrast: int) -> None:
        """
        Persist both display values in one write.

        Matches the settings callback signature of ViewSession.
        """
        self.config["brightness"] = max(MIN_PERCENT, min(MAX_PERCENT, int(brightness)))
        self.config["contrast"] = max(MIN_PERCENT, min(MAX_PERCENT, int(contrast)))
        self.save_config()

    def reset_display_settings(self) -> None:
        self.save_display_settings(100, 100)

    def get_slice_cache_capacity(self) -> int:
        try:
            capacity = int(self.config.get("slice_cache_capacity", 10))
        except (TypeError, ValueError):
            return 10
        return capacity if capacity >= 1 else 10

    def get_default_axis(self) -> Axis:
        try:
            return Axis.from_name(str(self.config.get("default_axis", "axial")))
        except ValueError:
            return Axis.AXIAL

    def get_range_mode(self) -> RangeMode:
        try:
            return RangeMode.from_name(str(self.config.get("range_mode", "global")))
        except ValueError:
            return RangeMode.GLOBAL

    def get_byte_order(self) -> ByteOrder:
        """Tag stream byte order; an unrecognized value raises ValueError."""
        return ByteOrder.from_name(str(self.config.get("byte_order", "little")))

    def get_vr_detection(self) -> VRDetectionStrategy:
        """Tag stream VR detection strategy; an unrecognized value raises ValueError."""
        return VRDetectionStrategy.from_name(str(self.config.get("vr_detection", "pattern")))

    def get_last_path(self) -> str:
        return self.config.get("last_path", "")

    def set_last_path(self, path: str) -> None:
        self.config["last_path"] = path
        self.save_config()
