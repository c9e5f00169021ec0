"""
Debug Log Utility

Provides optional, safe file-based debug logging for decode and rendering
diagnostics. Logs are written only when enabled via environment variable;
write failures are reported once to the console and never interrupt decoding.

Inputs:
    - debug_log(location, message, data) calls from application code
    - Environment: MEDVIEW_DEBUG_LOG (set to 1, true, or yes to enable)
    - Environment: MEDVIEW_DEBUG_LOG_PATH (optional log file path)

Outputs:
    - When enabled: appends JSON lines to the log file
      (default <project_root>/.medview/debug.log)
    - When disabled: no side effects

Requirements:
    - Standard library only: pathlib, os, json, time
"""

import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

# This file is src/utils/debug_log.py -> parent.parent.parent is the project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

_TRUE_VALUES = ("1", "true", "yes")

_write_error_reported = False


def is_debug_log_enabled() -> bool:
    """True when MEDVIEW_DEBUG_LOG is set to 1, true, or yes (case-insensitive)."""
    return os.getenv("MEDVIEW_DEBUG_LOG", "0").strip().lower() in _TRUE_VALUES


def get_debug_log_path() -> Path:
    override = os.getenv("MEDVIEW_DEBUG_LOG_PATH", "").strip()
    if override:
        return Path(override)
    return _PROJECT_ROOT / ".medview" / "debug.log"


def debug_log(
    location: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Append one JSON log line when debug logging is enabled.

    Args:
        location: Call site identifier (e.g. "volume.py:load_samples").
        message: Short description of the event.
        data: Optional dict of context; non-JSON values are stringified.
    """
    global _write_error_reported
    if not is_debug_log_enabled():
        return
    payload = {
        "location": location,
        "message": message,
        "data": data or {},
        "timestamp": int(time.time() * 1000),
    }
    log_path = get_debug_log_path()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload, default=str) + "\n")
    except OSError as e:
        if not _write_error_reported:
            _write_error_reported = True
            print(f"[DEBUG LOG] Could not write {log_path}: {e}")
