"""
Pytest and unittest configuration for MedView tests.

Adds project src/ and tests/ to sys.path so tests can import from core and
utils, and the synthetic file builders.
Run tests from project root with:
  - pytest
  - python -m unittest discover -s tests -p "test_*.py"
  - python tests/run_tests.py
"""

import sys
import os

import pytest

# Add src to path so that "from core.xxx" and "from utils.xxx" work
_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_src_dir = os.path.join(_project_root, "src")
_tests_dir = os.path.join(_project_root, "tests")
for _path in (_src_dir, _tests_dir):
    if _path not in sys.path:
        sys.path.insert(0, _path)


@pytest.fixture(autouse=True)
def _isolate_debug_log(monkeypatch, tmp_path):
    """Send debug log lines to a per-test file unless a log path was given."""
    if not os.getenv("MEDVIEW_DEBUG_LOG_PATH"):
        monkeypatch.setenv("MEDVIEW_DEBUG_LOG_PATH", str(tmp_path / "debug.log"))
