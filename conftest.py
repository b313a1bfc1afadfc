"""
Pytest configuration for the node orchestrator tests.

Puts src/ and the unit test helpers (fakes.py) on sys.path so tests import
modules by their flat names.
"""

import os
import sys

ROOT_DIR = os.path.dirname(__file__)

for path in (
    os.path.join(ROOT_DIR, "src"),
    os.path.join(ROOT_DIR, "tests", "unit_tests"),
):
    if path not in sys.path:
        sys.path.insert(0, path)
