"""
backend/tests/conftest.py

Purpose:
    Puts backend/ on sys.path so tests import the ``footbet`` package the same
    way the app does when started from backend/.
"""

from __future__ import annotations

import sys
from pathlib import Path

_BACKEND_DIR = Path(__file__).resolve().parents[1]

if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))
