"""Pytest configuration for path setup.

The package lives under ``restcaller/src``.  When the project is not
installed, that directory is not on ``sys.path``; this file puts both the
project root (for ``tests.helpers``) and the source directory in front so
tests import the working tree regardless of how pytest is invoked.
"""

from __future__ import annotations

import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "restcaller" / "src"

for path in (SRC, ROOT):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)
