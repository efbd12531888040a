"""Sphinx configuration for the moticam project."""

from __future__ import annotations

import datetime
import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

project = "moticam"
author = "moticam contributors"
current_year = datetime.datetime.now().year
copyright = f"{current_year}, {author}"

try:
    from moticam import __version__ as release
except Exception:  # pragma: no cover - fallback when package unavailable
    release = "0.0.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
]

autodoc_member_order = "bysource"
autodoc_default_options = {
    "members": True,
    "undoc-members": False,
}

napoleon_google_docstring = True
napoleon_numpy_docstring = False

autodoc_mock_imports = [
    "usb",
    "cv2",
    "PIL",
]

html_theme = "sphinx_rtd_theme"
exclude_patterns = ["_build"]
