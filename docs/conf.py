"""Sphinx configuration for Personal Inventory API documentation."""

import os
import sys
from datetime import datetime

sys.path.insert(0, os.path.abspath(".."))

project = "Personal Inventory API"
current_year = datetime.now().year
copyright = f"{current_year}, Personal Inventory"
author = "Personal Inventory Team"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
]

autodoc_member_order = "bysource"
napoleon_google_docstring = True

templates_path = ["_templates"]
exclude_patterns: list[str] = ["_build"]

html_theme = "alabaster"

html_static_path = []
