from __future__ import annotations

"""
aptmeta - APT repository metadata trust pipeline

A library for locating, fetching, verifying and parsing the metadata of
Debian-style package repositories (InRelease, Packages and Sources indices)
without calling out to apt.
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Make version accessible
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _version

try:
    __version__ = _version("aptmeta")
except PackageNotFoundError:
    # Package not installed yet
    pass
