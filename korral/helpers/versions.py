"""
Detecting the package's own version, once at import time.

The version lives in the distribution's metadata only. If the package is
not installed (e.g. used from a source checkout), the version is unknown.
"""
import importlib.metadata
from typing import Optional

version: Optional[str] = None

try:
    version = importlib.metadata.version(__name__.split('.')[0])
except importlib.metadata.PackageNotFoundError:
    pass
