# sourceprint/about.py
"""
Version and environment information.
"""

import sys

import av
import opentimelineio as otio

SOURCEPRINT_VERSION = "0.1"  # Application version constant


def get_version_info() -> dict:
    """Versions of SourcePrint and the libraries it drives, for logs and bug reports."""
    return {
        "sourceprint": SOURCEPRINT_VERSION,
        "python": sys.version.split()[0],
        "opentimelineio": getattr(otio, "__version__", "unknown"),
        "av": getattr(av, "__version__", "unknown"),
    }
