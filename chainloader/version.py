"""
Version information for chainloader.

The version is declared once, in pyproject.toml, and read back from the
installed distribution's metadata.
"""
from importlib import metadata

DISTRIBUTION = "chainloader"

# Reported when the package is imported from a source tree that was never installed
UNKNOWN_VERSION = "0.0.0"


def get_version(distribution: str = DISTRIBUTION) -> str:
    """
    Get the installed version of a distribution.

    Args:
        distribution: Distribution name on the package index

    Returns:
        The version string, or UNKNOWN_VERSION if it is not installed
    """
    try:
        return metadata.version(distribution)
    except metadata.PackageNotFoundError:
        return UNKNOWN_VERSION


__version__ = get_version()
