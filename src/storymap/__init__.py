"""storymap - Specification dependency graph and layout engine.

Ingests storyboard, capability, enabler and test scenario documents,
infers the relationships between them, lays the result out in two
dimensions and writes structural edits back to the owning documents.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("storymap")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = ["__version__"]
