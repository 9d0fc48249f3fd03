"""Drive walk — per-drive sharing exposure and orphan / cross-tenant classification."""

from .graph import DriveGraph, classify_parentless
from .walker import DriveGraphWalker

__all__ = ["DriveGraph", "DriveGraphWalker", "classify_parentless"]
