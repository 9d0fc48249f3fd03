from .base import AnalysisContext, BaseAnalyzer
from .links import LinkAnalyzer
from .sharing import SharingAnalyzer
from .migration import MigrationAnalyzer
from .location import LocationAnalyzer

ALL_ANALYZERS = [
    LinkAnalyzer,
    SharingAnalyzer,
    MigrationAnalyzer,
    LocationAnalyzer,
]

__all__ = [
    "AnalysisContext",
    "BaseAnalyzer",
    "LinkAnalyzer",
    "SharingAnalyzer",
    "MigrationAnalyzer",
    "LocationAnalyzer",
    "ALL_ANALYZERS",
]
