"""Processing package — orchestration, window scheduling and the file pipeline."""

from .events import ProgressEvent, Stage, emit
from .orchestrator import AnalysisOrchestrator
from .processor import FileProcessor, FileRequest

__all__ = [
    "AnalysisOrchestrator",
    "FileProcessor",
    "FileRequest",
    "ProgressEvent",
    "Stage",
    "emit",
]
