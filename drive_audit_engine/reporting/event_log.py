"""
JSONL progress log — an observer that appends one JSON line per progress event.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, TextIO

from ..processing.events import ProgressEvent

logger = logging.getLogger("drive_audit_engine.reporting")


class JsonlEventLog:
    """Callable observer. Open it with ``with`` or call close() when done."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.count = 0
        self._fh: Optional[TextIO] = None

    def open(self) -> "JsonlEventLog":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.path, "a", encoding="utf-8")
        return self

    def __enter__(self) -> "JsonlEventLog":
        return self.open()

    def __exit__(self, *args):
        self.close()

    def __call__(self, event: ProgressEvent):
        if self._fh is None:
            self.open()
        self._fh.write(json.dumps(event.to_dict(), default=str) + "\n")
        self.count += 1

    def close(self):
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            logger.debug(f"Wrote {self.count} events to {self.path}")
