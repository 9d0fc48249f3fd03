"""
Usage monitor — per-operation call accounting fed by the call gateway.
Purely observational: nothing here influences retry or control flow.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger("drive_audit_engine.telemetry")


@dataclass
class OperationStats:
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    retries: int = 0
    total_seconds: float = 0.0
    status_codes: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def to_dict(self) -> dict:
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "failures": self.failures,
            "retries": self.retries,
            "avg_seconds": round(self.total_seconds / self.attempts, 4) if self.attempts else 0.0,
            "status_codes": dict(self.status_codes),
        }


class UsageMonitor:
    """Collects one record per gateway attempt, keyed by operation name."""

    def __init__(self):
        self._ops: dict[str, OperationStats] = defaultdict(OperationStats)

    def record_attempt(
        self,
        operation: str,
        attempt: int,
        success: bool,
        status_code: Optional[int],
        elapsed: float,
    ):
        stats = self._ops[operation or "unnamed"]
        stats.attempts += 1
        if attempt > 0:
            stats.retries += 1
        if success:
            stats.successes += 1
        else:
            stats.failures += 1
        if status_code is not None:
            stats.status_codes[str(status_code)] += 1
        stats.total_seconds += elapsed

    def service_totals(self) -> dict[str, int]:
        """Attempts grouped by service prefix (drive, docs, sheets, ...)."""
        totals: dict[str, int] = defaultdict(int)
        for name, stats in self._ops.items():
            totals[name.split(".", 1)[0]] += stats.attempts
        return dict(totals)

    def get_stats(self) -> dict:
        attempts = sum(s.attempts for s in self._ops.values())
        failures = sum(s.failures for s in self._ops.values())
        return {
            "total_attempts": attempts,
            "total_failures": failures,
            "total_retries": sum(s.retries for s in self._ops.values()),
            "by_service": self.service_totals(),
            "operations": {name: s.to_dict() for name, s in sorted(self._ops.items())},
        }

    def reset(self):
        self._ops.clear()
