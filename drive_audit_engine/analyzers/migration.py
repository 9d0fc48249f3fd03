"""
Migration analyser — maps a file's content type to known conversion findings.
"""

from __future__ import annotations

from ..models import AnalysisType, ContentType, FileRecord, MigrationAnalysis, MigrationIssue
from ..scoring.engine import migration_complexity, migration_recommendations
from .base import AnalysisContext, BaseAnalyzer

# Fixed findings per content type; every ContentType member must be present
MIGRATION_FINDINGS: dict[ContentType, list[tuple[str, str, str]]] = {
    ContentType.DOCUMENT: [
        ("google-docs-features", "low", "May contain Google Docs specific features"),
    ],
    ContentType.SPREADSHEET: [
        ("google-sheets-functions", "medium", "May contain Google Sheets specific functions"),
    ],
    ContentType.PRESENTATION: [
        ("google-slides-features", "low", "May contain Google Slides specific features"),
    ],
    ContentType.FOLDER: [],
    ContentType.OTHER: [],
}

_missing = set(ContentType) - set(MIGRATION_FINDINGS)
if _missing:
    raise TypeError(f"MIGRATION_FINDINGS lacks {sorted(m.value for m in _missing)}")


def assess_compatibility(mime_type: str) -> dict:
    if "google" in (mime_type or ""):
        return {
            "platform": "google-workspace",
            "exportable": True,
            "native_support": False,
            "conversion_required": True,
        }
    return {
        "platform": "standard",
        "exportable": True,
        "native_support": True,
        "conversion_required": False,
    }


class MigrationAnalyzer(BaseAnalyzer):
    name = "migration"
    analysis_type = AnalysisType.MIGRATION
    description = "Conversion findings and migration complexity"

    async def _analyze(self, record: FileRecord, context: AnalysisContext) -> MigrationAnalysis:
        issues = [
            MigrationIssue(type=t, severity=s, description=d)
            for t, s, d in MIGRATION_FINDINGS[record.content_type]
        ]
        complexity = migration_complexity(issues)
        return MigrationAnalysis(
            compatibility=assess_compatibility(record.mime_type),
            issues=issues,
            complexity=complexity,
            recommendations=migration_recommendations(issues, complexity),
        )
