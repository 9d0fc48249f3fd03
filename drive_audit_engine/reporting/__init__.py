"""Reporting package — multi-format output generation."""

from .json_export import export_json
from .csv_export import export_csv
from .executive_summary import build_overview, export_executive_summary
from .event_log import JsonlEventLog

__all__ = [
    "export_json",
    "export_csv",
    "build_overview",
    "export_executive_summary",
    "JsonlEventLog",
]
