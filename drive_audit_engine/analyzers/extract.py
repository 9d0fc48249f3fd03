"""
Text and formula extraction helpers for link analysis.
All functions are pure and tolerate non-string input.
"""

from __future__ import annotations

import re
from typing import Optional

from ..config import FILE_TYPE_DISPLAY_NAMES

# Sheets functions with no direct equivalent outside Google Workspace
PLATFORM_SPECIFIC_FUNCTIONS = frozenset({
    "QUERY", "FILTER", "SORTN", "UNIQUE", "ARRAYFORMULA",
    "GOOGLEFINANCE", "GOOGLETRANSLATE",
    "IMPORTHTML", "IMPORTXML", "IMPORTFEED", "IMPORTRANGE",
    "SPLIT", "JOIN",
    "REGEXMATCH", "REGEXEXTRACT", "REGEXREPLACE",
    "SPARKLINE", "FLATTEN", "CONTINUE",
    "LAMBDA", "MAP", "REDUCE", "SCAN", "MAKEARRAY", "BYROW", "BYCOL",
    "DETECTLANGUAGE", "ARRAY_CONSTRAIN", "SORT", "CONCAT",
})

_DRIVE_LINK_PATTERNS = [
    re.compile(
        r"https?://docs\.google\.com/(?:document|spreadsheets|presentation|forms|file|drawings)"
        r"/d/[a-zA-Z0-9\-_]{25,}(?:/[^#?\s\"'<>()]*)?",
        re.IGNORECASE,
    ),
    re.compile(
        r"https?://drive\.google\.com/(?:file/d/|open\?id=)[a-zA-Z0-9\-_]{25,}(?:/[^#?\s\"'<>()]*)?",
        re.IGNORECASE,
    ),
    re.compile(
        r"https?://drive\.google\.com/drive/(?:folders|u/\d+/folders|shared-drives)"
        r"/[a-zA-Z0-9\-_]{15,}(?:/[^#?\s\"'<>()]*)?",
        re.IGNORECASE,
    ),
    re.compile(r"https?://(?:[a-zA-Z0-9-]+\.)*google\.com/[^\s\"';<>()]+", re.IGNORECASE),
]

_FILE_ID_PATTERNS = [
    re.compile(
        r"https?://docs\.google\.com/(?:document|spreadsheets|presentation|forms|drawings|file)"
        r"/d/([a-zA-Z0-9\-_]{25,})",
        re.IGNORECASE,
    ),
    re.compile(r"https?://drive\.google\.com/file/d/([a-zA-Z0-9\-_]{25,})", re.IGNORECASE),
    re.compile(r"https?://drive\.google\.com/open\?id=([a-zA-Z0-9\-_]{25,})", re.IGNORECASE),
    re.compile(
        r"https?://drive\.google\.com/drive/(?:folders|u/\d+/folders)/([a-zA-Z0-9\-_]{25,})",
        re.IGNORECASE,
    ),
    re.compile(r"https?://drive\.google\.com/drive/shared-drives/([a-zA-Z0-9\-_]{15,})", re.IGNORECASE),
]

_WORKSPACE_URL_PATTERNS = [
    re.compile(r"docs\.google\.com/(?:document|spreadsheets|presentation|forms|drawings)"),
    re.compile(r"drive\.google\.com/(?:file/d/|open\?id=)"),
    re.compile(r"drive\.google\.com/drive/(?:folders|shared-drives)"),
]

_FUNCTION_NAME = re.compile(r"\b([A-Z0-9_.]+)\s*\(", re.IGNORECASE)
_HYPERLINK = re.compile(r"HYPERLINK\s*\(\s*(?:\"([^\"]+)\"|'([^']+)')", re.IGNORECASE)
_IMAGE = re.compile(r"IMAGE\s*\(\s*(?:\"([^\"]+)\"|'([^']+)')", re.IGNORECASE)
_IMPORTRANGE = re.compile(r"IMPORTRANGE\s*\(\s*(?:\"([^\"]+)\"|'([^']+)')\s*,", re.IGNORECASE)


def drive_file_id(url) -> Optional[str]:
    """Drive file or folder id embedded in a Google URL, if any."""
    if not isinstance(url, str):
        return None
    for pattern in _FILE_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def is_workspace_url(url) -> bool:
    if not isinstance(url, str) or not url:
        return False
    return any(p.search(url) for p in _WORKSPACE_URL_PATTERNS)


def extract_drive_links(text) -> list[str]:
    """Unique Docs/Drive links found in free text, in first-seen order."""
    if not isinstance(text, str) or not text:
        return []
    found: dict[str, None] = {}
    for pattern in _DRIVE_LINK_PATTERNS:
        for match in pattern.finditer(text):
            link = re.sub(r"[;,.)]$", "", match.group(0))
            if drive_file_id(link) or "docs.google.com/" in link or "drive.google.com/" in link:
                found.setdefault(link, None)
    return list(found)


def extract_function_names(formula) -> list[str]:
    """Upper-cased function names called in a formula."""
    if not isinstance(formula, str):
        return []
    found: dict[str, None] = {}
    for match in _FUNCTION_NAME.finditer(formula):
        found.setdefault(match.group(1).upper(), None)
    return list(found)


def _quoted_args(pattern: re.Pattern, formula) -> list[str]:
    if not isinstance(formula, str):
        return []
    return [m.group(1) or m.group(2) for m in pattern.finditer(formula)]


def extract_hyperlink_urls(formula) -> list[str]:
    return _quoted_args(_HYPERLINK, formula)


def extract_image_urls(formula) -> list[str]:
    return _quoted_args(_IMAGE, formula)


def extract_importrange_urls(formula) -> list[str]:
    """Spreadsheet URLs referenced by IMPORTRANGE, from either a URL or a bare id."""
    urls = []
    for value in _quoted_args(_IMPORTRANGE, formula):
        file_id = drive_file_id(value)
        if file_id:
            urls.append(f"https://docs.google.com/spreadsheets/d/{file_id}")
        elif len(value) >= 25 and " " not in value and "," not in value:
            urls.append(f"https://docs.google.com/spreadsheets/d/{value}")
    return urls


def extract_formula_links(formula) -> list[str]:
    """Every link a formula can point at: bare Drive URLs, HYPERLINK, IMAGE, IMPORTRANGE."""
    links = extract_drive_links(formula)
    links.extend(extract_hyperlink_urls(formula))
    links.extend(extract_image_urls(formula))
    links.extend(extract_importrange_urls(formula))
    return links


def incompatible_functions(functions) -> list[str]:
    """Subset of function names that are Workspace-specific, sorted."""
    return sorted({f.upper() for f in functions} & PLATFORM_SPECIFIC_FUNCTIONS)


def file_type_label(mime_type: Optional[str]) -> str:
    if not mime_type:
        return "Unknown"
    return FILE_TYPE_DISPLAY_NAMES.get(mime_type, mime_type)
