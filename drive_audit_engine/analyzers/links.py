"""
Link analyser — finds every URL a Doc, Sheet or Slide deck points at,
resolves Drive links to file names, and flags Workspace-only formula functions.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterator

import httpx

from ..api.resilience import ExternalAPIError
from ..models import AnalysisType, ContentType, FileRecord, LinkAnalysis
from .base import AnalysisContext, BaseAnalyzer
from .extract import (
    drive_file_id,
    extract_drive_links,
    extract_formula_links,
    extract_function_names,
    file_type_label,
    incompatible_functions,
    is_workspace_url,
)

logger = logging.getLogger("drive_audit_engine.analyzers.links")

DOCUMENT_FIELDS = (
    "body(content(paragraph(elements(textRun(content,textStyle.link.url),"
    "inlineObjectElement(inlineObjectId))))),inlineObjects"
)

SPREADSHEET_FIELDS = (
    "properties.title,spreadsheetId,sheets(properties(title,sheetType,sheetId),"
    "data(rowData(values(userEnteredValue,effectiveValue,formattedValue,hyperlink,"
    "textFormatRuns.format.link.uri,dataValidation.condition.values.userEnteredValue))),"
    "charts(chartId,spec),conditionalFormats(booleanRule(condition(values(userEnteredValue)))))"
)

PRESENTATION_FIELDS = "presentationId,slides(pageElements,slideProperties.notesPage.pageElements)"

LINK_RESOLVE_FIELDS = "id,name,mimeType,webViewLink,driveId"


def _sheet_url(spreadsheet_id: str) -> str:
    return f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/"


def walk_page_elements(elements) -> Iterator[dict]:
    """Depth-first, in-order walk of slide page elements including nested groups."""
    stack = list(reversed(elements or []))
    while stack:
        element = stack.pop()
        yield element
        children = (element.get("elementGroup") or {}).get("children") or []
        stack.extend(reversed(children))


class LinkAnalyzer(BaseAnalyzer):
    name = "links"
    analysis_type = AnalysisType.LINKS
    description = "Embedded and referenced links, Workspace-only formula functions"

    def __init__(self):
        self._scanners = {
            ContentType.DOCUMENT: self._scan_document,
            ContentType.SPREADSHEET: self._scan_spreadsheet,
            ContentType.PRESENTATION: self._scan_presentation,
            ContentType.FOLDER: self._scan_nothing,
            ContentType.OTHER: self._scan_nothing,
        }
        missing = set(ContentType) - set(self._scanners)
        if missing:
            raise TypeError(f"LinkAnalyzer has no scanner for {sorted(m.value for m in missing)}")

    async def _analyze(self, record: FileRecord, context: AnalysisContext) -> LinkAnalysis:
        scanner = self._scanners[record.content_type]
        raw_urls, functions = await scanner(record, context)
        links = await self.resolve_urls(raw_urls, context)
        return LinkAnalysis(
            links=links,
            functions=sorted(set(functions)),
            incompatible_functions=incompatible_functions(functions),
        )

    # ─── Per content type ──────────────────────────────────────────────────

    async def _scan_nothing(self, record: FileRecord, context: AnalysisContext):
        return [], []

    async def _scan_document(self, record: FileRecord, context: AnalysisContext):
        doc = await context.client.get_document(record.id, fields=DOCUMENT_FIELDS)
        raw: list[str] = []
        inline_objects = doc.get("inlineObjects") or {}

        for block in self.get_safe(doc, "body", "content") or []:
            for elem in self.get_safe(block, "paragraph", "elements") or []:
                text_run = elem.get("textRun")
                if text_run:
                    url = self.get_safe(text_run, "textStyle", "link", "url")
                    if url:
                        raw.append(url)
                    raw.extend(extract_drive_links(text_run.get("content")))

                object_id = self.get_safe(elem, "inlineObjectElement", "inlineObjectId")
                if not object_id:
                    continue
                embedded = self.get_safe(
                    inline_objects, object_id, "inlineObjectProperties", "embeddedObject"
                )
                if not embedded:
                    continue
                raw.extend(extract_drive_links(embedded.get("description")))
                image = embedded.get("imageProperties") or {}
                for key in ("contentUri", "sourceUri"):
                    if image.get(key):
                        raw.append(image[key])
                chart_sheet = self.get_safe(
                    embedded, "linkedContentReference", "sheetsChartReference", "spreadsheetId"
                )
                if chart_sheet:
                    raw.append(_sheet_url(chart_sheet))
        return raw, []

    async def _scan_spreadsheet(self, record: FileRecord, context: AnalysisContext):
        book = await context.client.get_spreadsheet(record.id, fields=SPREADSHEET_FIELDS)
        raw: list[str] = []
        functions: list[str] = []

        def scan_formula(formula: Any):
            raw.extend(extract_formula_links(formula))
            functions.extend(extract_function_names(formula))

        for sheet in book.get("sheets") or []:
            for grid in sheet.get("data") or []:
                for row in grid.get("rowData") or []:
                    for cell in row.get("values") or []:
                        if cell.get("hyperlink"):
                            raw.append(cell["hyperlink"])
                        for run in cell.get("textFormatRuns") or []:
                            uri = self.get_safe(run, "format", "link", "uri")
                            if uri:
                                raw.append(uri)
                        scan_formula(self.get_safe(cell, "userEnteredValue", "formulaValue"))
                        scan_formula(self.get_safe(cell, "effectiveValue", "formulaValue"))
                        raw.extend(extract_drive_links(cell.get("formattedValue")))
                        for value in self.get_safe(cell, "dataValidation", "condition", "values") or []:
                            scan_formula(value.get("userEnteredValue"))

            for rule in sheet.get("conditionalFormats") or []:
                for value in self.get_safe(rule, "booleanRule", "condition", "values") or []:
                    scan_formula(value.get("userEnteredValue"))

            for chart in sheet.get("charts") or []:
                source = self.get_safe(chart, "spec", "spreadsheetId")
                if source:
                    raw.append(_sheet_url(source))
        return raw, functions

    async def _scan_presentation(self, record: FileRecord, context: AnalysisContext):
        deck = await context.client.get_presentation(record.id, fields=PRESENTATION_FIELDS)
        raw: list[str] = []

        pages = []
        for slide in deck.get("slides") or []:
            pages.append(slide.get("pageElements"))
            pages.append(self.get_safe(slide, "slideProperties", "notesPage", "pageElements"))

        for elements in pages:
            for element in walk_page_elements(elements):
                for text_element in self.get_safe(element, "shape", "text", "textElements") or []:
                    text_run = text_element.get("textRun")
                    if not text_run:
                        continue
                    url = self.get_safe(text_run, "style", "link", "url")
                    if url:
                        raw.append(url)
                    raw.extend(extract_drive_links(text_run.get("content")))

                image = element.get("image")
                if image:
                    for key in ("contentUrl", "sourceUrl"):
                        if image.get(key):
                            raw.append(image[key])
                    link = self.get_safe(image, "imageProperties", "link", "url")
                    if link:
                        raw.append(link)

                video = element.get("video")
                if video:
                    if video.get("url"):
                        raw.append(video["url"])
                    if video.get("source") == "DRIVE" and video.get("id"):
                        raw.append(f"https://drive.google.com/file/d/{video['id']}/view")

                chart_sheet = self.get_safe(element, "sheetsChart", "spreadsheetId")
                if chart_sheet:
                    raw.append(_sheet_url(chart_sheet))
        return raw, []

    # ─── URL resolution ────────────────────────────────────────────────────

    async def resolve_urls(self, raw_urls: list, context: AnalysisContext) -> list[str]:
        """
        Deduplicate, then describe Drive links by name and type.
        Non-Drive URLs survive only when they point at a Workspace document.
        """
        unique = list(dict.fromkeys(u for u in raw_urls if isinstance(u, str) and u))
        resolved = await asyncio.gather(*(self._resolve_one(u, context) for u in unique))
        return [r for r in resolved if r is not None]

    async def _resolve_one(self, url: str, context: AnalysisContext):
        file_id = drive_file_id(url)
        if not file_id:
            return url if is_workspace_url(url) else None

        try:
            meta = await context.client.get_file(file_id, fields=LINK_RESOLVE_FIELDS)
        except (ExternalAPIError, httpx.HTTPError) as e:
            logger.debug(f"Could not resolve linked file {file_id} ({url}): {e}")
            return f"{url} (Unresolved Drive Link: ID {file_id})"

        name = meta.get("name") or "Unknown Name"
        label = file_type_label(meta.get("mimeType"))
        suffix = ", Shared Drive" if meta.get("driveId") else ""
        return f"{url} (Name: {name}, Type: {label}{suffix})"
