"""
Location analyser — where a file lives: personal drive or shared drive,
its folder path, and whether it sits outside the user's tenant.
"""

from __future__ import annotations

import logging

import httpx

from ..api.resilience import ExternalAPIError
from ..drives.graph import DriveGraph, classify_parentless
from ..models import AnalysisType, FileCategory, FileRecord, LocationAnalysis
from ..scoring.engine import location_complexity
from .base import AnalysisContext, BaseAnalyzer

logger = logging.getLogger("drive_audit_engine.analyzers.location")


class LocationAnalyzer(BaseAnalyzer):
    name = "location"
    analysis_type = AnalysisType.LOCATION
    description = "Drive, folder path and cross-tenant placement"

    async def _analyze(self, record: FileRecord, context: AnalysisContext) -> LocationAnalysis:
        location = LocationAnalysis()

        if record.drive_id:
            location.shared_drive_id = record.drive_id
            try:
                drive = await context.client.get_drive(record.drive_id, fields="id,name")
                location.location_type = "shared-drive"
                location.shared_drive_name = drive.get("name")
            except (ExternalAPIError, httpx.HTTPError) as e:
                logger.debug(f"Shared drive {record.drive_id} inaccessible: {e}")
                location.location_type = "shared-drive-inaccessible"
        else:
            location.location_type = "personal-drive"
            owner = record.primary_owner
            location.owner_email = owner.email if owner else ""

        if not record.parents:
            location.category = classify_parentless(record.owner_domains, context.user_domain)
        else:
            graph = DriveGraph(context.client, context.user_domain)
            location.folder_path, location.path_complete = await graph.folder_path(
                record.parents[0], max_depth=context.max_folder_depth
            )
            if await graph.foreign_ancestor(record.parents):
                location.category = FileCategory.FILE_IN_CROSS_TENANT_FOLDER

        location.migration_complexity = location_complexity(location)
        return location
