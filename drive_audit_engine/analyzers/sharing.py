"""
Sharing analyser — classifies a file's permission list and rates its exposure.
"""

from __future__ import annotations

import logging

from ..models import AnalysisType, FileRecord, Permission, ShareInfo, SharingAnalysis
from ..scoring.engine import sharing_risk
from .base import AnalysisContext, BaseAnalyzer

logger = logging.getLogger("drive_audit_engine.analyzers.sharing")


def classify_permissions(permissions: list[Permission], primary_domain: str) -> SharingAnalysis:
    """Pure classification; the permission list is never modified."""
    primary_domain = primary_domain.lower()
    result = SharingAnalysis(permission_count=len(permissions))

    for permission in permissions:
        if permission.type == "anyone":
            result.public_link = True
            result.sharing_type = "public"
        elif permission.type == "domain":
            result.domain_sharing = True
            if result.sharing_type != "public":
                result.sharing_type = "domain-wide"
        elif permission.email:
            share = ShareInfo(
                email=permission.email,
                role=permission.role,
                type=permission.type,
                domain=permission.email_domain,
            )
            result.shared_with.append(share)
            if share.domain and share.domain != primary_domain:
                result.external_shares.append(share)

    result.shared = result.public_link or result.domain_sharing or len(result.shared_with) > 1
    result.risk_level = sharing_risk(result)
    return result


class SharingAnalyzer(BaseAnalyzer):
    name = "sharing"
    analysis_type = AnalysisType.SHARING
    description = "Public, domain-wide and external sharing"

    async def _analyze(self, record: FileRecord, context: AnalysisContext) -> SharingAnalysis:
        permissions = [
            Permission.from_api(p) async for p in context.client.list_permissions(record.id)
        ]
        primary_domain = context.primary_domain or context.user_domain
        result = classify_permissions(permissions, primary_domain)
        if result.external_shares:
            logger.debug(
                f"{record.id}: {len(result.external_shares)} external share(s) outside {primary_domain}"
            )
        return result
