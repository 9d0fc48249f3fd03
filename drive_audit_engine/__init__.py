"""
Drive Audit Engine
==================
A read-only Google Workspace file estate auditor. Analyses every Doc, Sheet
and Slide deck for links, external or public sharing, cross-tenant placement
and migration complexity, and reports per user and per organisation.

WARNING: This tool operates in STRICT READ-ONLY mode.
         No write operations will be performed against the tenant.
"""

__version__ = "1.0.0"
__author__ = "Drive Audit Engine"
__mode__ = "READ-ONLY"
