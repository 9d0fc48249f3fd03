"""Google Workspace API access — gateway, client, per-user sessions, usage telemetry."""

from .resilience import CallGateway, ExternalAPIError, is_transient
from .telemetry import UsageMonitor
from .client import WorkspaceClient
from .sessions import ClientCache

__all__ = [
    "CallGateway",
    "ExternalAPIError",
    "is_transient",
    "UsageMonitor",
    "WorkspaceClient",
    "ClientCache",
]
