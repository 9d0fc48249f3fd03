"""
Per-user client cache. One explicit instance is built by the caller and
injected wherever an authenticated client for a user is needed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import httpx

from ..auth.authenticator import AuthenticationError, Authenticator
from ..safety.guardian import SafetyGuardian
from .client import WorkspaceClient
from .resilience import CallGateway, ExternalAPIError

logger = logging.getLogger("drive_audit_engine.sessions")

# Delegated tokens live for an hour; rebuild clients a little before that
CLIENT_MAX_AGE_SECONDS = 50 * 60


class ClientCache:
    """Maps user email to an open, authenticated WorkspaceClient."""

    def __init__(
        self,
        authenticator: Authenticator,
        gateway: CallGateway,
        guardian: SafetyGuardian,
        validate_access: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.authenticator = authenticator
        self.gateway = gateway
        self.guardian = guardian
        self.validate_access = validate_access
        self._transport = transport
        self._clients: dict[str, tuple[WorkspaceClient, float]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # Expired clients may still be held by in-flight scans; closed in close()
        self._retired: list[WorkspaceClient] = []

    async def get(self, user_email: str) -> WorkspaceClient:
        lock = self._locks.setdefault(user_email, asyncio.Lock())
        async with lock:
            cached = self._clients.get(user_email)
            if cached and time.monotonic() - cached[1] < CLIENT_MAX_AGE_SECONDS:
                return cached[0]
            if cached:
                self._retired.append(cached[0])

            client = await self._build(user_email)
            self._clients[user_email] = (client, time.monotonic())
            return client

    async def _build(self, user_email: str) -> WorkspaceClient:
        token = await self.authenticator.acquire_token(user_email)
        client = WorkspaceClient(
            access_token=token,
            gateway=self.gateway,
            guardian=self.guardian,
            user_email=user_email,
            transport=self._transport,
        )
        await client.__aenter__()

        if self.validate_access:
            try:
                await client.about(fields="user")
            except ExternalAPIError as e:
                await client.aclose()
                raise AuthenticationError(f"Drive access check failed for {user_email}: {e}") from e
            except Exception:
                await client.aclose()
                raise
        logger.debug(f"Client ready for {user_email}")
        return client

    async def evict(self, user_email: str):
        cached = self._clients.pop(user_email, None)
        if cached:
            await cached[0].aclose()

    async def close(self):
        clients = [client for client, _ in self._clients.values()] + self._retired
        for client in clients:
            await client.aclose()
        self._clients.clear()
        self._retired.clear()

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, user_email: str) -> bool:
        return user_email in self._clients
