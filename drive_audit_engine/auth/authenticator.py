"""
Authentication module — Service account with domain-wide delegation.
Uses google-auth to mint one access token per impersonated user.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from ..config import AuthConfig

logger = logging.getLogger("drive_audit_engine.auth")


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


class Authenticator:
    """
    Handles google-auth service account credentials.
    Delegated credentials are kept per subject and refreshed on demand.
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._base: Optional[service_account.Credentials] = None
        self._delegated: dict[str, service_account.Credentials] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _load_base_credentials(self) -> service_account.Credentials:
        if self._base is not None:
            return self._base
        path = self.config.credentials_path
        if not path:
            raise AuthenticationError("No service account key configured (GOOGLE_APPLICATION_CREDENTIALS).")
        try:
            self._base = service_account.Credentials.from_service_account_file(
                path, scopes=self.config.scopes
            )
        except FileNotFoundError:
            raise AuthenticationError(f"Service account key not found: {path}")
        except (ValueError, KeyError) as e:
            raise AuthenticationError(f"Invalid service account key {path}: {e}")
        logger.info(f"Loaded service account {self._base.service_account_email}")
        return self._base

    def credentials_for(self, subject: str) -> service_account.Credentials:
        """Delegated credentials impersonating subject."""
        if subject not in self._delegated:
            self._delegated[subject] = self._load_base_credentials().with_subject(subject)
        return self._delegated[subject]

    async def acquire_token(self, subject: Optional[str] = None) -> str:
        """Return a valid access token for subject (defaults to the admin user)."""
        subject = subject or self.config.admin_user
        if not subject:
            raise AuthenticationError("No subject to impersonate (ADMIN_USER not set).")

        credentials = self.credentials_for(subject)
        lock = self._locks.setdefault(subject, asyncio.Lock())
        async with lock:
            if not credentials.valid:
                logger.debug(f"Refreshing delegated token for {subject}")
                try:
                    await asyncio.to_thread(credentials.refresh, Request())
                except GoogleAuthError as e:
                    raise AuthenticationError(f"Token refresh failed for {subject}: {e}") from e
        return credentials.token

    def forget(self, subject: str):
        self._delegated.pop(subject, None)
        self._locks.pop(subject, None)
