"""Shared-secret guards for the trigger endpoints."""

from __future__ import annotations

import hmac

from fastapi import Request

from catalog_sync.api.deps import SettingsDep
from catalog_sync.errors import AuthorizationError, ConfigurationError

ADMIN_HEADER = "x-admin-secret"
CRON_HEADER = "x-cron-token"


def require_admin(request: Request, settings: SettingsDep) -> None:
    expected = settings.api.admin_secret
    if not expected:
        raise ConfigurationError("ADMIN_SECRET not set")
    if not _matches(request.headers.get(ADMIN_HEADER), expected):
        raise AuthorizationError("Unauthorized")


def require_cron(request: Request, settings: SettingsDep) -> None:
    """Accept the cron token from the header or the ``token`` query parameter."""

    expected = settings.api.cron_token
    if not expected:
        raise ConfigurationError("CRON_TOKEN not set")
    provided = request.headers.get(CRON_HEADER) or request.query_params.get("token")
    if not _matches(provided, expected):
        raise AuthorizationError("Unauthorized")


def _matches(provided: str | None, expected: str) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())
