"""Pydantic schemas for tenant-access domain models."""

from tenant_access.models.api_keys import ApiKeyRead, KeyStats, RateLimits
from tenant_access.models.usage import DailyStats, TenantStats, UsageRead

__all__ = [
    "ApiKeyRead",
    "DailyStats",
    "KeyStats",
    "RateLimits",
    "TenantStats",
    "UsageRead",
]
