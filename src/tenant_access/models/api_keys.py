"""API key schemas.

``ApiKeyRead`` is the only outward representation of a stored key and
deliberately has no field for the secret hash.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RateLimits(BaseModel):
    """Per-key request ceilings stored alongside the key."""

    per_minute: int = Field(ge=0)
    daily: int = Field(ge=0)


class ApiKeyRead(BaseModel):
    """Public view of a stored API key."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: str
    key_id: str
    permissions: list[str]
    rate_limits: RateLimits
    allowed_ips: list[str] | None = None
    environment: str
    active: bool
    last_used_at: datetime | None = None
    created_at: datetime | None = None


class KeyStats(BaseModel):
    """Key counts for a single tenant."""

    total_keys: int
    active_keys: int
    public_keys: int
    secret_keys: int
    live_keys: int
    test_keys: int
