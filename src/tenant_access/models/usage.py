"""Usage ledger schemas."""

import datetime as dt
import uuid

from pydantic import BaseModel, ConfigDict


class UsageRead(BaseModel):
    """Public view of a per-tenant daily usage record."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: str
    usage_date: dt.date
    requests_count: int
    quota_limit: int
    last_reset: dt.datetime | None = None


class DailyStats(BaseModel):
    """Aggregate over all tenants for one day."""

    date: dt.date
    total_requests: int
    total_tenants: int
    avg_requests_per_tenant: float
    max_requests: int
    tenants_exceeded_quota: int


class TenantStats(BaseModel):
    """Range total plus today's quota snapshot for one tenant."""

    tenant_id: str
    total_requests: int
    today_requests: int
    quota_limit: int
    remaining_quota: int
    usage_percentage: float
    quota_exceeded: bool
