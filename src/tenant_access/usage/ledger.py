"""Per-tenant daily request counters and quota accounting."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert

from tenant_access.clock import Clock, utc_now
from tenant_access.config import DEFAULT_QUOTA_LIMIT
from tenant_access.models.usage import DailyStats, TenantStats
from tenant_access.storage.orm import TenantUsage

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from tenant_access.config import Settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class UsageLedgerConfig:
    """Explicit configuration for ``UsageLedger``."""

    default_quota_limit: int = DEFAULT_QUOTA_LIMIT

    @classmethod
    def from_settings(cls, settings: Settings) -> UsageLedgerConfig:
        return cls(default_quota_limit=settings.default_quota_limit)


class UsageLedger:
    """Tenant-level daily usage counters.

    The ledger records and reports; it never refuses an increment.
    Callers compare the returned record against its quota and decide.
    "Today" is the UTC calendar date of the injected clock.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        config: UsageLedgerConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._session = session
        self._config = config or UsageLedgerConfig()
        self._clock = clock

    def today(self) -> date:
        return self._clock().astimezone(UTC).date()

    # ── Counting ──

    async def increment_usage(
        self,
        tenant_id: str,
        quota_limit: int | None = None,
    ) -> TenantUsage:
        """Count one request for ``tenant_id`` today.

        Single ``INSERT ... ON CONFLICT DO UPDATE`` statement: the first
        request of the day creates the row with count 1, later ones bump
        the existing count under the row lock, so concurrent callers
        cannot lose increments. ``quota_limit`` only applies when the
        row is created.

        Returns:
            The record after the increment.
        """
        today = self.today()
        limit = (
            self._config.default_quota_limit if quota_limit is None else quota_limit
        )

        stmt = (
            pg_insert(TenantUsage)
            .values(
                tenant_id=tenant_id,
                usage_date=today,
                requests_count=1,
                quota_limit=limit,
                last_reset=datetime.combine(today, time.min, tzinfo=UTC),
            )
            .on_conflict_do_update(
                constraint="uq_tenant_usage_tenant_date",
                set_={
                    "requests_count": TenantUsage.requests_count + 1,
                    "updated_at": func.now(),
                },
            )
            .returning(TenantUsage)
        )
        result = await self._session.scalars(
            stmt, execution_options={"populate_existing": True}
        )
        return result.one()

    async def record_request(self, tenant_id: str) -> TenantUsage:
        """Increment with the configured default quota."""
        return await self.increment_usage(tenant_id)

    # ── Lookup ──

    async def get_usage_for_tenant(
        self,
        tenant_id: str,
        usage_date: date | None = None,
    ) -> TenantUsage | None:
        """Point lookup; never creates a record."""
        stmt = select(TenantUsage).where(
            TenantUsage.tenant_id == tenant_id,
            TenantUsage.usage_date == (usage_date or self.today()),
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_total_usage_for_tenant(
        self,
        tenant_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> int:
        """Sum of request counts over an inclusive date range.

        Either bound may be omitted to leave that side open.
        """
        stmt = select(func.coalesce(func.sum(TenantUsage.requests_count), 0)).where(
            TenantUsage.tenant_id == tenant_id
        )
        if start_date is not None:
            stmt = stmt.where(TenantUsage.usage_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(TenantUsage.usage_date <= end_date)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    # ── Reset ──

    async def reset_usage(self, usage: TenantUsage) -> None:
        usage.requests_count = 0
        usage.last_reset = self._clock()
        await self._session.flush()
        logger.info(
            "usage_reset",
            tenant_id=usage.tenant_id,
            usage_date=usage.usage_date.isoformat(),
        )

    async def reset_daily_usage(self) -> int:
        """Zero every non-empty record dated before yesterday.

        Today's and yesterday's records are left alone, so the sweep
        never touches rows that live traffic is still incrementing.
        Records already loaded in the session are synchronized too.

        Returns:
            Number of records reset.
        """
        yesterday = self.today() - timedelta(days=1)
        stmt = (
            update(TenantUsage)
            .where(
                TenantUsage.usage_date < yesterday,
                TenantUsage.requests_count > 0,
            )
            .values(requests_count=0, last_reset=self._clock())
        )
        result = await self._session.execute(stmt)
        logger.info("usage_daily_sweep", records_reset=result.rowcount)
        return result.rowcount

    # ── Statistics ──

    async def get_top_usage_tenants(
        self,
        limit: int = 10,
        usage_date: date | None = None,
    ) -> list[TenantUsage]:
        """Records for the day ordered by request count, highest first."""
        stmt = (
            select(TenantUsage)
            .where(TenantUsage.usage_date == (usage_date or self.today()))
            .order_by(TenantUsage.requests_count.desc(), TenantUsage.tenant_id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_tenants_exceeded_quota(
        self, usage_date: date | None = None
    ) -> list[TenantUsage]:
        stmt = select(TenantUsage).where(
            TenantUsage.usage_date == (usage_date or self.today()),
            TenantUsage.requests_count >= TenantUsage.quota_limit,
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_tenants_within_quota(
        self, usage_date: date | None = None
    ) -> list[TenantUsage]:
        stmt = select(TenantUsage).where(
            TenantUsage.usage_date == (usage_date or self.today()),
            TenantUsage.requests_count < TenantUsage.quota_limit,
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_daily_stats(self, usage_date: date | None = None) -> DailyStats:
        """Aggregate the day's records across all tenants.

        A day with no records reports zeros throughout.
        """
        day = usage_date or self.today()
        count = TenantUsage.requests_count
        stmt = select(
            func.coalesce(func.sum(count), 0),
            func.count(),
            func.coalesce(func.avg(count), 0),
            func.coalesce(func.max(count), 0),
            func.count().filter(count >= TenantUsage.quota_limit),
        ).where(TenantUsage.usage_date == day)
        result = await self._session.execute(stmt)
        total, tenants, avg, max_requests, exceeded = result.one()
        return DailyStats(
            date=day,
            total_requests=int(total),
            total_tenants=tenants,
            avg_requests_per_tenant=float(avg),
            max_requests=int(max_requests),
            tenants_exceeded_quota=exceeded,
        )

    async def get_tenant_stats(
        self,
        tenant_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> TenantStats:
        """Range total plus today's quota position.

        Without a record for today the snapshot reports zero usage
        against the default quota.
        """
        total = await self.get_total_usage_for_tenant(tenant_id, start_date, end_date)
        current = await self.get_usage_for_tenant(tenant_id)

        if current is None:
            default_quota = self._config.default_quota_limit
            return TenantStats(
                tenant_id=tenant_id,
                total_requests=total,
                today_requests=0,
                quota_limit=default_quota,
                remaining_quota=default_quota,
                usage_percentage=0.0,
                quota_exceeded=False,
            )

        return TenantStats(
            tenant_id=tenant_id,
            total_requests=total,
            today_requests=current.requests_count,
            quota_limit=current.quota_limit,
            remaining_quota=current.get_remaining_quota(),
            usage_percentage=current.get_usage_percentage(),
            quota_exceeded=current.has_exceeded_quota(),
        )
