"""Integration tests for UsageLedger against real PostgreSQL.

Requires ``docker compose up -d`` (PostgreSQL).
Run with: ``uv run pytest tests/integration/test_usage_ledger_db.py --run-db -v``
"""

from __future__ import annotations

import asyncio
from datetime import UTC, date, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_access.storage.orm import TenantUsage
from tenant_access.usage.ledger import UsageLedger

pytestmark = pytest.mark.requires_db

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


def _ledger(session: AsyncSession, now: datetime = NOW) -> UsageLedger:
    return UsageLedger(session, clock=lambda: now)


class TestConcurrentIncrement:
    """Parallel increments from independent transactions."""

    async def test_no_lost_updates(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        committed_tenant_id: str,
    ) -> None:
        """1000 committed increments leave the counter at exactly 1000."""
        gate = asyncio.Semaphore(10)

        async def _one() -> None:
            async with gate, session_factory() as session:
                await _ledger(session).increment_usage(committed_tenant_id)
                await session.commit()

        await asyncio.gather(*(_one() for _ in range(1000)))

        async with session_factory() as session:
            record = await _ledger(session).get_usage_for_tenant(committed_tenant_id)

        assert record is not None
        assert record.requests_count == 1000


class TestQuota:
    async def test_quota_of_three(
        self, db_session: AsyncSession, tenant_id: str
    ) -> None:
        """Third request reaches the quota; the ledger still counts a fourth."""
        ledger = _ledger(db_session)

        first = await ledger.increment_usage(tenant_id, quota_limit=3)
        assert first.requests_count == 1
        assert first.has_exceeded_quota() is False

        second = await ledger.increment_usage(tenant_id, quota_limit=3)
        assert second.requests_count == 2
        assert second.has_exceeded_quota() is False

        third = await ledger.increment_usage(tenant_id, quota_limit=3)
        assert third.requests_count == 3
        assert third.has_exceeded_quota() is True
        assert third.get_remaining_quota() == 0

        fourth = await ledger.increment_usage(tenant_id, quota_limit=3)
        assert fourth.requests_count == 4
        assert fourth.get_remaining_quota() == 0

    async def test_quota_fixed_at_creation(
        self, db_session: AsyncSession, tenant_id: str
    ) -> None:
        ledger = _ledger(db_session)
        await ledger.increment_usage(tenant_id, quota_limit=3)
        record = await ledger.increment_usage(tenant_id, quota_limit=99)
        assert record.quota_limit == 3

    async def test_new_day_new_record(
        self, db_session: AsyncSession, tenant_id: str
    ) -> None:
        await _ledger(db_session).increment_usage(tenant_id)
        tomorrow = datetime(2026, 10, 20, 0, 1, tzinfo=UTC)
        record = await _ledger(db_session, tomorrow).increment_usage(tenant_id)

        assert record.usage_date == date(2026, 10, 20)
        assert record.requests_count == 1


class TestReset:
    async def test_sweep_spares_today_and_yesterday(
        self, db_session: AsyncSession, tenant_id: str
    ) -> None:
        days = [date(2026, 10, d) for d in (16, 17, 18, 19)]
        loaded: dict[date, TenantUsage] = {}
        for day in days:
            noon = datetime(day.year, day.month, day.day, 12, tzinfo=UTC)
            ledger = _ledger(db_session, noon)
            await ledger.increment_usage(tenant_id)
            loaded[day] = await ledger.increment_usage(tenant_id)

        ledger = _ledger(db_session)
        assert await ledger.reset_daily_usage() >= 2

        # Objects loaded before the sweep reflect it without a refresh.
        assert loaded[date(2026, 10, 16)].requests_count == 0
        assert loaded[date(2026, 10, 18)].requests_count == 2

        counts: dict[date, int] = {}
        for day in days:
            record = await ledger.get_usage_for_tenant(tenant_id, day)
            assert record is loaded[day]
            counts[day] = record.requests_count

        assert counts == {
            date(2026, 10, 16): 0,
            date(2026, 10, 17): 0,
            date(2026, 10, 18): 2,
            date(2026, 10, 19): 2,
        }

    async def test_total_over_range(
        self, db_session: AsyncSession, tenant_id: str
    ) -> None:
        for d, hits in ((1, 1), (2, 2), (3, 3)):
            ledger = _ledger(db_session, datetime(2026, 10, d, 12, tzinfo=UTC))
            for _ in range(hits):
                await ledger.increment_usage(tenant_id)

        ledger = _ledger(db_session)
        assert await ledger.get_total_usage_for_tenant(tenant_id) == 6
        assert (
            await ledger.get_total_usage_for_tenant(
                tenant_id, date(2026, 10, 2), date(2026, 10, 3)
            )
            == 5
        )


class TestStatistics:
    async def test_top_and_daily_stats(self, db_session: AsyncSession) -> None:
        # Far-future day so other rows in the database do not interfere.
        now = datetime(2099, 1, 1, 12, tzinfo=UTC)
        ledger = _ledger(db_session, now)
        for tenant_id, hits, quota in (("stats-a", 5, 5), ("stats-b", 2, 10)):
            for _ in range(hits):
                await ledger.increment_usage(tenant_id, quota_limit=quota)

        top = await ledger.get_top_usage_tenants(limit=1)
        assert [r.tenant_id for r in top] == ["stats-a"]

        stats = await ledger.get_daily_stats()
        assert stats.date == date(2099, 1, 1)
        assert stats.total_requests == 7
        assert stats.total_tenants == 2
        assert stats.avg_requests_per_tenant == 3.5
        assert stats.max_requests == 5
        assert stats.tenants_exceeded_quota == 1

        exceeded = await ledger.get_tenants_exceeded_quota()
        within = await ledger.get_tenants_within_quota()
        assert [r.tenant_id for r in exceeded] == ["stats-a"]
        assert [r.tenant_id for r in within] == ["stats-b"]

    async def test_empty_day(self, db_session: AsyncSession) -> None:
        ledger = _ledger(db_session, datetime(2099, 6, 1, tzinfo=UTC))
        stats = await ledger.get_daily_stats()
        assert stats.total_tenants == 0
        assert stats.total_requests == 0
        assert stats.avg_requests_per_tenant == 0.0
        assert stats.max_requests == 0
