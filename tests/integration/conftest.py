"""Shared fixtures for integration tests requiring live PostgreSQL."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tenant_access.config import get_settings
from tenant_access.storage.orm import ApiKey, Base, TenantUsage

# ── Engine ─────────────────────────────────────────────────────────


@pytest.fixture()
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Async engine from settings; tables are created if missing."""
    engine = create_async_engine(
        get_settings().database_url,
        pool_size=10,
        max_overflow=0,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


# ── Session factory ────────────────────────────────────────────────


@pytest.fixture()
def session_factory(
    async_engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── Session with rollback ─────────────────────────────────────────


@pytest.fixture()
async def db_session(
    async_engine: AsyncEngine,
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a session wrapped in a transaction, rolled back after test.

    Suitable for tests that use ``flush()`` but NOT ``commit()``.
    """
    async with async_engine.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False)

        yield session

        await session.close()
        await trans.rollback()


# ── Committed tenant (real commit + DELETE cleanup) ───────────────


@pytest.fixture()
async def committed_tenant_id(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[str, None]:
    """Unique tenant id whose rows are deleted after the test."""
    tenant_id = f"test-tenant-{uuid.uuid4().hex[:8]}"

    yield tenant_id

    async with session_factory() as session:
        await session.execute(
            delete(TenantUsage).where(TenantUsage.tenant_id == tenant_id)
        )
        await session.execute(delete(ApiKey).where(ApiKey.tenant_id == tenant_id))
        await session.commit()


@pytest.fixture()
def tenant_id() -> str:
    return f"test-tenant-{uuid.uuid4().hex[:8]}"
