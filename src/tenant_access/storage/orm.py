"""SQLAlchemy ORM models for API keys and per-tenant usage."""

import uuid
from datetime import date, datetime
from typing import Any

import uuid_utils as uuid7_lib
from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid7() -> uuid.UUID:
    """Generate a UUIDv7 (time-ordered) for use as default PK value."""
    return uuid.UUID(bytes=uuid7_lib.uuid7().bytes)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


# ──────────────────────────────────────────────
# API Keys
# ──────────────────────────────────────────────


class ApiKey(Base):
    """A tenant API key.

    ``tenant_id`` is an opaque reference into an external tenant
    registry; no foreign key is declared. ``secret_hash`` must never
    leave this layer: outward views go through ``ApiKeyRead``.
    """

    __tablename__ = "tenant_api_keys"

    def __repr__(self) -> str:
        return (
            f"<ApiKey(key_id='{self.key_id}', "
            f"tenant_id='{self.tenant_id}', active={self.active})>"
        )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=_uuid7)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True)
    key_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    secret_hash: Mapped[str] = mapped_column(String(255))
    permissions: Mapped[list[Any]] = mapped_column(JSONB, default=list)
    rate_limits: Mapped[dict[str, Any]] = mapped_column(JSONB, default=dict)
    allowed_ips: Mapped[list[Any] | None] = mapped_column(JSONB)
    environment: Mapped[str] = mapped_column(
        Enum("test", "live", name="key_environment_enum"),
        default="test",
    )
    active: Mapped[bool] = mapped_column(default=True)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # ── Key class / environment ──

    @property
    def is_public_key(self) -> bool:
        return self.key_id.startswith("pk_")

    @property
    def is_secret_key(self) -> bool:
        return self.key_id.startswith("sk_")

    @property
    def key_class(self) -> str | None:
        """'public' or 'secret' from the id prefix; None if unrecognised."""
        if self.is_public_key:
            return "public"
        if self.is_secret_key:
            return "secret"
        return None

    @property
    def is_test_environment(self) -> bool:
        return self.environment == "test"

    @property
    def is_live_environment(self) -> bool:
        return self.environment == "live"

    # ── Authorization checks ──

    def has_permission(self, permission: str) -> bool:
        return permission in (self.permissions or [])

    def has_any_permission(self, permissions: list[str]) -> bool:
        """True if at least one of ``permissions`` is granted."""
        return not set(permissions).isdisjoint(self.permissions or [])

    def has_all_permissions(self, permissions: list[str]) -> bool:
        """True if every one of ``permissions`` is granted.

        An empty request is trivially satisfied.
        """
        return set(permissions) <= set(self.permissions or [])

    def is_ip_whitelisted(self, ip: str | None) -> bool:
        """Check ``ip`` against the allow-list.

        No allow-list, or no presented address, means unrestricted.
        """
        if not self.allowed_ips or not ip:
            return True
        return ip in self.allowed_ips


# ──────────────────────────────────────────────
# Usage Quota
# ──────────────────────────────────────────────


class TenantUsage(Base):
    """Request counter for one tenant on one calendar day.

    At most one row per ``(tenant_id, usage_date)``; the unique
    constraint is also the conflict target of the atomic increment.
    """

    __tablename__ = "tenant_usage"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "usage_date", name="uq_tenant_usage_tenant_date"
        ),
        CheckConstraint(
            "requests_count >= 0", name="ck_tenant_usage_count_non_negative"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<TenantUsage(tenant_id='{self.tenant_id}', "
            f"usage_date={self.usage_date}, "
            f"requests_count={self.requests_count}/{self.quota_limit})>"
        )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=_uuid7)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True)
    usage_date: Mapped[date] = mapped_column(Date, index=True)
    requests_count: Mapped[int] = mapped_column(Integer, default=0)
    quota_limit: Mapped[int] = mapped_column(Integer)
    last_reset: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # ── Quota arithmetic ──

    def has_exceeded_quota(self) -> bool:
        """Exceeded means the counter has reached the limit, not passed it."""
        return self.requests_count >= self.quota_limit

    def get_remaining_quota(self) -> int:
        return max(0, self.quota_limit - self.requests_count)

    def get_usage_percentage(self) -> float:
        """Share of the quota consumed, 0 when the quota is not positive."""
        if self.quota_limit <= 0:
            return 0.0
        return self.requests_count / self.quota_limit * 100
