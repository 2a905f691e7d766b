"""CLI for API key and usage quota management.

Usage::

    uv run python -m scripts.manage_keys <command> [options]

Commands:
    create-key          Generate an API key for a tenant
    list-keys           List active API keys for a tenant
    revoke-key          Deactivate an API key by key id
    activate-key        Re-activate an API key by key id
    key-stats           Key counts for a tenant
    usage               Quota snapshot and range total for a tenant
    daily-stats         Aggregate usage for one day
    top-tenants         Highest-usage tenants for one day
    reset-daily-usage   Zero counters dated before yesterday
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import AsyncIterator, Callable, Coroutine
from contextlib import asynccontextmanager
from datetime import date
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tenant_access.auth.hashing import get_hasher
from tenant_access.auth.key_store import KeyStore, KeyStoreConfig
from tenant_access.config import get_settings
from tenant_access.errors import ApiKeyNotFoundError, UnknownKeyEnvironmentError
from tenant_access.logging_config import configure_logging
from tenant_access.models.usage import UsageRead
from tenant_access.storage.database import get_engine, get_session_factory
from tenant_access.usage.ledger import UsageLedger, UsageLedgerConfig


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session committed on exit; the engine is disposed afterwards."""
    try:
        async with get_session_factory()() as session:
            yield session
            await session.commit()
    finally:
        await get_engine().dispose()


def build_key_store(session: AsyncSession) -> KeyStore:
    settings = get_settings()
    return KeyStore(
        session,
        hasher=get_hasher(settings.bcrypt_rounds),
        config=KeyStoreConfig.from_settings(settings),
    )


def build_ledger(session: AsyncSession) -> UsageLedger:
    return UsageLedger(session, config=UsageLedgerConfig.from_settings(get_settings()))


async def create_key(args: argparse.Namespace) -> None:
    """Generate an API key for a tenant."""
    permissions = [p.strip() for p in args.permissions.split(",") if p.strip()]
    async with session_scope() as session:
        store = build_key_store(session)
        generate = (
            store.generate_secret_key
            if args.key_class == "secret"
            else store.generate_public_key
        )
        try:
            issued = await generate(args.tenant, args.environment, permissions)
        except UnknownKeyEnvironmentError as exc:
            print(str(exc), file=sys.stderr)
            sys.exit(1)

    print(f'API key created for "{args.tenant}":')
    print(f"   Key ID:       {issued.key_id}")
    print(f"   Secret:       {issued.secret}")
    print(f"   Permissions:  {', '.join(permissions) or 'none'}")
    print()
    print("Save this secret now -- it cannot be retrieved later!")


async def list_keys(args: argparse.Namespace) -> None:
    """List active API keys for a tenant."""
    async with session_scope() as session:
        keys = await build_key_store(session).list_active_keys_for_tenant(args.tenant)

    if not keys:
        print(f'No active keys for "{args.tenant}".')
        return

    print(f'Keys for "{args.tenant}":')
    for i, key in enumerate(keys, 1):
        perms = ",".join(key.permissions) if key.permissions else "none"
        used = key.last_used_at.isoformat() if key.last_used_at else "never"
        print(
            f"  {i}. {key.key_id} [{key.environment}] permissions={perms} used={used}"
        )


async def _set_active(key_id: str, active: bool) -> None:
    async with session_scope() as session:
        try:
            await build_key_store(session).set_active(key_id, active)
        except ApiKeyNotFoundError:
            print(f"Key not found: {key_id}", file=sys.stderr)
            sys.exit(1)


async def revoke_key(args: argparse.Namespace) -> None:
    """Deactivate an API key."""
    await _set_active(args.key_id, False)
    print(f"Key revoked: {args.key_id}")


async def activate_key(args: argparse.Namespace) -> None:
    """Re-activate an API key."""
    await _set_active(args.key_id, True)
    print(f"Key activated: {args.key_id}")


async def key_stats(args: argparse.Namespace) -> None:
    """Print key counts for a tenant."""
    async with session_scope() as session:
        stats = await build_key_store(session).get_tenant_key_stats(args.tenant)

    print(f'Keys for "{args.tenant}":')
    for name, value in stats.model_dump().items():
        print(f"  {name}: {value}")


async def usage(args: argparse.Namespace) -> None:
    """Print quota snapshot and range total for a tenant."""
    async with session_scope() as session:
        stats = await build_ledger(session).get_tenant_stats(
            args.tenant, args.start, args.end
        )

    print(f'Usage for "{args.tenant}":')
    print(f"  total_requests: {stats.total_requests}")
    print(f"  today: {stats.today_requests}/{stats.quota_limit}")
    print(f"  remaining: {stats.remaining_quota} ({stats.usage_percentage:.1f}% used)")
    if stats.quota_exceeded:
        print("  QUOTA EXCEEDED")


async def daily_stats(args: argparse.Namespace) -> None:
    """Print aggregate usage for one day."""
    async with session_scope() as session:
        stats = await build_ledger(session).get_daily_stats(args.date)

    print(f"Usage on {stats.date.isoformat()}:")
    print(f"  tenants: {stats.total_tenants}")
    print(f"  requests: {stats.total_requests}")
    print(f"  avg per tenant: {stats.avg_requests_per_tenant:.1f}")
    print(f"  max: {stats.max_requests}")
    print(f"  exceeded quota: {stats.tenants_exceeded_quota}")


async def top_tenants(args: argparse.Namespace) -> None:
    """Print the highest-usage tenants for one day."""
    async with session_scope() as session:
        records = await build_ledger(session).get_top_usage_tenants(
            args.limit, args.date
        )

    if not records:
        print("No usage recorded.")
        return

    for i, record in enumerate(records, 1):
        row = UsageRead.model_validate(record)
        print(f"  {i}. {row.tenant_id}: {row.requests_count}/{row.quota_limit}")


async def reset_daily_usage(_args: argparse.Namespace) -> None:
    """Zero stale counters."""
    async with session_scope() as session:
        count = await build_ledger(session).reset_daily_usage()
    print(f"Records reset: {count}")


def main() -> None:
    """Parse arguments and dispatch to command handler."""
    parser = argparse.ArgumentParser(description="API key and usage management CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    # create-key
    p = sub.add_parser("create-key", help="Generate API key for a tenant")
    p.add_argument("--tenant", required=True, help="Tenant id")
    p.add_argument(
        "--class",
        dest="key_class",
        choices=["public", "secret"],
        default="public",
        help="Key class",
    )
    p.add_argument("--environment", default="test", help="test or live")
    p.add_argument(
        "--permissions", default="", help="Comma-separated: orders:read,..."
    )

    # list-keys
    p = sub.add_parser("list-keys", help="List active API keys for a tenant")
    p.add_argument("--tenant", required=True, help="Tenant id")

    # revoke-key / activate-key
    p = sub.add_parser("revoke-key", help="Deactivate an API key")
    p.add_argument("--key-id", required=True, help="Key id")
    p = sub.add_parser("activate-key", help="Re-activate an API key")
    p.add_argument("--key-id", required=True, help="Key id")

    # key-stats
    p = sub.add_parser("key-stats", help="Key counts for a tenant")
    p.add_argument("--tenant", required=True, help="Tenant id")

    # usage
    p = sub.add_parser("usage", help="Usage snapshot for a tenant")
    p.add_argument("--tenant", required=True, help="Tenant id")
    p.add_argument("--start", type=date.fromisoformat, help="YYYY-MM-DD")
    p.add_argument("--end", type=date.fromisoformat, help="YYYY-MM-DD")

    # daily-stats
    p = sub.add_parser("daily-stats", help="Aggregate usage for one day")
    p.add_argument("--date", type=date.fromisoformat, help="YYYY-MM-DD")

    # top-tenants
    p = sub.add_parser("top-tenants", help="Highest-usage tenants")
    p.add_argument("--limit", type=int, default=10, help="Number of tenants")
    p.add_argument("--date", type=date.fromisoformat, help="YYYY-MM-DD")

    # reset-daily-usage
    sub.add_parser("reset-daily-usage", help="Zero counters before yesterday")

    args = parser.parse_args()
    settings = get_settings()
    configure_logging(settings.environment, settings.log_level)

    commands: dict[
        str, Callable[[argparse.Namespace], Coroutine[Any, Any, None]]
    ] = {
        "create-key": create_key,
        "list-keys": list_keys,
        "revoke-key": revoke_key,
        "activate-key": activate_key,
        "key-stats": key_stats,
        "usage": usage,
        "daily-stats": daily_stats,
        "top-tenants": top_tenants,
        "reset-daily-usage": reset_daily_usage,
    }
    asyncio.run(commands[args.command](args))


if __name__ == "__main__":
    main()
