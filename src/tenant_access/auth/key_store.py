"""API key issuance, authentication and authorization."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select

from tenant_access.auth.hashing import SecretHasher, get_hasher
from tenant_access.auth.keys import (
    KEY_ID_RANDOM_LENGTH,
    SECRET_LENGTH,
    IssuedKey,
    KeyClass,
    build_key_id,
    generate_random_string,
    parse_environment,
)
from tenant_access.clock import Clock, utc_now
from tenant_access.config import (
    DEFAULT_KEY_NAMESPACE,
    DEFAULT_PERMISSION_MAPPING,
    DEFAULT_RATE_LIMITS,
)
from tenant_access.errors import ApiKeyNotFoundError
from tenant_access.models.api_keys import KeyStats, RateLimits
from tenant_access.storage.orm import ApiKey

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from tenant_access.config import Settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class KeyStoreConfig:
    """Explicit configuration for ``KeyStore``.

    Attributes:
        namespace: Middle segment of every key id.
        rate_limits: Default limits keyed by key class name
            ('public' / 'secret'). A missing class falls back to the
            built-in tier for that class.
        permission_mapping: Scope -> external permission name(s).
            Scopes absent from the table map to nothing.
    """

    namespace: str = DEFAULT_KEY_NAMESPACE
    rate_limits: Mapping[str, RateLimits] = field(
        default_factory=lambda: dict(DEFAULT_RATE_LIMITS)
    )
    permission_mapping: Mapping[str, str | Sequence[str]] = field(
        default_factory=lambda: dict(DEFAULT_PERMISSION_MAPPING)
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> KeyStoreConfig:
        return cls(
            namespace=settings.key_namespace,
            rate_limits=settings.default_rate_limits,
            permission_mapping=settings.permission_mapping,
        )

    def rate_limits_for(self, key_class: KeyClass) -> RateLimits:
        limits = self.rate_limits.get(key_class.value)
        if limits is None:
            logger.warning("rate_limits_not_configured", key_class=key_class.value)
            return DEFAULT_RATE_LIMITS[key_class.value]
        return limits


class KeyStore:
    """Issues, authenticates and authorizes tenant API keys.

    Writes are flushed, never committed; the caller owns the
    transaction. Hashing runs in a worker thread so bcrypt does not
    stall the event loop. Stores are cheap and built per session; the
    hasher (and its dummy digest) is shared across them.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        hasher: SecretHasher | None = None,
        config: KeyStoreConfig | None = None,
        clock: Clock = utc_now,
        random_string: Callable[[int], str] = generate_random_string,
    ) -> None:
        self._session = session
        self._hasher = hasher or get_hasher()
        self._config = config or KeyStoreConfig()
        self._clock = clock
        self._random_string = random_string

    # ── Generation ──

    async def generate_public_key(
        self,
        tenant_id: str,
        environment: str = "test",
        permissions: list[str] | None = None,
    ) -> IssuedKey:
        """Create a 'pk_' key with the public rate-limit tier.

        Returns:
            The stored key plus its plaintext secret. This is the only
            time the secret is available.

        Raises:
            UnknownKeyEnvironmentError: If environment is not test/live.
        """
        return await self._generate(
            KeyClass.PUBLIC, tenant_id, environment, permissions
        )

    async def generate_secret_key(
        self,
        tenant_id: str,
        environment: str = "test",
        permissions: list[str] | None = None,
    ) -> IssuedKey:
        """Create an 'sk_' key with the secret rate-limit tier.

        Same contract as ``generate_public_key``.
        """
        return await self._generate(
            KeyClass.SECRET, tenant_id, environment, permissions
        )

    async def _generate(
        self,
        key_class: KeyClass,
        tenant_id: str,
        environment: str,
        permissions: list[str] | None,
    ) -> IssuedKey:
        env = parse_environment(environment)
        key_id = build_key_id(
            key_class,
            env,
            self._config.namespace,
            self._random_string(KEY_ID_RANDOM_LENGTH),
        )
        secret = self._random_string(SECRET_LENGTH)
        secret_hash = await asyncio.to_thread(self._hasher.hash, secret)

        api_key = ApiKey(
            tenant_id=tenant_id,
            key_id=key_id,
            secret_hash=secret_hash,
            permissions=list(permissions or []),
            rate_limits=self._config.rate_limits_for(key_class).model_dump(),
            environment=env.value,
            active=True,
        )
        self._session.add(api_key)
        await self._session.flush()

        logger.info(
            "api_key_issued",
            key_id=key_id,
            tenant_id=tenant_id,
            key_class=key_class.value,
            environment=env.value,
        )
        return IssuedKey(api_key=api_key, secret=secret)

    # ── Lookup & authentication ──

    async def find_active_by_key_id(self, key_id: str) -> ApiKey | None:
        stmt = select(ApiKey).where(ApiKey.key_id == key_id, ApiKey.active.is_(True))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def validate_key(self, key_id: str, secret: str) -> ApiKey | None:
        """Resolve and authenticate a presented key.

        Unknown id, inactive key and wrong secret all return ``None``
        and all cost one hash verification, so neither the result nor
        the latency tells the caller which check failed.
        """
        api_key = await self.find_active_by_key_id(key_id)
        if api_key is None:
            await asyncio.to_thread(
                self._hasher.verify, secret, self._hasher.dummy_digest
            )
            logger.debug("api_key_validation_failed", key_id=key_id)
            return None

        if not await asyncio.to_thread(self.verify_secret, api_key, secret):
            logger.debug("api_key_validation_failed", key_id=key_id)
            return None

        return api_key

    def verify_secret(self, api_key: ApiKey, secret: str) -> bool:
        return self._hasher.verify(secret, api_key.secret_hash)

    # ── Authorization ──

    def map_to_external_permissions(self, api_key: ApiKey) -> set[str]:
        """Translate the key's scopes into external permission names.

        Unmapped scopes are dropped; a scope may map to several names.
        """
        external: set[str] = set()
        for scope in api_key.permissions or []:
            mapped = self._config.permission_mapping.get(scope)
            if mapped is None:
                continue
            if isinstance(mapped, str):
                external.add(mapped)
            else:
                external.update(mapped)
        return external

    def is_expired(self, api_key: ApiKey) -> bool:
        """Always False: keys carry no expiry yet."""
        return False

    # ── Mutation ──

    async def update_last_used(self, api_key: ApiKey) -> None:
        """Stamp ``last_used_at``. Concurrent stamps may overwrite each other."""
        api_key.last_used_at = self._clock()
        await self._session.flush()

    async def activate(self, api_key: ApiKey) -> None:
        await self._set_active(api_key, True)

    async def deactivate(self, api_key: ApiKey) -> None:
        await self._set_active(api_key, False)

    async def set_active(self, key_id: str, active: bool) -> ApiKey:
        """Toggle a key by id, regardless of its current state.

        Raises:
            ApiKeyNotFoundError: If no key has this id.
        """
        stmt = select(ApiKey).where(ApiKey.key_id == key_id)
        result = await self._session.execute(stmt)
        api_key = result.scalar_one_or_none()
        if api_key is None:
            raise ApiKeyNotFoundError(key_id)
        await self._set_active(api_key, active)
        return api_key

    async def _set_active(self, api_key: ApiKey, active: bool) -> None:
        api_key.active = active
        await self._session.flush()
        logger.info("api_key_active_changed", key_id=api_key.key_id, active=active)

    # ── Tenant views ──

    async def list_active_keys_for_tenant(self, tenant_id: str) -> list[ApiKey]:
        """Active keys of a tenant, newest first."""
        stmt = (
            select(ApiKey)
            .where(ApiKey.tenant_id == tenant_id, ApiKey.active.is_(True))
            .order_by(ApiKey.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_tenant_key_stats(self, tenant_id: str) -> KeyStats:
        """Count a tenant's keys by state, class and environment."""
        stmt = select(
            func.count(),
            func.count().filter(ApiKey.active.is_(True)),
            func.count().filter(ApiKey.key_id.startswith("pk_", autoescape=True)),
            func.count().filter(ApiKey.key_id.startswith("sk_", autoescape=True)),
            func.count().filter(ApiKey.environment == "live"),
            func.count().filter(ApiKey.environment == "test"),
        ).where(ApiKey.tenant_id == tenant_id)
        result = await self._session.execute(stmt)
        total, active, public, secret, live, test = result.one()
        return KeyStats(
            total_keys=total,
            active_keys=active,
            public_keys=public,
            secret_keys=secret,
            live_keys=live,
            test_keys=test,
        )
