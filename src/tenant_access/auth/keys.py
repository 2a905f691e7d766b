"""API key identifiers, secrets and the one-time issuance result."""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from tenant_access.errors import UnknownKeyEnvironmentError

if TYPE_CHECKING:
    from tenant_access.storage.orm import ApiKey

ALPHANUMERIC = string.ascii_letters + string.digits
KEY_ID_RANDOM_LENGTH = 32
SECRET_LENGTH = 64


class KeyClass(StrEnum):
    """Key category; each class has its own default rate-limit tier."""

    PUBLIC = "public"
    SECRET = "secret"

    @property
    def prefix(self) -> str:
        return "pk" if self is KeyClass.PUBLIC else "sk"


class KeyEnvironment(StrEnum):
    """Isolation tag carried by a key. Not enforced here."""

    TEST = "test"
    LIVE = "live"


def parse_environment(value: str) -> KeyEnvironment:
    """Coerce a raw environment name.

    Raises:
        UnknownKeyEnvironmentError: If ``value`` is not 'test' or 'live'.
    """
    try:
        return KeyEnvironment(value)
    except ValueError:
        raise UnknownKeyEnvironmentError(value) from None


def generate_random_string(length: int) -> str:
    """Cryptographically secure alphanumeric string of ``length`` chars."""
    return "".join(secrets.choice(ALPHANUMERIC) for _ in range(length))


def build_key_id(
    key_class: KeyClass,
    environment: KeyEnvironment,
    namespace: str,
    random_part: str,
) -> str:
    """Assemble a public key identifier.

    Example: ``pk_live_wiiv_shop_<32 alphanumerics>``.
    """
    return f"{key_class.prefix}_{environment}_{namespace}_{random_part}"


@dataclass(frozen=True)
class IssuedKey:
    """A freshly created key together with its plaintext secret.

    Only generation returns this type; later lookups yield the bare
    ``ApiKey`` and the secret cannot be recovered from it.
    """

    api_key: ApiKey
    secret: str = field(repr=False)

    @property
    def key_id(self) -> str:
        return self.api_key.key_id
