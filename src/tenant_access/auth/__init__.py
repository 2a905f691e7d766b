"""API key issuance, verification and authorization."""

from tenant_access.auth.hashing import BcryptSecretHasher, SecretHasher, get_hasher
from tenant_access.auth.key_store import KeyStore, KeyStoreConfig
from tenant_access.auth.keys import IssuedKey, KeyClass, KeyEnvironment

__all__ = [
    "BcryptSecretHasher",
    "IssuedKey",
    "KeyClass",
    "KeyEnvironment",
    "KeyStore",
    "KeyStoreConfig",
    "SecretHasher",
    "get_hasher",
]
