"""One-way hashing of API key secrets."""

import secrets
from functools import lru_cache
from typing import Protocol

import bcrypt
import structlog

logger = structlog.get_logger()

# bcrypt only reads the first 72 bytes of its input.
BCRYPT_MAX_INPUT_BYTES = 72


class SecretHasher(Protocol):
    """One-way hash plus constant-time verification."""

    def hash(self, plaintext: str) -> str: ...

    def verify(self, plaintext: str, digest: str) -> bool: ...

    @property
    def dummy_digest(self) -> str:
        """Digest of an unknown secret, verified against on lookup misses."""
        ...


class BcryptSecretHasher:
    """bcrypt-backed ``SecretHasher``.

    ``checkpw`` compares digests in constant time. Inputs longer than
    bcrypt's 72-byte window are refused rather than silently truncated,
    so two secrets sharing a 72-byte prefix can never both verify.

    The dummy digest is hashed once, at construction, so a lookup miss
    costs exactly one ``verify`` like a wrong secret does. Share one
    instance across sessions (see ``get_hasher``).
    """

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds
        self._dummy_digest = self.hash(secrets.token_hex(32))

    @property
    def dummy_digest(self) -> str:
        return self._dummy_digest

    def hash(self, plaintext: str) -> str:
        """Hash ``plaintext`` with a fresh salt.

        Raises:
            ValueError: If ``plaintext`` exceeds 72 bytes once encoded.
        """
        encoded = plaintext.encode()
        if len(encoded) > BCRYPT_MAX_INPUT_BYTES:
            msg = f"Secret exceeds {BCRYPT_MAX_INPUT_BYTES} bytes"
            raise ValueError(msg)
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds)).decode()

    def verify(self, plaintext: str, digest: str) -> bool:
        encoded = plaintext.encode()
        if len(encoded) > BCRYPT_MAX_INPUT_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, digest.encode())
        except ValueError:
            logger.warning("secret_hash_unparseable")
            return False


@lru_cache(maxsize=None)
def get_hasher(rounds: int = 12) -> BcryptSecretHasher:
    """Process-wide hasher per work factor."""
    return BcryptSecretHasher(rounds=rounds)
