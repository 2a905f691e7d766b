"""Tests for key identifiers, random generation and secret hashing."""

from __future__ import annotations

import re

import pytest

from tenant_access.auth.hashing import BcryptSecretHasher, get_hasher
from tenant_access.auth.keys import (
    ALPHANUMERIC,
    IssuedKey,
    KeyClass,
    KeyEnvironment,
    build_key_id,
    generate_random_string,
    parse_environment,
)
from tenant_access.errors import UnknownKeyEnvironmentError
from tenant_access.storage.orm import ApiKey


class TestGenerateRandomString:
    def test_length_and_alphabet(self) -> None:
        value = generate_random_string(64)
        assert len(value) == 64
        assert set(value) <= set(ALPHANUMERIC)

    def test_uniqueness(self) -> None:
        """Independent draws do not collide."""
        values = {generate_random_string(32) for _ in range(200)}
        assert len(values) == 200


class TestBuildKeyId:
    def test_public_live(self) -> None:
        key_id = build_key_id(KeyClass.PUBLIC, KeyEnvironment.LIVE, "ns", "a" * 32)
        assert key_id == f"pk_live_ns_{'a' * 32}"

    def test_secret_test(self) -> None:
        key_id = build_key_id(KeyClass.SECRET, KeyEnvironment.TEST, "wiiv_shop", "Z9")
        assert key_id == "sk_test_wiiv_shop_Z9"


class TestParseEnvironment:
    @pytest.mark.parametrize("raw", ["test", "live"])
    def test_known(self, raw: str) -> None:
        assert parse_environment(raw) == KeyEnvironment(raw)

    def test_unknown_raises(self) -> None:
        with pytest.raises(UnknownKeyEnvironmentError, match="staging"):
            parse_environment("staging")

    def test_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_environment("LIVE")


class TestIssuedKey:
    def test_repr_hides_secret(self) -> None:
        issued = IssuedKey(api_key=ApiKey(key_id="pk_test_x"), secret="s3cr3t")
        assert "s3cr3t" not in repr(issued)
        assert issued.key_id == "pk_test_x"


class TestBcryptSecretHasher:
    @pytest.fixture()
    def hasher(self) -> BcryptSecretHasher:
        return BcryptSecretHasher(rounds=4)

    def test_hash_is_not_plaintext(self, hasher: BcryptSecretHasher) -> None:
        digest = hasher.hash("plain")
        assert digest != "plain"
        assert re.match(r"^\$2[aby]\$04\$", digest)

    def test_salted(self, hasher: BcryptSecretHasher) -> None:
        assert hasher.hash("plain") != hasher.hash("plain")

    def test_verify_roundtrip(self, hasher: BcryptSecretHasher) -> None:
        digest = hasher.hash("plain")
        assert hasher.verify("plain", digest) is True
        assert hasher.verify("plaim", digest) is False

    def test_verify_malformed_digest(self, hasher: BcryptSecretHasher) -> None:
        """An unparseable stored hash fails closed."""
        assert hasher.verify("plain", "not-a-bcrypt-hash") is False

    def test_overlong_secret_rejected(self, hasher: BcryptSecretHasher) -> None:
        """Inputs beyond bcrypt's 72-byte window never verify."""
        base = "x" * 72
        digest = hasher.hash(base)
        assert hasher.verify(base + "tail", digest) is False
        with pytest.raises(ValueError):
            hasher.hash(base + "tail")

    def test_dummy_digest_fixed_per_instance(
        self, hasher: BcryptSecretHasher
    ) -> None:
        """Built once at construction; nothing presented ever matches it."""
        assert hasher.dummy_digest == hasher.dummy_digest
        assert re.match(r"^\$2[aby]\$04\$", hasher.dummy_digest)
        assert hasher.verify("x" * 64, hasher.dummy_digest) is False

    def test_get_hasher_shared_per_rounds(self) -> None:
        assert get_hasher(4) is get_hasher(4)
        assert get_hasher(4).dummy_digest == get_hasher(4).dummy_digest
        assert get_hasher(5) is not get_hasher(4)
