"""Unit tests for auth/hashing.py -- bcrypt CredentialHasher.

Covers:
- hash/verify agreement for the right password, rejection of a wrong one
- salting: two hashes of one password differ and both verify
- the work factor is embedded in the digest, and old digests keep verifying
  after the configured cost changes
- invalid work factors fail at construction
- an unparseable stored digest verifies as False instead of raising
"""

import pytest

from auth.hashing import CredentialHasher


@pytest.fixture
def fast_hasher() -> CredentialHasher:
    return CredentialHasher(rounds=4)


@pytest.mark.parametrize("password", ["Str0ng!Pass", "", "pässwörd-ünïcode", "x" * 100])
def test_verify_accepts_the_hashed_password(fast_hasher: CredentialHasher, password: str) -> None:
    assert fast_hasher.verify(password, fast_hasher.hash(password)) is True


def test_verify_rejects_a_different_password(fast_hasher: CredentialHasher) -> None:
    digest = fast_hasher.hash("Str0ng!Pass")
    assert fast_hasher.verify("Str0ng!Pas", digest) is False
    assert fast_hasher.verify("str0ng!pass", digest) is False
    assert fast_hasher.verify("", digest) is False


def test_same_password_hashes_to_different_digests(fast_hasher: CredentialHasher) -> None:
    first = fast_hasher.hash("Str0ng!Pass")
    second = fast_hasher.hash("Str0ng!Pass")
    assert first != second
    assert fast_hasher.verify("Str0ng!Pass", first)
    assert fast_hasher.verify("Str0ng!Pass", second)


def test_digest_is_not_the_plaintext(fast_hasher: CredentialHasher) -> None:
    digest = fast_hasher.hash("Str0ng!Pass")
    assert "Str0ng!Pass" not in digest
    assert digest.startswith("$2")


def test_digest_embeds_work_factor() -> None:
    assert CredentialHasher(rounds=4).hash("pw").split("$")[2] == "04"
    assert CredentialHasher(rounds=5).hash("pw").split("$")[2] == "05"


def test_old_digest_verifies_after_cost_change() -> None:
    """Raising the work factor must not lock out existing accounts."""
    old_digest = CredentialHasher(rounds=4).hash("Str0ng!Pass")
    assert CredentialHasher(rounds=6).verify("Str0ng!Pass", old_digest)


def test_default_work_factor_is_ten() -> None:
    assert CredentialHasher().rounds == 10


@pytest.mark.parametrize("rounds", [0, 3, 32, -1])
def test_invalid_work_factor_fails_at_construction(rounds: int) -> None:
    with pytest.raises(ValueError):
        CredentialHasher(rounds=rounds)


@pytest.mark.parametrize("digest", ["", "not-a-bcrypt-hash", "$2b$04$tooshort"])
def test_malformed_digest_does_not_verify(fast_hasher: CredentialHasher, digest: str) -> None:
    assert fast_hasher.verify("Str0ng!Pass", digest) is False


def test_passwords_past_72_bytes_are_accepted(fast_hasher: CredentialHasher) -> None:
    long_password = "Aa1!" * 30  # 120 bytes
    assert fast_hasher.verify(long_password, fast_hasher.hash(long_password))
