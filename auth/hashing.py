"""
auth/hashing.py -- One-way password hashing and verification (bcrypt).

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug probe
builds a password longer than 72 bytes, which bcrypt 4.x rejects outright.

Digest format: bcrypt's modular crypt string $2b$<cost>$<22-char salt><hash>.
The cost and salt travel inside the digest, so raising the work factor later
only affects new hashes -- existing digests keep verifying at their own cost.

Comparison: bcrypt.checkpw() recomputes the hash with the embedded salt and
compares in constant time. Never compare digests with ==.

Thread safety: CredentialHasher holds no mutable state and takes no lock, so
concurrent requests hash in parallel (bcrypt releases the GIL while hashing).
"""

from __future__ import annotations

import logging

import bcrypt

from core.config import MAX_BCRYPT_ROUNDS, MIN_BCRYPT_ROUNDS

logger = logging.getLogger("gatehouse.auth")

DEFAULT_ROUNDS = 10


class CredentialHasher:
    """Salted, slow password hashing with a fixed work factor.

    Usage:
        hasher = CredentialHasher(rounds=settings.bcrypt_rounds)
        digest = hasher.hash("Str0ng!Pass")
        hasher.verify("Str0ng!Pass", digest)  # True

    A bad work factor raises ValueError here, in the constructor, so a
    misconfiguration stops the app at startup instead of failing logins.
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        if not MIN_BCRYPT_ROUNDS <= rounds <= MAX_BCRYPT_ROUNDS:
            raise ValueError(f"bcrypt rounds must be between {MIN_BCRYPT_ROUNDS} and {MAX_BCRYPT_ROUNDS}, got {rounds}")
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt digest of plaintext with a fresh random salt.

        bcrypt only reads the first 72 bytes of the password. The registration
        form caps passwords at 100 characters, so multibyte input may be
        truncated; that is a property of the algorithm, not an error.
        """
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(_encode(plaintext), salt).decode("utf-8")

    def verify(self, plaintext: str, digest: str) -> bool:
        """Return True iff plaintext hashes to digest under digest's own salt and cost."""
        try:
            return bcrypt.checkpw(_encode(plaintext), digest.encode("utf-8"))
        except ValueError:
            # Unparseable stored digest (e.g. truncated column). Treated as a
            # mismatch so one corrupt row cannot take down the login page.
            logger.warning("Stored password hash is not a valid bcrypt digest")
            return False


def _encode(plaintext: str) -> bytes:
    # Recent bcrypt releases raise on passwords over 72 bytes instead of
    # truncating them. Keep the historical truncation.
    return plaintext.encode("utf-8")[:72]
