"""
tests/fakes.py -- In-memory stand-ins for the credential store and hasher.

InMemoryCredentialStore implements the CredentialStore protocol with a dict
and a lock. The lock plays the part of the database's UNIQUE index: two
concurrent inserts with one username cannot both succeed.

Failure injection: add a method name to fail_on and that method raises
CredentialStoreError. Set omit_insert_id to make insert() report no id, so the
strategy has to fall back to last_inserted_id().
"""

from __future__ import annotations

import threading
from collections import Counter

from auth.hashing import CredentialHasher
from auth.models import Credential, UserRecord
from auth.store import CredentialStoreError, DuplicateKeyError, InsertResult


class InMemoryCredentialStore:
    def __init__(self) -> None:
        self._rows: dict[int, Credential] = {}
        self._next_id = 1
        self._lock = threading.Lock()
        self._local = threading.local()
        self.calls: Counter = Counter()
        self.fail_on: set[str] = set()
        self.omit_insert_id = False

    def _enter(self, method: str) -> None:
        self.calls[method] += 1
        if method in self.fail_on:
            raise CredentialStoreError(f"{method} failed (injected)", ConnectionError("db down"))

    def find_by_username(self, username: str) -> Credential | None:
        self._enter("find_by_username")
        with self._lock:
            return next((c for c in self._rows.values() if c.username == username), None)

    def find_by_id(self, user_id: int) -> UserRecord | None:
        self._enter("find_by_id")
        with self._lock:
            row = self._rows.get(user_id)
        if row is None:
            return None
        return UserRecord(id=row.id, username=row.username, email=row.email)

    def insert(self, credential: Credential) -> InsertResult:
        self._enter("insert")
        with self._lock:
            for existing in self._rows.values():
                if existing.username == credential.username:
                    raise DuplicateKeyError("username")
                if existing.email == credential.email:
                    raise DuplicateKeyError("email")
            new_id = self._next_id
            self._next_id += 1
            self._rows[new_id] = Credential(
                id=new_id,
                username=credential.username,
                email=credential.email,
                password_hash=credential.password_hash,
            )
        self._local.last_id = new_id
        return InsertResult(new_id=None if self.omit_insert_id else new_id)

    def last_inserted_id(self) -> int | None:
        self._enter("last_inserted_id")
        return getattr(self._local, "last_id", None)

    def delete(self, user_id: int) -> None:
        with self._lock:
            self._rows.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._rows)


class CountingHasher(CredentialHasher):
    """CredentialHasher that records how often it is asked to hash and verify."""

    def __init__(self, rounds: int = 4) -> None:
        super().__init__(rounds=rounds)
        self.hash_calls = 0
        self.verify_calls = 0

    def hash(self, plaintext: str) -> str:
        self.hash_calls += 1
        return super().hash(plaintext)

    def verify(self, plaintext: str, digest: str) -> bool:
        self.verify_calls += 1
        return super().verify(plaintext, digest)
