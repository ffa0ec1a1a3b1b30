"""
Password hashing.

bcrypt with a fresh salt per password. The salt is also embedded in the
hash; it is kept separately so the users table matches the stored layout.
"""

from abc import ABC, abstractmethod
from typing import NamedTuple

import bcrypt


ROUNDS = 12
MAX_PASSWORD_BYTES = 72  # bcrypt ignores or rejects anything longer


class PasswordHash(NamedTuple):
    hash: str
    salt: str


class CredentialStore(ABC):
    """Hashes and verifies passwords. Never stores anything itself."""

    @abstractmethod
    def hash(self, password: str) -> PasswordHash:
        pass

    @abstractmethod
    def verify(self, password: str, stored_hash: str, stored_salt: str) -> bool:
        pass


class BcryptCredentialStore(CredentialStore):

    def __init__(self, rounds: int = ROUNDS):
        self._rounds = rounds

    def hash(self, password: str) -> PasswordHash:
        salt = bcrypt.gensalt(rounds=self._rounds)
        password_hash = bcrypt.hashpw(password.encode("utf-8"), salt)
        return PasswordHash(
            hash=password_hash.decode("utf-8"),
            salt=salt.decode("utf-8"),
        )

    def verify(self, password: str, stored_hash: str, stored_salt: str) -> bool:
        """False for a wrong password or a malformed stored hash."""
        try:
            return bcrypt.checkpw(password.encode("utf-8"), stored_hash.encode("utf-8"))
        except ValueError:
            return False
