"""
Authentication Service

Registration, login and password change on top of a UserStore and a
CredentialStore.

DESIGN DECISION: There is no "current user". Callers hold on to the User
returned by login and pass its id explicitly to every ledger call.
"""

import re
from typing import TYPE_CHECKING, Optional

import structlog

from finledger.models.ledger import User
from finledger.services.auth.credentials import (
    MAX_PASSWORD_BYTES,
    BcryptCredentialStore,
    CredentialStore,
)
from finledger.services.storage.interface import DuplicateError, UserStore

if TYPE_CHECKING:
    from finledger.audit import AuditLogger


logger = structlog.get_logger(__name__)

CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")


class RegistrationError(ValueError):
    """Registration input was rejected."""
    pass


class UsernameTakenError(RegistrationError, DuplicateError):
    """The requested username already exists."""
    pass


class AuthService:

    def __init__(
        self,
        user_store: UserStore,
        credentials: Optional[CredentialStore] = None,
        audit_logger: Optional["AuditLogger"] = None,
        min_password_length: int = 6,
    ):
        self._users = user_store
        self._credentials = credentials or BcryptCredentialStore()
        self._audit = audit_logger
        self._min_password_length = min_password_length

    def _check_password(self, password: Optional[str]) -> None:
        if password is None or len(password) < self._min_password_length:
            raise RegistrationError(
                f"Password must be at least {self._min_password_length} characters long"
            )
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise RegistrationError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes long"
            )

    def register(
        self,
        username: str,
        password: str,
        email: Optional[str] = None,
        currency_code: str = "USD",
    ) -> User:
        """
        Create a new user.

        Raises:
            RegistrationError: empty username, short password or bad currency
            UsernameTakenError: username already registered
        """
        if username is None or not username.strip():
            raise RegistrationError("Username cannot be empty")
        username = username.strip()
        self._check_password(password)
        if self._users.exists(username):
            raise UsernameTakenError("Username already exists")

        code = (currency_code or "").strip().upper()
        if not CURRENCY_CODE.match(code):
            raise RegistrationError(f"Invalid currency code: {currency_code}")

        hashed = self._credentials.hash(password)
        user = User(username=username, email=email, base_currency=code)
        try:
            user_id = self._users.insert(user, hashed.hash, hashed.salt)
        except DuplicateError as e:
            # Lost a race with a concurrent registration
            raise UsernameTakenError("Username already exists") from e

        logger.info("user_registered", user_id=user_id, username=username)
        if self._audit:
            self._audit.log_user_registered(user_id, username)
        return user.model_copy(update={"id": user_id})

    def login(self, username: str, password: str) -> Optional[User]:
        """Return the user on success, None on any failure."""
        if username is None or password is None:
            return None

        stored = self._users.get_credentials(username)
        if stored is None or not self._credentials.verify(
            password, stored.password_hash, stored.salt
        ):
            logger.warning("login_failed", username=username)
            if self._audit:
                self._audit.log_login_failed(username)
            return None

        return self._users.find_by_id(stored.user_id)

    def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
    ) -> bool:
        """
        Replace a user's password after re-checking the current one.

        Returns:
            False if the user is unknown or current_password is wrong

        Raises:
            RegistrationError: new password is too short
        """
        user = self._users.find_by_id(user_id)
        if user is None:
            return False

        stored = self._users.get_credentials(user.username)
        if stored is None or not self._credentials.verify(
            current_password, stored.password_hash, stored.salt
        ):
            return False

        self._check_password(new_password)
        hashed = self._credentials.hash(new_password)
        self._users.update_credentials(user_id, hashed.hash, hashed.salt)

        if self._audit:
            self._audit.log_password_changed(user_id)
        return True
