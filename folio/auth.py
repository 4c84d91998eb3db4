"""
Single-account sign-in for the site owner.

One account ({username, password}) and one boolean session flag, both kept
in the store. Credentials are compared as plain text; this is a local,
single-device gate and nothing more.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from folio.store import PersistentStore

log = logging.getLogger(__name__)

SESSION_KEY = "isAuthed"
ACCOUNT_KEY = "auth:account"

BAD_LOGIN = "Incorrect username or password"


class AuthError(str, Enum):
    INVALID_INPUT = "invalid_input"
    INVALID_CREDENTIALS = "invalid_credentials"
    USERNAME_REQUIRED = "username_required"
    PASSWORD_REQUIRED = "password_required"
    PASSWORD_MISMATCH = "password_mismatch"
    ACCOUNT_EXISTS = "account_exists"
    INTERNAL = "internal"


MESSAGES = {
    AuthError.INVALID_INPUT: BAD_LOGIN,
    AuthError.INVALID_CREDENTIALS: BAD_LOGIN,
    AuthError.USERNAME_REQUIRED: "Username required",
    AuthError.PASSWORD_REQUIRED: "Password required",
    AuthError.PASSWORD_MISMATCH: "Passwords do not match",
    AuthError.ACCOUNT_EXISTS: "Account already exists",
    AuthError.INTERNAL: "Internal auth error",
}


@dataclass(frozen=True)
class AuthResult:
    ok: bool
    error: AuthError | None = None
    created: bool = False
    detail: str | None = None

    @property
    def message(self) -> str:
        if self.detail:
            return self.detail
        return MESSAGES.get(self.error, "") if self.error else ""

    @classmethod
    def fail(cls, error: AuthError, detail: str | None = None) -> "AuthResult":
        return cls(ok=False, error=error, detail=detail)


def _clean(value) -> str:
    return str(value if value is not None else "").strip()


class AuthGate:
    def __init__(self, store: PersistentStore) -> None:
        self.store = store
        self._session = store.bind(SESSION_KEY, False)
        self._account = store.bind(ACCOUNT_KEY, None)

    # -- state --------------------------------------------------------------
    @property
    def is_authed(self) -> bool:
        return self._session.value is True

    @property
    def account(self) -> dict | None:
        acc = self._account.value
        if isinstance(acc, dict) and "username" in acc and "password" in acc:
            return acc
        return None

    @property
    def has_account(self) -> bool:
        return self.account is not None

    @property
    def username(self) -> str | None:
        acc = self.account
        return acc["username"] if acc else None

    # -- operations ---------------------------------------------------------
    def login(self, username, password) -> AuthResult:
        try:
            user = _clean(username)
            secret = _clean(password)
            if not user or not secret:
                return AuthResult.fail(AuthError.INVALID_INPUT)

            acc = self.account
            if acc and user == acc["username"] and secret == acc["password"]:
                self._session.set(True)
                return AuthResult(ok=True)
            # same answer for "no account" and "wrong password"
            return AuthResult.fail(AuthError.INVALID_CREDENTIALS)
        except Exception:
            log.exception("login failed unexpectedly")
            return AuthResult.fail(AuthError.INTERNAL)

    def create_account(self, username, password, confirm=None) -> AuthResult:
        """
        Create the one account and sign in.

        • Username and password are trimmed and must be non-empty.
        • *confirm*, when given, must match the password.
        • Any stored account blocks creation, whatever its username.
        """
        try:
            user = _clean(username)
            secret = _clean(password)
            if not user:
                return AuthResult.fail(AuthError.USERNAME_REQUIRED)
            if not secret:
                return AuthResult.fail(AuthError.PASSWORD_REQUIRED)
            if confirm is not None and _clean(confirm) != secret:
                return AuthResult.fail(AuthError.PASSWORD_MISMATCH)

            if self.has_account:
                return AuthResult.fail(AuthError.ACCOUNT_EXISTS)

            self._account.set({"username": user, "password": secret})
            self._session.set(True)
            return AuthResult(ok=True, created=True)
        except Exception:
            log.exception("account creation failed unexpectedly")
            return AuthResult.fail(AuthError.INTERNAL, "Failed to create account")

    def logout(self) -> None:
        self._session.set(False)

    def reset(self) -> None:
        """Forget the account and the session flag."""
        self._account.reset()
        self._session.reset()
