"""
Identity boundary and credential sign-in.

The form engine only needs ``current_user_id()``; AuthService adds an
in-process email/password sign-in with the user-facing error messages
shown on the authentication screen.
"""

import os
import time
import re
import hmac
import uuid
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from config.settings import settings, parse_auth_users
from backend.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[A-Z0-9a-z._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,64}")
PHONE_PATTERN = re.compile(r"\+?[1-9]\d{1,14}")

PBKDF2_ITERATIONS = 100_000


class AuthErrorCode(str, Enum):
    MISSING_CREDENTIALS = "missing_credentials"
    INVALID_IDENTIFIER = "invalid_identifier"
    INVALID_EMAIL = "invalid_email"
    USER_NOT_FOUND = "user_not_found"
    WRONG_PASSWORD = "wrong_password"
    USER_DISABLED = "user_disabled"
    TOO_MANY_REQUESTS = "too_many_requests"
    PHONE_AUTH_UNSUPPORTED = "phone_auth_unsupported"
    EMAIL_IN_USE = "email_in_use"


AUTH_ERROR_MESSAGES = {
    AuthErrorCode.MISSING_CREDENTIALS: "Please enter both email/phone and password",
    AuthErrorCode.INVALID_IDENTIFIER: "Please enter a valid email address or phone number",
    AuthErrorCode.INVALID_EMAIL: "Invalid email address",
    AuthErrorCode.USER_NOT_FOUND: "No account found with this email",
    AuthErrorCode.WRONG_PASSWORD: "Incorrect password",
    AuthErrorCode.USER_DISABLED: "This account has been disabled",
    AuthErrorCode.TOO_MANY_REQUESTS: "Too many failed attempts. Please try again later",
    AuthErrorCode.PHONE_AUTH_UNSUPPORTED: "Phone authentication requires OTP verification, which is not available. Please sign in with email.",
    AuthErrorCode.EMAIL_IN_USE: "An account with this email already exists",
}


class AuthError(Exception):
    """Sign-in or registration failure with a user-facing message."""

    def __init__(self, code: AuthErrorCode):
        self.code = code
        self.message = AUTH_ERROR_MESSAGES[code]
        super().__init__(self.message)


class IdentityProvider(ABC):
    """Boundary answering who is signed in."""

    @abstractmethod
    def current_user_id(self) -> Optional[str]:
        ...


class StaticIdentity(IdentityProvider):
    """Identity fixed at construction (one per API session)."""

    def __init__(self, user_id: Optional[str]):
        self.user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self.user_id


@dataclass
class AuthUser:
    uid: str
    email: str
    password_salt: bytes
    password_hash: bytes
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    is_email_verified: bool = False
    disabled: bool = False


def _hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)


def is_email_identifier(value: str) -> bool:
    return EMAIL_PATTERN.fullmatch(value) is not None


def is_phone_identifier(value: str) -> bool:
    return PHONE_PATTERN.fullmatch(value) is not None


class AuthService(IdentityProvider):
    """
    Email/password accounts held in memory.

    Accounts are seeded from the AUTH_USERS setting unless an explicit
    mapping is given. Sign-in attempts are rate limited per identifier,
    so failures against one account never block another.
    """

    def __init__(
        self,
        users: Optional[Dict[str, str]] = None,
        max_attempts: Optional[int] = None,
        window_minutes: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._users: Dict[str, AuthUser] = {}
        self._current: Optional[AuthUser] = None
        self.max_attempts = max_attempts or settings.SIGN_IN_MAX_ATTEMPTS
        self.window_minutes = window_minutes or settings.SIGN_IN_WINDOW_MINUTES
        self._clock = clock
        self._limiters: Dict[str, RateLimiter] = {}

        seed = users if users is not None else parse_auth_users(settings.AUTH_USERS)
        for email, password in seed.items():
            self.register(email, password)

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._current

    @property
    def is_authenticated(self) -> bool:
        return self._current is not None

    def current_user_id(self) -> Optional[str]:
        return self._current.uid if self._current else None

    def register(self, email: str, password: str, display_name: Optional[str] = None) -> AuthUser:
        """Create an account and return it."""
        email = email.strip().lower()
        if not is_email_identifier(email):
            raise AuthError(AuthErrorCode.INVALID_EMAIL)
        if email in self._users:
            raise AuthError(AuthErrorCode.EMAIL_IN_USE)
        if not password:
            raise AuthError(AuthErrorCode.MISSING_CREDENTIALS)

        salt = os.urandom(16)
        user = AuthUser(
            uid=uuid.uuid4().hex[:28],
            email=email,
            password_salt=salt,
            password_hash=_hash_password(password, salt),
            display_name=display_name,
        )
        self._users[email] = user
        return user

    def disable_user(self, email: str) -> bool:
        user = self._users.get(email.strip().lower())
        if user is None:
            return False
        user.disabled = True
        return True

    def get_user(self, uid: str) -> Optional[AuthUser]:
        for user in self._users.values():
            if user.uid == uid:
                return user
        return None

    def sign_in(self, email_or_phone: str, password: str) -> AuthUser:
        """
        Sign in with an email (or phone) and password.

        Raises:
            AuthError: with a code and user-facing message on any failure
        """
        identifier = (email_or_phone or "").strip()
        if not identifier or not password:
            raise AuthError(AuthErrorCode.MISSING_CREDENTIALS)

        key = identifier.lower()
        # Forget identifiers whose window has emptied
        self._limiters = {k: v for k, v in self._limiters.items() if v.attempts}
        if not self.limiter_for(key).is_allowed():
            logger.warning("[Auth] Sign-in rate limit reached for an identifier")
            raise AuthError(AuthErrorCode.TOO_MANY_REQUESTS)

        if is_email_identifier(identifier):
            user = self._sign_in_with_email(identifier.lower(), password)
        elif is_phone_identifier(identifier):
            raise AuthError(AuthErrorCode.PHONE_AUTH_UNSUPPORTED)
        else:
            raise AuthError(AuthErrorCode.INVALID_IDENTIFIER)

        self._current = user
        self._limiters.pop(key, None)
        logger.info(f"[Auth] Signed in user {user.uid}")
        return user

    def limiter_for(self, identifier: str) -> RateLimiter:
        """Sign-in limiter for one normalized identifier."""
        key = identifier.strip().lower()
        limiter = self._limiters.get(key)
        if limiter is None:
            limiter = RateLimiter(
                max_attempts=self.max_attempts,
                window_minutes=self.window_minutes,
                clock=self._clock,
            )
            self._limiters[key] = limiter
        return limiter

    def _sign_in_with_email(self, email: str, password: str) -> AuthUser:
        user = self._users.get(email)
        if user is None:
            raise AuthError(AuthErrorCode.USER_NOT_FOUND)
        if user.disabled:
            raise AuthError(AuthErrorCode.USER_DISABLED)
        if not hmac.compare_digest(user.password_hash, _hash_password(password, user.password_salt)):
            raise AuthError(AuthErrorCode.WRONG_PASSWORD)
        return user

    def sign_out(self) -> None:
        if self._current:
            logger.info(f"[Auth] Signed out user {self._current.uid}")
        self._current = None
