# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Account lifecycle:  Unregistered -> Active <-> Deactivated

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Login never tells the caller whether the email exists: unknown email and
  wrong password raise the same InvalidCredentialsError, and an unknown email
  still pays for one bcrypt check so response timing matches
- The deactivated check runs only after the password matched
- Tokens are issued by TokenService; the refresh token is stored in Redis
"""

from __future__ import annotations

import re

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User
from ..models.users import details_for_role
from ..validation import ValidationError, ConflictError, NotFoundError, validate_registration, EMAIL_RE, PHONE_RE
from .token_service import TokenService, TokenPair, TokenClaims, InvalidTokenError
from livemart.time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


class DuplicateEmailError(ConflictError):
    """Raised when the email (or phone) is already registered."""


class InvalidCredentialsError(Exception):
    """Unknown email or wrong password; deliberately indistinguishable."""


class AccountDeactivatedError(Exception):
    """Credentials are right but the account has been closed."""


INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash password using bcrypt. Password is validated for strength before hashing."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is constant-time; any malformed hash counts as a mismatch."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except (ValueError, TypeError):
        return False


class AuthService:
    def __init__(self, token_service: TokenService, *, bcrypt_rounds: int = 12):
        self.tokens = token_service
        self.bcrypt_rounds = bcrypt_rounds
        self._dummy_hash: str | None = None

    def _timing_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
            self._dummy_hash = bcrypt.hashpw(b"timing-equalizer", salt).decode("utf-8")
        return self._dummy_hash

    def _ensure_unique(self, email: str, phone: str) -> None:
        if db.session.query(User.id).filter_by(email=email).first():
            raise DuplicateEmailError("User with this email already exists")
        if db.session.query(User.id).filter_by(phone=phone).first():
            raise DuplicateEmailError("User with this phone number already exists")

    def create_user(
        self,
        *,
        email: str,
        phone: str,
        name: str,
        password: str,
        role: str,
        details_payload: dict | None = None,
        is_verified: bool = False,
    ) -> User:
        """
        Persist a new account. Used by register() and by the CLI for admins.

        Raises:
            ValidationError: bad role fields or weak password
            DuplicateEmailError: email or phone already taken
        """
        email = email.strip().lower()
        if not EMAIL_RE.match(email):
            raise ValidationError("Please provide a valid email address")
        if not PHONE_RE.match(phone):
            raise ValidationError("Please provide a valid phone number")
        self._ensure_unique(email, phone)
        details = details_for_role(role, details_payload or {})
        password_hash = hash_password(password, self.bcrypt_rounds)

        user = User(
            email=email,
            phone=phone,
            name=name,
            password_hash=password_hash,
            role=role,
            is_active=True,
            is_verified=is_verified,
        )
        user.details = details

        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            # lost a race with a concurrent registration for the same email/phone
            db.session.rollback()
            self._ensure_unique(email, phone)
            raise DuplicateEmailError("User with this email or phone number already exists")
        return user

    def register(self, data: dict) -> tuple[User, TokenPair]:
        cleaned = validate_registration(data)
        user = self.create_user(
            email=cleaned["email"],
            phone=cleaned["phone"],
            name=cleaned["name"],
            password=cleaned["password"],
            role=cleaned["role"],
            details_payload=data,
        )
        tokens = self.tokens.issue_and_store(user.id, user.email, user.role)
        return user, tokens

    def login(self, email: str, password: str) -> tuple[User, TokenPair]:
        email = (email or "").strip().lower()
        password = password or ""

        user = db.session.query(User).filter_by(email=email).first()
        if user is None:
            verify_password(password, self._timing_dummy_hash())
            raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)

        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)

        if not user.is_active:
            raise AccountDeactivatedError("Account is deactivated. Please contact support.")

        now = utcnow()
        user.last_login_at = now
        user.last_active_at = now
        db.session.commit()

        tokens = self.tokens.issue_and_store(user.id, user.email, user.role)
        return user, tokens

    def refresh(self, refresh_token: str) -> tuple[User, TokenPair]:
        claims = self.tokens.verify_refresh_token(refresh_token)

        user = db.session.get(User, claims.user_id)
        if user is None or not user.is_active:
            raise InvalidTokenError("User not found or inactive")

        tokens = self.tokens.rotate(refresh_token, email=user.email, role=user.role)
        return user, tokens

    def authenticate_request(self, access_token: str) -> tuple[User, TokenClaims]:
        """Resolve the bearer of an access token; inactive or deleted users are rejected."""
        claims = self.tokens.authenticate(access_token)
        user = db.session.get(User, claims.user_id)
        if user is None or not user.is_active:
            raise InvalidTokenError("User not found or inactive")

        user.last_active_at = utcnow()
        db.session.commit()
        return user, claims

    def logout(self, user_id: int, access_token: str) -> None:
        self.tokens.revoke(access_token)
        self.tokens.revoke_all(user_id)

    def logout_all(self, user_id: int) -> None:
        self.tokens.revoke_all(user_id)

    def get_user(self, user_id: int) -> User:
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def deactivate(self, user_id: int) -> User:
        """Soft-close an account and drop its refresh token."""
        user = self.get_user(user_id)
        if not user.is_active:
            raise ConflictError("Account is already deactivated")
        user.is_active = False
        user.deactivated_at = utcnow()
        db.session.commit()
        self.tokens.revoke_all(user.id)
        return user

    def reactivate(self, user_id: int) -> User:
        user = self.get_user(user_id)
        if user.is_active:
            raise ConflictError("Account is already active")
        user.is_active = True
        user.deactivated_at = None
        db.session.commit()
        return user
