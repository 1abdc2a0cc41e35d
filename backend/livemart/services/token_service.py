# Overview: Service-layer operations for JWT issuance, verification, rotation and revocation.

"""
Token Service

Issues access/refresh JWT pairs and enforces refresh-token rotation.

TOKENS:
- access token: short-lived (JWT_ACCESS_TTL_SECONDS), signed with JWT_ACCESS_SECRET
- refresh token: long-lived (JWT_REFRESH_TTL_SECONDS), signed with JWT_REFRESH_SECRET
- both carry sub (user id), email, role, type, iat, exp and a random jti

ROTATION:
- the refresh token stored in the TokenStore is the only one honored
- rotate() verifies the presented token, compares it with the stored one and
  overwrites the stored value with the newly issued token
- a valid-but-not-current refresh token is a replay: TokenMismatchError

REVOCATION:
- revoke(access_token) blacklists it until its own exp
- revoke_all(user_id) drops the stored refresh token (all devices must log in again)
"""

from __future__ import annotations

import hmac
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError

from .token_store import TokenStore
from livemart.time_utils import utcnow, epoch_seconds


ACCESS = "access"
REFRESH = "refresh"


class TokenError(Exception):
    """Base class for token failures; always a 401 at the HTTP boundary."""


class InvalidTokenError(TokenError):
    """Malformed, expired, wrongly typed, revoked, or orphaned token."""


class TokenMismatchError(TokenError):
    """Refresh token is genuine but is not the one currently stored (reuse/theft)."""


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
        }


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    email: str
    role: str
    token_type: str
    issued_at: int
    expires_at: int
    jti: str

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenClaims":
        try:
            return cls(
                user_id=int(payload["sub"]),
                email=payload["email"],
                role=payload["role"],
                token_type=payload["type"],
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
                jti=payload["jti"],
            )
        except (KeyError, TypeError, ValueError):
            raise InvalidTokenError("Invalid token")


class TokenService:
    def __init__(
        self,
        store: TokenStore,
        *,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl_seconds: int = 900,
        refresh_ttl_seconds: int = 7 * 24 * 3600,
        clock: Callable = utcnow,
    ):
        self.store = store
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.algorithm = algorithm
        self.access_ttl_seconds = access_ttl_seconds
        self.refresh_ttl_seconds = refresh_ttl_seconds
        self.clock = clock

    @classmethod
    def from_config(cls, config, store: TokenStore) -> "TokenService":
        return cls(
            store,
            access_secret=config["JWT_ACCESS_SECRET"],
            refresh_secret=config["JWT_REFRESH_SECRET"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            access_ttl_seconds=config.get("JWT_ACCESS_TTL_SECONDS", 900),
            refresh_ttl_seconds=config.get("JWT_REFRESH_TTL_SECONDS", 7 * 24 * 3600),
        )

    def _encode(self, user_id: int, email: str, role: str, token_type: str) -> str:
        if token_type == ACCESS:
            secret, ttl = self.access_secret, self.access_ttl_seconds
        else:
            secret, ttl = self.refresh_secret, self.refresh_ttl_seconds
        now = self.clock()
        claims = {
            "sub": str(user_id),
            "email": email,
            "role": role,
            "type": token_type,
            "iat": epoch_seconds(now),
            "exp": epoch_seconds(now + timedelta(seconds=ttl)),
            # jti keeps two pairs issued within the same second distinct
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(claims, secret, algorithm=self.algorithm)

    def _decode(self, token: str, token_type: str) -> TokenClaims:
        if not token or not isinstance(token, str):
            raise InvalidTokenError("Token is required")
        secret = self.access_secret if token_type == ACCESS else self.refresh_secret
        try:
            payload = jwt.decode(token, secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise InvalidTokenError("Token has expired")
        except JWTError:
            raise InvalidTokenError("Invalid token")

        claims = TokenClaims.from_payload(payload)
        if claims.token_type != token_type:
            raise InvalidTokenError("Invalid token type")
        return claims

    def issue(self, user_id: int, email: str, role: str) -> TokenPair:
        """Create a fresh pair. Persisting the refresh token is the caller's job."""
        return TokenPair(
            access_token=self._encode(user_id, email, role, ACCESS),
            refresh_token=self._encode(user_id, email, role, REFRESH),
            expires_in=self.access_ttl_seconds,
        )

    def store_refresh_token(self, user_id: int, refresh_token: str) -> None:
        self.store.store_refresh_token(user_id, refresh_token, self.refresh_ttl_seconds)

    def issue_and_store(self, user_id: int, email: str, role: str) -> TokenPair:
        pair = self.issue(user_id, email, role)
        self.store_refresh_token(user_id, pair.refresh_token)
        return pair

    def verify_refresh_token(self, token: str) -> TokenClaims:
        return self._decode(token, REFRESH)

    def authenticate(self, access_token: str) -> TokenClaims:
        """Verify an access token presented on a request; blacklisted tokens are rejected."""
        claims = self._decode(access_token, ACCESS)
        if self.store.is_blacklisted(access_token):
            raise InvalidTokenError("Token has been revoked")
        return claims

    def rotate(self, refresh_token: str, *, email: str | None = None, role: str | None = None) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        email/role let the caller refresh identity claims from the user record;
        they default to the values embedded in the presented token.
        """
        claims = self.verify_refresh_token(refresh_token)
        stored = self.store.get_refresh_token(claims.user_id)
        if stored is None or not hmac.compare_digest(stored, refresh_token):
            # a signed but superseded token means the chain leaked; end every session
            self.store.delete_refresh_token(claims.user_id)
            raise TokenMismatchError("Invalid refresh token")

        pair = self.issue(claims.user_id, email or claims.email, role or claims.role)
        self.store_refresh_token(claims.user_id, pair.refresh_token)
        return pair

    def revoke(self, access_token: str) -> bool:
        """Blacklist an access token until it would have expired anyway."""
        try:
            payload = jwt.get_unverified_claims(access_token)
        except JWTError:
            raise InvalidTokenError("Invalid token")
        claims = TokenClaims.from_payload(payload)
        remaining = claims.expires_at - epoch_seconds(self.clock())
        return self.store.blacklist(access_token, remaining)

    def revoke_all(self, user_id: int) -> bool:
        return self.store.delete_refresh_token(user_id)
