# Overview: Redis-backed storage for refresh tokens and the access-token blacklist.

"""
Token Store

Two key families live in Redis:

    refresh_token:<user_id>       -> current refresh token (TTL = refresh lifetime)
    token_blacklist:<sha256>      -> "1" (TTL = remaining access token lifetime)

Only one refresh token per user is honored; storing a new one overwrites the
previous value, which is what makes rotation invalidate the old token.
Blacklisted tokens are keyed by hash so raw bearer tokens never sit in Redis.
"""

from __future__ import annotations

import hashlib

import redis


REFRESH_KEY_PREFIX = "refresh_token:"
BLACKLIST_KEY_PREFIX = "token_blacklist:"


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenStore:
    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "TokenStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def _refresh_key(self, user_id: int | str) -> str:
        return f"{REFRESH_KEY_PREFIX}{user_id}"

    def _blacklist_key(self, token: str) -> str:
        return f"{BLACKLIST_KEY_PREFIX}{hash_token(token)}"

    def store_refresh_token(self, user_id: int | str, token: str, ttl_seconds: int) -> None:
        self.client.set(self._refresh_key(user_id), token, ex=max(1, int(ttl_seconds)))

    def get_refresh_token(self, user_id: int | str) -> str | None:
        value = self.client.get(self._refresh_key(user_id))
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def delete_refresh_token(self, user_id: int | str) -> bool:
        return bool(self.client.delete(self._refresh_key(user_id)))

    def blacklist(self, token: str, ttl_seconds: int) -> bool:
        """
        Blacklist a token for ttl_seconds. Returns False when the token has
        already expired (nothing to store) or was blacklisted before.
        """
        if ttl_seconds <= 0:
            return False
        return bool(self.client.set(self._blacklist_key(token), "1", ex=int(ttl_seconds), nx=True))

    def is_blacklisted(self, token: str) -> bool:
        return bool(self.client.exists(self._blacklist_key(token)))

    def ping(self) -> bool:
        return bool(self.client.ping())
