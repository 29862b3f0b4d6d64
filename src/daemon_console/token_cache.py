from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, FrozenSet, Iterable, Optional


@dataclass(frozen=True)
class TokenCacheKey:
    client_id: str
    authority: str
    scopes: FrozenSet[str]

    @classmethod
    def build(cls, client_id: str, authority: str, scopes: Iterable[str]) -> "TokenCacheKey":
        return cls(
            client_id=client_id,
            authority=authority.rstrip("/").lower(),
            scopes=frozenset(scope.strip() for scope in scopes),
        )


@dataclass(frozen=True)
class CachedToken:
    access_token: str
    expires_at: float


class InMemoryTokenCache:
    """Process-lifetime cache of app-only access tokens.

    A token is served until ``expires_at - skew_seconds`` so callers never get a token
    that expires mid-request.
    """

    def __init__(self, skew_seconds: float = 300.0, clock: Callable[[], float] = time.time):
        self.skew_seconds = skew_seconds
        self._clock = clock
        self._entries: Dict[TokenCacheKey, CachedToken] = {}
        self._lock = Lock()

    def get(self, key: TokenCacheKey) -> Optional[CachedToken]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at - self.skew_seconds <= self._clock():
                del self._entries[key]
                return None
            return entry

    def put(self, key: TokenCacheKey, access_token: str, expires_in: float) -> CachedToken:
        entry = CachedToken(access_token=access_token, expires_at=self._clock() + float(expires_in))
        with self._lock:
            self._entries[key] = entry
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
