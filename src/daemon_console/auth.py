from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional

import msal

from .credentials import SelectedCredential
from .errors import TokenAcquisitionError
from .outcome import FailureKind, Outcome
from .token_cache import InMemoryTokenCache, TokenCacheKey

logger = logging.getLogger(__name__)

# AADSTS70011: the provided value for the input parameter 'scope' is not valid.
INVALID_SCOPE_CODE = 70011
INVALID_SCOPE_MARKER = "AADSTS70011"

DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class AccessToken:
    access_token: str
    expires_at: float
    from_cache: bool = False

    def __repr__(self) -> str:
        return f"AccessToken(expires_at={self.expires_at!r}, from_cache={self.from_cache!r})"


def default_app_factory(client_id: str, credential: Any, authority: str) -> Any:
    return msal.ConfidentialClientApplication(
        client_id=client_id,
        client_credential=credential,
        authority=authority,
        token_cache=msal.TokenCache(),
    )


class ConfidentialClient:
    """Acquires app-only tokens with the client-credentials grant.

    The msal application is created on first use, since building it performs
    authority discovery over the network. Tokens are served from ``token_cache`` while
    they are valid; msal keeps its own in-memory cache behind that.
    """

    def __init__(
        self,
        client_id: str,
        authority: str,
        credential: SelectedCredential,
        token_cache: Optional[InMemoryTokenCache] = None,
        app_factory: Callable[[str, Any, str], Any] = default_app_factory,
    ):
        self.client_id = client_id
        self.authority = authority
        self.credential = credential
        self.token_cache = token_cache if token_cache is not None else InMemoryTokenCache()
        self._app_factory = app_factory
        self._app: Any = None
        self._app_lock = Lock()

    @property
    def auth_type(self) -> str:
        return self.credential.kind.value

    def _get_app(self) -> Any:
        with self._app_lock:
            if self._app is None:
                self._app = self._app_factory(
                    self.client_id, self.credential.client_credential, self.authority
                )
            return self._app

    def _acquire_for_client(self, scopes: List[str]) -> Dict[str, Any]:
        return self._get_app().acquire_token_for_client(scopes=scopes)

    async def acquire_token(self, scopes: Iterable[str]) -> Outcome[AccessToken]:
        scope_list = list(scopes)
        key = TokenCacheKey.build(self.client_id, self.authority, scope_list)

        cached = self.token_cache.get(key)
        if cached is not None:
            logger.debug("Token cache hit for %s", scope_list)
            return Outcome.success(
                AccessToken(cached.access_token, cached.expires_at, from_cache=True)
            )

        result = await asyncio.to_thread(self._acquire_for_client, scope_list)

        if result and "access_token" in result:
            entry = self.token_cache.put(
                key, result["access_token"], result.get("expires_in", DEFAULT_EXPIRES_IN)
            )
            logger.debug("Acquired %s token for %s", self.auth_type, scope_list)
            return Outcome.success(AccessToken(entry.access_token, entry.expires_at))

        if is_invalid_scope(result):
            return Outcome.failed(
                FailureKind.UNSUPPORTED_SCOPE,
                (result or {}).get("error_description", ""),
            )

        raise _to_error(result)


def is_invalid_scope(result: Optional[Dict[str, Any]]) -> bool:
    if not result:
        return False
    if INVALID_SCOPE_CODE in (result.get("error_codes") or []):
        return True
    return INVALID_SCOPE_MARKER in (result.get("error_description") or "")


def _to_error(result: Optional[Dict[str, Any]]) -> TokenAcquisitionError:
    if not result:
        return TokenAcquisitionError("no_response", "Token acquisition returned nothing")
    if "error" not in result:
        return TokenAcquisitionError("invalid_response", json.dumps(result))
    return TokenAcquisitionError(
        result["error"],
        result.get("error_description", ""),
        result.get("error_codes"),
    )
