from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .auth import ConfidentialClient
from .errors import GraphServiceError, TokenAcquisitionError
from .reporting import ConsoleReporter

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 503, 504)
MAX_BACKOFF_SECONDS = 30.0


class GraphClient:
    """Microsoft Graph client authenticated with app-only tokens.

    Every request asks the confidential client for a token, so an expired token is
    replaced transparently. Requests from concurrent callers sharing one client are
    capped by ``max_concurrency``; paging is sequential and keeps one request in flight.
    """

    def __init__(
        self,
        confidential_client: ConfidentialClient,
        reporter: ConsoleReporter,
        base_address: str,
        scopes: List[str],
        http_client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 3,
        max_concurrency: int = 20,
    ):
        self.confidential_client = confidential_client
        self.reporter = reporter
        self.base_address = base_address.rstrip("/")
        self.scopes = list(scopes)
        self.max_retries = max_retries
        self.session = http_client or httpx.AsyncClient()
        self._gate = asyncio.Semaphore(max_concurrency)
        self.token_acquired = False

    async def _auth_header(self) -> Dict[str, str]:
        outcome = await self.confidential_client.acquire_token(self.scopes)
        if not outcome.ok:
            raise TokenAcquisitionError(outcome.failure.value, outcome.detail)  # type: ignore[union-attr]
        token = outcome.unwrap()
        if not token.from_cache:
            self.reporter.success("Token acquired for Microsoft Graph")
        self.token_acquired = True
        return {"Authorization": f"Bearer {token.access_token}"}

    def _full_url(self, path_or_url: str) -> str:
        if path_or_url.startswith("http://") or path_or_url.startswith("https://"):
            return path_or_url
        return f"{self.base_address}/{path_or_url.lstrip('/')}"

    async def request(self, method: str, path_or_url: str, **kwargs: Any) -> httpx.Response:
        url = self._full_url(path_or_url)
        headers = kwargs.pop("headers", {})
        backoff = 1.0

        for attempt in range(1, self.max_retries + 2):
            headers.update(await self._auth_header())
            async with self._gate:
                response = await self.session.request(method, url, headers=headers, **kwargs)

            if response.status_code in RETRY_STATUSES and attempt <= self.max_retries:
                retry_after = self._retry_delay(response, backoff)
                logger.warning(
                    "Graph throttled (%s) on %s, retrying in %.1fs (attempt %d)",
                    response.status_code,
                    url,
                    retry_after,
                    attempt,
                )
                await asyncio.sleep(retry_after)
                backoff = min(backoff * 2, MAX_BACKOFF_SECONDS)
                continue

            if response.status_code >= 400:
                logger.debug(
                    "Graph request failed: %s %s -> %s %s",
                    method,
                    url,
                    response.status_code,
                    response.text[:400],
                )
                raise GraphServiceError(
                    response.status_code,
                    url,
                    response.reason_phrase or "Graph request failed",
                    response.text[:400],
                )

            logger.debug("Graph request succeeded: %s %s -> %s", method, url, response.status_code)
            return response

        raise GraphServiceError(response.status_code, url, "Maximum retry attempts exceeded")

    @classmethod
    def _retry_delay(cls, response: httpx.Response, backoff: float) -> float:
        retry_after = cls._get_retry_after_seconds(response)
        return retry_after if retry_after is not None else backoff

    @staticmethod
    def _get_retry_after_seconds(response: httpx.Response) -> Optional[float]:
        retry_after = response.headers.get("Retry-After")
        if retry_after is None:
            return None
        try:
            return float(retry_after)
        except ValueError:
            return None

    async def get_json(self, path_or_url: str, **kwargs: Any) -> Dict[str, Any]:
        response = await self.request("GET", path_or_url, **kwargs)
        return response.json()

    async def get_pages(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yields each Graph page, following ``@odata.nextLink`` until it is absent."""
        page = await self.get_json(path, params=params)
        yield page
        next_link = page.get("@odata.nextLink")
        while next_link:
            # The next link already carries the query string of the first request.
            page = await self.get_json(next_link)
            yield page
            next_link = page.get("@odata.nextLink")

    async def get_all_values(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        values: List[Dict[str, Any]] = []
        async for page in self.get_pages(path, params=params):
            values.extend(page.get("value", []))
        return values

    async def aclose(self) -> None:
        await self.session.aclose()
