"""
HTTP Document Store - aiohttp client for the platform datastore.

Talks to the platform's read-only query gateway:

    POST {base_url}/query   {"collection", "filters", "order_by", "descending", "limit"}
        -> {"documents": [...]}
    POST {base_url}/count   {"collection", "filters"}
        -> {"count": N}

Features:
- Automatic retry with exponential backoff on server/connection errors
- Client errors (4xx) are not retried
- Health tracking; exhausting retries raises DataSourceUnavailableError
"""

import asyncio
import logging
import time
from typing import Any, Iterable, Optional

import aiohttp

from core.exceptions import DataSourceError, DataSourceUnavailableError
from data_sources.store import Filter


logger = logging.getLogger(__name__)


class HttpDocumentStore:
    """DocumentStore implementation over the platform query gateway."""
    
    DEFAULT_TIMEOUT = 30.0
    MAX_RETRIES = 3
    RETRY_BACKOFF_BASE = 2.0
    
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._session = session
        self._owns_session = session is None
        
        self._request_count = 0
        self._error_count = 0
        self._consecutive_failures = 0
    
    @property
    def name(self) -> str:
        return "platform_datastore"
    
    async def find(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        payload = {
            "collection": collection,
            "filters": [f.to_dict() for f in filters],
            "order_by": order_by,
            "descending": descending,
            "limit": limit,
        }
        data = await self._post_with_retry("/query", payload, collection)
        documents = data.get("documents", [])
        if not isinstance(documents, list):
            logger.warning(f"[{self.name}] Malformed response for {collection}, treating as empty")
            return []
        return [doc for doc in documents if isinstance(doc, dict)]
    
    async def count(self, collection: str, filters: Iterable[Filter] = ()) -> int:
        payload = {
            "collection": collection,
            "filters": [f.to_dict() for f in filters],
        }
        data = await self._post_with_retry("/count", payload, collection)
        try:
            return max(0, int(data.get("count", 0)))
        except (TypeError, ValueError):
            return 0
    
    async def _post_with_retry(
        self,
        path: str,
        payload: dict[str, Any],
        collection: str,
    ) -> dict[str, Any]:
        """POST with exponential backoff retry."""
        last_error: Optional[Exception] = None
        
        for attempt in range(self._max_retries):
            try:
                data = await self._post(path, payload, collection)
                self._consecutive_failures = 0
                return data
            except DataSourceError as e:
                if e.context.get("status_code", 500) < 500:
                    raise
                last_error = e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
            
            self._error_count += 1
            self._consecutive_failures += 1
            wait_time = self.RETRY_BACKOFF_BASE ** attempt
            logger.warning(
                f"[{self.name}] {collection} query failed: {last_error}, "
                f"retrying in {wait_time}s (attempt {attempt + 1}/{self._max_retries})"
            )
            await asyncio.sleep(wait_time)
        
        raise DataSourceUnavailableError(
            f"Datastore unreachable after {self._max_retries} attempts",
            domain=collection,
            operation=path.strip("/"),
            cause=last_error,
        )
    
    async def _post(self, path: str, payload: dict[str, Any], collection: str) -> dict[str, Any]:
        session = await self._get_session()
        url = f"{self._base_url}{path}"
        start_time = time.time()
        self._request_count += 1
        
        async with session.post(url, json=payload) as response:
            if response.status >= 400:
                body = await response.text()
                raise DataSourceError(
                    f"HTTP {response.status}",
                    domain=collection,
                    operation=path.strip("/"),
                    context={"status_code": response.status, "body": body[:500]},
                )
            data = await response.json()
            latency_ms = (time.time() - start_time) * 1000
            logger.debug(f"[{self.name}] {path} {collection} completed in {latency_ms:.1f}ms")
            return data if isinstance(data, dict) else {}
    
    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=headers,
            )
            self._owns_session = True
        return self._session
    
    def is_healthy(self) -> bool:
        return self._consecutive_failures == 0
    
    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
    
    async def __aenter__(self) -> "HttpDocumentStore":
        return self
    
    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
    
    def __repr__(self) -> str:
        return f"<HttpDocumentStore(base_url={self._base_url}, healthy={self.is_healthy()})>"


__all__ = ["HttpDocumentStore"]
