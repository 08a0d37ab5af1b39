"""
Async JSON client with rate-limit retry, shared by the upstream data providers.
"""
import asyncio
from typing import Any

import httpx

from app.core.exceptions import FetchFailedException
from app.core.logging import get_logger

logger = get_logger(__name__)


class JsonApiClient:
    """
    Thin wrapper around httpx.AsyncClient for read-only JSON APIs.

    On HTTP 429 it sleeps `(attempt + 1) * retry_backoff_s` and retries, up to
    `max_retries` attempts. Any other error status, a transport error, or
    running out of attempts raises FetchFailedException; the caller decides
    whether that skips or aborts the work.
    """

    source_name = "API"

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        max_retries: int = 3,
        retry_backoff_s: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_backoff_s = retry_backoff_s
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def fetch_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET a JSON document.

        Args:
            path: Path relative to the base URL
            params: Optional query parameters

        Returns:
            Decoded JSON body

        Raises:
            FetchFailedException: On error status, transport error, a body that
                is not JSON, or exhausted retries
        """
        url = f"{self.base_url}/{path.lstrip('/')}"

        for attempt in range(self.max_retries):
            try:
                response = await self._client.get(path, params=params)
            except httpx.RequestError as e:
                logger.error(f"{self.source_name} request error: {str(e)}")
                raise FetchFailedException(
                    f"Failed to connect to {self.source_name}: {str(e)}", url=url
                ) from e

            if response.status_code == 429:
                wait = (attempt + 1) * self.retry_backoff_s
                logger.warning(f"{self.source_name} rate limited, waiting {wait:.0f}s...")
                await asyncio.sleep(wait)
                continue

            if response.is_error:
                raise FetchFailedException(
                    f"{self.source_name} error: {response.status_code} {url}",
                    url=url,
                    status_code=response.status_code,
                )

            try:
                return response.json()
            except ValueError as e:
                logger.error(f"{self.source_name} returned a non-JSON body: {url}")
                raise FetchFailedException(
                    f"{self.source_name} returned invalid JSON: {url}",
                    url=url,
                    status_code=response.status_code,
                ) from e

        raise FetchFailedException(
            f"Failed after {self.max_retries} retries: {url}", url=url, status_code=429
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
