from __future__ import annotations

import asyncio
from typing import Any
from urllib.parse import quote

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from . import settings
from .logging_config import get_logger
from .normalize import SOURCE_TYPES
from .periods import Period, PeriodRange

logger = get_logger(__name__)

RawCollections = dict[str, list[dict[str, Any]]]


def empty_collections() -> RawCollections:
    return {s: [] for s in SOURCE_TYPES}


class ProviderClient:
    """Read-only client for the health-data provider.

    Every fetch degrades to an empty list on failure so one broken source never
    blocks the KPIs computed from the others.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_s: float | None = None,
        page_size: int | None = None,
        retry_attempts: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.PROVIDER_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.PROVIDER_API_KEY
        self.timeout = httpx.Timeout(timeout_s or settings.PROVIDER_TIMEOUT_S)
        self.page_size = page_size or settings.PROVIDER_PAGE_SIZE
        self.retry_attempts = max(1, retry_attempts or settings.PROVIDER_RETRY_ATTEMPTS)
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _params(self, period: Period, by_clinical_record: bool) -> dict[str, Any]:
        start, end = period.query_bounds()
        params: dict[str, Any] = {"from": start, "to": end, "pageSize": self.page_size}
        if by_clinical_record:
            params["findByHc"] = "true"
        return params

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, headers=self._headers(), transport=self._transport)

    async def _get_json(self, client: httpx.AsyncClient, url: str, params: dict[str, Any]) -> Any:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=0.5, max=4),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                "provider_retry",
                url=url,
                attempt=retry_state.attempt_number,
            ),
        ):
            with attempt:
                response = await client.get(url, params=params)
                response.raise_for_status()
                return response.json()

    async def fetch_collection(
        self,
        client: httpx.AsyncClient,
        source: str,
        user_id: str,
        period: Period,
        by_clinical_record: bool = False,
    ) -> list[dict[str, Any]]:
        url = f"{self.base_url}/{source}/{quote(user_id, safe='@')}"
        try:
            body = await self._get_json(client, url, self._params(period, by_clinical_record))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("provider_fetch_failed", source=source, error=str(e) or type(e).__name__)
            return []

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            logger.warning("provider_unexpected_body", source=source)
            return []
        return [r for r in data if isinstance(r, dict)]

    async def _fetch_period(
        self,
        client: httpx.AsyncClient,
        user_id: str,
        period: Period,
        by_clinical_record: bool,
    ) -> RawCollections:
        results = await asyncio.gather(
            *(self.fetch_collection(client, s, user_id, period, by_clinical_record) for s in SOURCE_TYPES)
        )
        return dict(zip(SOURCE_TYPES, results))

    async def fetch_period(self, user_id: str, period: Period, by_clinical_record: bool = False) -> RawCollections:
        async with self._client() as client:
            return await self._fetch_period(client, user_id, period, by_clinical_record)

    async def fetch_range(
        self,
        user_id: str,
        periods: PeriodRange,
        by_clinical_record: bool = False,
    ) -> tuple[RawCollections, RawCollections]:
        """Current and previous collections; all ten requests run concurrently."""
        async with self._client() as client:
            current, previous = await asyncio.gather(
                self._fetch_period(client, user_id, periods.current, by_clinical_record),
                self._fetch_period(client, user_id, periods.previous, by_clinical_record),
            )
        return current, previous
