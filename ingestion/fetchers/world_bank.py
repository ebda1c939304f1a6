"""
World Bank Open Data API fetcher for the GHG emissions indicator.

Endpoint: https://api.worldbank.org/v2/country/{iso3}/indicator/{indicator}
Docs: https://datahelpdesk.worldbank.org/knowledgebase/articles/889392

The response body is a two-element array: [pagination metadata, records].
Only the first page is requested (per_page=100 covers the full series).
"""
from __future__ import annotations

import asyncio
import logging

import httpx

from config.settings import GHG_INDICATOR, PER_PAGE, WB_BASE_URL
from ingestion.fetchers.base import BaseFetcher, CountryBatch, FetchResult, Observation

logger = logging.getLogger(__name__)

# A country needs more than this many observations to be accepted
MIN_OBSERVATIONS = 1


class WorldBankFetcher(BaseFetcher):
    """
    Fetches one indicator for a list of countries from the World Bank API.

    The httpx client is owned by the caller: construct it once at startup,
    pass it in, and close it at shutdown. Its timeout bounds each request.
    """

    provider_name = "world_bank"

    def __init__(
        self,
        client: httpx.AsyncClient,
        indicator: str = GHG_INDICATOR,
        per_page: int = PER_PAGE,
        base_url: str = WB_BASE_URL,
    ):
        self._client = client
        self._indicator = indicator
        self._per_page = per_page
        self._base_url = base_url.rstrip("/")

    def indicator_url(self, country_iso3: str) -> str:
        return f"{self._base_url}/country/{country_iso3}/indicator/{self._indicator}"

    async def health_check(self) -> bool:
        """Ping the World Bank API with a single-row request."""
        try:
            resp = await self._client.get(
                self.indicator_url("USA"),
                params={"format": "json", "per_page": 1},
                headers={"Accept": "application/json"},
            )
            return resp.status_code == 200
        except httpx.HTTPError as exc:
            logger.error("World Bank health check failed: %s", exc)
            return False

    async def fetch_all(self, country_codes: list[str]) -> list[CountryBatch]:
        """
        Fan out one request per country and wait for all of them.

        A failed country yields an empty batch; the others are unaffected.
        """
        results = await asyncio.gather(
            *(self.fetch_country(code) for code in country_codes)
        )

        batches: list[CountryBatch] = []
        for result in results:
            if not result.ok:
                logger.warning(
                    "World Bank: %s rejected (%s) — %s",
                    result.country_iso3, result.error, result.message,
                )
            batches.append(result.to_batch())
        return batches

    async def fetch_country(self, country_iso3: str) -> FetchResult:
        """Fetch and validate the indicator series for one country."""
        url = self.indicator_url(country_iso3)

        try:
            resp = await self._client.get(
                url,
                params={"format": "json", "per_page": self._per_page},
                headers={"Accept": "application/json"},
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "World Bank HTTP error for %s/%s: %s",
                country_iso3, self._indicator, exc.response.status_code,
            )
            return FetchResult.failure(
                country_iso3, "transport", f"HTTP {exc.response.status_code}"
            )
        except httpx.TimeoutException as exc:
            logger.error("World Bank request timed out for %s: %s", country_iso3, exc)
            return FetchResult.failure(country_iso3, "transport", "request timed out")
        except httpx.HTTPError as exc:
            logger.error("World Bank fetch failed for %s: %s", country_iso3, exc)
            return FetchResult.failure(country_iso3, "transport", str(exc))

        try:
            observations = parse_response(resp.json())
        except ValueError as exc:
            logger.error("Unexpected response shape for %s: %s", country_iso3, exc)
            return FetchResult.failure(country_iso3, "format", str(exc))

        if len(observations) <= MIN_OBSERVATIONS:
            return FetchResult.failure(
                country_iso3,
                "insufficient_data",
                f"expected more than {MIN_OBSERVATIONS} observation(s), got {len(observations)}",
            )

        logger.info(
            "World Bank: %s/%s → %d observations",
            country_iso3, self._indicator, len(observations),
        )
        return FetchResult.success(country_iso3, observations)


def parse_response(data: object) -> list[Observation]:
    """
    Extract observations from a decoded World Bank response.

    Raises ValueError if the payload is not [metadata, records]. A null
    records element (no data for the query) yields an empty list.
    """
    if not isinstance(data, list) or len(data) < 2:
        raise ValueError("expected a [metadata, records] array")

    records = data[1]
    if records is None:
        return []
    if not isinstance(records, list):
        raise ValueError("records element should be an array")

    return [Observation.from_record(record) for record in records]
