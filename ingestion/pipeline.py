"""
Emissions ETL pipeline — fetch, validate, persist.

Fetches every tracked country in parallel, applies the all-or-nothing
validity gate, then loads one versioned snapshot into the store. The
store is never touched if the fetch phase is rejected.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Optional

from config.settings import COUNTRY_CODES, GHG_INDICATOR, TRACKED_COUNTRIES
from ingestion.fetchers.base import BaseFetcher, CountryBatch
from storage.emissions_store import EmissionsStore

logger = logging.getLogger(__name__)

PipelineStage = Literal["fetch", "schema", "load", "done"]


def batches_are_valid(batches: list[CountryBatch]) -> bool:
    """
    A fetch is usable only if it returned batches and none of them is empty.

    One country with thin data invalidates the whole run.
    """
    return len(batches) > 0 and not any(batch.is_empty for batch in batches)


@dataclass
class PipelineResult:
    """What happened on one pipeline run."""
    success: bool
    stage: PipelineStage
    batches: list[CountryBatch] = field(default_factory=list)
    version: Optional[int] = None
    inserted: int = 0
    failed: int = 0
    elapsed_seconds: float = 0.0

    @property
    def observation_count(self) -> int:
        return sum(len(batch) for batch in self.batches)


class EmissionsPipeline:
    """
    Sequences fetch → validate → persist for the tracked countries.

    Usage:
        async with httpx.AsyncClient(timeout=30.0) as client:
            pipeline = EmissionsPipeline(WorldBankFetcher(client), store)
            result = await pipeline.run()
    """

    def __init__(
        self,
        fetcher: BaseFetcher,
        store: EmissionsStore,
        country_codes: Optional[list[str]] = None,
    ):
        self._fetcher = fetcher
        self._store = store
        self._country_codes = list(country_codes or TRACKED_COUNTRIES)

    async def run(self) -> PipelineResult:
        start_ts = datetime.now(timezone.utc)

        logger.info("=" * 70)
        logger.info("EMISSIONS ETL START")
        logger.info(
            "Indicator: %s  Countries: %s",
            GHG_INDICATOR,
            ", ".join(
                f"{code} ({COUNTRY_CODES.get(code, {}).get('name', '?')})"
                for code in self._country_codes
            ),
        )
        logger.info("=" * 70)

        batches = await self._fetcher.fetch_all(self._country_codes)
        result = PipelineResult(success=False, stage="fetch", batches=batches)

        if not batches_are_valid(batches):
            rejected = [b.country_iso3 for b in batches if b.is_empty]
            logger.error(
                "Invalid emissions data was returned (empty: %s) — nothing saved",
                ", ".join(rejected) or "no batches",
            )
            return self._finish(result, start_ts)

        logger.info(
            "Fetched %d observations across %d countries",
            result.observation_count, len(batches),
        )

        result.stage = "schema"
        if not self._store.initialize_schema():
            logger.error("Database initialization failed — nothing saved")
            return self._finish(result, start_ts)

        result.stage = "load"
        result.success = self._store.insert_all(batches)
        report = self._store.last_load
        result.version = report.version or None
        result.inserted = report.inserted
        result.failed = report.failed
        if result.success:
            result.stage = "done"

        return self._finish(result, start_ts)

    def _finish(self, result: PipelineResult, start_ts: datetime) -> PipelineResult:
        result.elapsed_seconds = (datetime.now(timezone.utc) - start_ts).total_seconds()

        logger.info("=" * 70)
        logger.info(
            "EMISSIONS ETL %s: stage=%s version=%s inserted=%d failed=%d in %.1f seconds",
            "COMPLETE" if result.success else "FAILED",
            result.stage, result.version, result.inserted, result.failed,
            result.elapsed_seconds,
        )
        logger.info(
            "Emissions data was %ssuccessfully saved.",
            "" if result.success else "not ",
        )
        logger.info("=" * 70)
        return result
