"""
Base fetcher interface and the response records it produces.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal, Optional

FetchErrorKind = Literal["transport", "format", "insufficient_data"]


@dataclass(frozen=True)
class CountryDescriptor:
    """Nested `country` object: id is the ISO-2 abbreviation, value the name."""
    id: str
    value: str


@dataclass(frozen=True)
class IndicatorDescriptor:
    """Nested `indicator` object: id is the indicator code, value its description."""
    id: str
    value: str


def _text(record: dict, key: str) -> str:
    raw = record.get(key)
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raise ValueError(f"field {key!r} should be a string, got {type(raw).__name__}")
    return raw


def _descriptor(record: dict, key: str) -> tuple[str, str]:
    raw = record.get(key)
    if not isinstance(raw, dict):
        raise ValueError(f"field {key!r} should be an object")
    return _text(raw, "id"), _text(raw, "value")


@dataclass
class Observation:
    """One country/indicator/year measurement from the World Bank API."""
    country: CountryDescriptor
    country_iso3: str
    period: str          # year label, e.g. "2021"
    indicator: IndicatorDescriptor
    status: str          # obs_status flag, often empty
    unit: str
    value: Optional[float]

    @classmethod
    def from_record(cls, record: dict) -> Observation:
        """
        Map one element of the response's data array.

        Raises ValueError when the record is not shaped like an observation.
        """
        if not isinstance(record, dict):
            raise ValueError("observation record should be an object")

        value = record.get("value")
        if value is not None:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"field 'value' should be numeric, got {value!r}")
            value = float(value)

        country_id, country_value = _descriptor(record, "country")
        indicator_id, indicator_value = _descriptor(record, "indicator")
        iso3 = _text(record, "countryiso3code")
        if not iso3 or not indicator_id:
            raise ValueError("observation is missing its country or indicator code")

        return cls(
            country=CountryDescriptor(id=country_id, value=country_value),
            country_iso3=iso3,
            period=_text(record, "date"),
            indicator=IndicatorDescriptor(id=indicator_id, value=indicator_value),
            status=_text(record, "obs_status"),
            unit=_text(record, "unit"),
            value=value,
        )

    @property
    def year(self) -> Optional[int]:
        return int(self.period) if self.period.isdigit() else None


@dataclass
class CountryBatch:
    """All observations returned for one country in one run."""
    country_iso3: str
    observations: list[Observation] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.observations)

    @property
    def is_empty(self) -> bool:
        return not self.observations


@dataclass
class FetchResult:
    """
    Outcome of fetching a single country.

    Either `observations` holds the accepted batch, or `error` names
    why the country produced nothing usable.
    """
    country_iso3: str
    observations: list[Observation] = field(default_factory=list)
    error: Optional[FetchErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, country_iso3: str, observations: list[Observation]) -> FetchResult:
        return cls(country_iso3=country_iso3, observations=observations)

    @classmethod
    def failure(cls, country_iso3: str, error: FetchErrorKind, message: str) -> FetchResult:
        return cls(country_iso3=country_iso3, error=error, message=message)

    def to_batch(self) -> CountryBatch:
        """Failed fetches collapse to an empty batch."""
        return CountryBatch(
            country_iso3=self.country_iso3,
            observations=list(self.observations) if self.ok else [],
        )


class BaseFetcher(ABC):
    """Abstract base for emissions data fetchers."""

    provider_name: str = "base"

    @abstractmethod
    async def fetch_country(self, country_iso3: str) -> FetchResult:
        """Fetch the tracked indicator for a single country."""
        ...

    @abstractmethod
    async def fetch_all(self, country_codes: list[str]) -> list[CountryBatch]:
        """Fetch every country concurrently; one batch per requested code."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify the API is reachable and responding."""
        ...
