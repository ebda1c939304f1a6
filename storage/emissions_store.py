"""
Persistence for emissions snapshots.

Owns schema creation, reference-data upserts (countries, indicators),
version assignment and fact-row insertion. Every storage failure is
caught here, logged, and reported as a boolean — nothing raises past
this module.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import polars as pl
from sqlalchemy import create_engine, event, func, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ingestion.fetchers.base import CountryBatch, Observation
from storage.schema import country_ref, emission_record, indicator_ref, metadata

logger = logging.getLogger(__name__)


@dataclass
class LoadReport:
    """Counters from the most recent insert_all() call."""
    version: int = 0
    inserted: int = 0
    failed: int = 0

    @property
    def attempted(self) -> int:
        return self.inserted + self.failed


def _on_sqlite_connect(dbapi_connection, connection_record) -> None:
    # BEGIN is emitted by _on_sqlite_begin so SAVEPOINTs nest inside it
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _on_sqlite_begin(conn: Connection) -> None:
    conn.exec_driver_sql("BEGIN")


class EmissionsStore:
    """
    Relational store for versioned emissions snapshots.

    Usage:
        store = EmissionsStore.from_url("sqlite:///data/worldBankEmissions.db")
        if store.initialize_schema():
            ok = store.insert_all(batches)
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.last_load = LoadReport()

    @classmethod
    def from_url(cls, url: str) -> EmissionsStore:
        engine = create_engine(url)
        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", _on_sqlite_connect)
            event.listen(engine, "begin", _on_sqlite_begin)
        return cls(engine)

    def dispose(self) -> None:
        self.engine.dispose()

    # ─── Schema ───────────────────────────────────────────────────────────────

    def initialize_schema(self) -> bool:
        """Create CountryRef, IndicatorRef and EmissionRecord if they don't exist."""
        try:
            metadata.create_all(self.engine, checkfirst=True)
            return True
        except SQLAlchemyError as exc:
            logger.error("Could not create emissions tables: %s", exc)
            return False

    # ─── Load ─────────────────────────────────────────────────────────────────

    def insert_all(self, batches: list[CountryBatch]) -> bool:
        """
        Append one versioned snapshot containing every observation in `batches`.

        The version is computed once up front and shared by every row.
        Reference rows are upserted from the first observation of each
        batch. Each write runs in its own savepoint, so a failed upsert
        or insert is logged and skipped while the rest of the load still
        commits. Returns True only if every fact row was inserted.
        """
        report = LoadReport()
        self.last_load = report

        try:
            with self.engine.begin() as conn:
                report.version = self.next_version(conn)
                logger.info("Loading snapshot version %d", report.version)

                for batch in batches:
                    for index, obs in enumerate(batch.observations):
                        # Country/indicator pairing is stable within a batch
                        if index == 0:
                            self.upsert_country(obs, conn)
                            self.upsert_indicator(obs, conn)

                        country_id = self.find_country_id(obs.country_iso3, conn)
                        indicator_id = self.find_indicator_id(obs.indicator.id, conn)
                        if country_id is None or indicator_id is None:
                            logger.error(
                                "Skipping %s/%s %s — reference row not found",
                                obs.country_iso3, obs.indicator.id, obs.period,
                            )
                            report.failed += 1
                            continue

                        if self.insert_record(country_id, indicator_id, report.version, obs, conn):
                            report.inserted += 1
                        else:
                            report.failed += 1
        except SQLAlchemyError as exc:
            logger.error("Inserting emissions data failed: %s", exc)
            return False

        if report.failed:
            logger.warning(
                "Snapshot version %d: %d of %d rows failed to insert",
                report.version, report.failed, report.attempted,
            )
        return report.failed == 0

    def next_version(self, conn: Optional[Connection] = None) -> int:
        """MAX(version) + 1, or 1 for an empty EmissionRecord table."""
        query = select(func.max(emission_record.c.version))
        if conn is None:
            with self.engine.connect() as own_conn:
                current = own_conn.execute(query).scalar()
        else:
            current = conn.execute(query).scalar()
        return 1 if current is None else int(current) + 1

    def upsert_country(self, obs: Observation, conn: Connection) -> bool:
        """Insert the observation's country unless its ISO code is already stored."""
        values = dict(
            isoCode=obs.country_iso3,
            name=obs.country.value,
            abbreviation=obs.country.id,
        )
        try:
            with conn.begin_nested():
                self._insert_if_absent(conn, country_ref, "isoCode", values)
            return True
        except SQLAlchemyError as exc:
            logger.error("Saving country %s failed: %s", obs.country_iso3, exc)
            return False

    def upsert_indicator(self, obs: Observation, conn: Connection) -> bool:
        """Insert the observation's indicator unless its code is already stored."""
        values = dict(description=obs.indicator.value, code=obs.indicator.id)
        try:
            with conn.begin_nested():
                self._insert_if_absent(conn, indicator_ref, "code", values)
            return True
        except SQLAlchemyError as exc:
            logger.error("Saving indicator %s failed: %s", obs.indicator.id, exc)
            return False

    def insert_record(
        self,
        country_id: int,
        indicator_id: int,
        version: int,
        obs: Observation,
        conn: Connection,
    ) -> bool:
        stmt = insert(emission_record).values(
            countryRefId=country_id,
            indicatorRefId=indicator_id,
            year=obs.year,
            status=obs.status,
            unit=obs.unit,
            value=obs.value,
            capturedAt=datetime.now(timezone.utc),
            version=version,
        )
        try:
            # Savepoint per row so one failure leaves the run's transaction usable
            with conn.begin_nested():
                result = conn.execute(stmt)
            return result.rowcount > 0
        except SQLAlchemyError as exc:
            logger.error(
                "Saving emissions row %s/%s failed: %s",
                obs.country_iso3, obs.period, exc,
            )
            return False

    # ─── Lookups ──────────────────────────────────────────────────────────────

    def find_country_id(self, iso_code: str, conn: Optional[Connection] = None) -> Optional[int]:
        """Primary key of the country with this ISO code, or None."""
        return self._scalar(select(country_ref.c.id).where(country_ref.c.isoCode == iso_code), conn)

    def find_indicator_id(self, code: str, conn: Optional[Connection] = None) -> Optional[int]:
        """Primary key of the indicator with this code, or None."""
        return self._scalar(select(indicator_ref.c.id).where(indicator_ref.c.code == code), conn)

    # ─── Read side ────────────────────────────────────────────────────────────

    def list_versions(self) -> pl.DataFrame:
        """One row per stored snapshot: version, row count, first capture time."""
        query = (
            select(
                emission_record.c.version.label("version"),
                func.count().label("records"),
                func.min(emission_record.c.capturedAt).label("captured_at"),
            )
            .group_by(emission_record.c.version)
            .order_by(emission_record.c.version)
        )
        with self.engine.connect() as conn:
            rows = [dict(row._mapping) for row in conn.execute(query)]
        return pl.DataFrame(rows) if rows else pl.DataFrame()

    def read_snapshot(self, version: Optional[int] = None) -> pl.DataFrame:
        """
        Fact rows of one snapshot joined to their reference data.

        Defaults to the latest version. Returns an empty DataFrame when
        nothing has been loaded yet.
        """
        if version is None:
            version = self.next_version() - 1
            if version < 1:
                return pl.DataFrame()

        query = (
            select(
                country_ref.c.isoCode.label("country_iso3"),
                country_ref.c.name.label("country"),
                indicator_ref.c.code.label("indicator"),
                emission_record.c.year,
                emission_record.c.status,
                emission_record.c.unit,
                emission_record.c.value,
                emission_record.c.capturedAt.label("captured_at"),
                emission_record.c.version,
            )
            .select_from(
                emission_record
                .join(country_ref, emission_record.c.countryRefId == country_ref.c.id)
                .join(indicator_ref, emission_record.c.indicatorRefId == indicator_ref.c.id)
            )
            .where(emission_record.c.version == version)
            .order_by(country_ref.c.isoCode, emission_record.c.year)
        )
        with self.engine.connect() as conn:
            rows = [dict(row._mapping) for row in conn.execute(query)]
        return pl.DataFrame(rows) if rows else pl.DataFrame()

    # ─── Helpers ──────────────────────────────────────────────────────────────

    def _insert_if_absent(self, conn: Connection, table, key_column: str, values: dict) -> None:
        """INSERT that silently skips rows whose unique key already exists."""
        dialect = conn.dialect.name
        if dialect == "sqlite":
            stmt = sqlite.insert(table).on_conflict_do_nothing(index_elements=[key_column])
        elif dialect == "postgresql":
            stmt = postgresql.insert(table).on_conflict_do_nothing(index_elements=[key_column])
        else:
            existing = conn.execute(
                select(table.c.id).where(table.c[key_column] == values[key_column])
            ).first()
            if existing is not None:
                return
            stmt = insert(table)
        conn.execute(stmt.values(**values))

    def _scalar(self, query, conn: Optional[Connection]) -> Optional[int]:
        if conn is None:
            with self.engine.connect() as own_conn:
                return own_conn.execute(query).scalar()
        return conn.execute(query).scalar()
