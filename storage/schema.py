"""
Relational schema for the emissions store.

Two append-only dictionaries keyed by external codes (CountryRef,
IndicatorRef) and one append-only fact table (EmissionRecord) whose
`version` column identifies the pipeline run that wrote each row.
"""
from __future__ import annotations

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    Table,
    Text,
)

metadata = MetaData()

country_ref = Table(
    "CountryRef",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("isoCode", Text, unique=True, nullable=False),
    Column("name", Text, nullable=False),
    Column("abbreviation", Text, nullable=False),
    sqlite_autoincrement=True,
)

indicator_ref = Table(
    "IndicatorRef",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("description", Text, nullable=False),
    Column("code", Text, unique=True, nullable=False),
    sqlite_autoincrement=True,
)

emission_record = Table(
    "EmissionRecord",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("countryRefId", Integer, ForeignKey("CountryRef.id")),
    Column("indicatorRefId", Integer, ForeignKey("IndicatorRef.id")),
    Column("year", Integer),
    Column("status", Text),
    Column("unit", Text),
    Column("value", Numeric(8, 4, asdecimal=False)),
    Column("capturedAt", DateTime),
    Column("version", Integer),
    sqlite_autoincrement=True,
)
