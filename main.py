"""
GHG Emissions ETL — Main Entry Point

Pulls total greenhouse gas emissions for the tracked countries from the
World Bank API and appends a new versioned snapshot to the database.

Usage:
    # Fetch and load a new snapshot (default)
    python main.py --mode run

    # List stored snapshot versions
    python main.py --mode versions

    # Export a snapshot to parquet (latest unless --version is given)
    python main.py --mode export --version 3

    # Check that the World Bank API is reachable
    python main.py --mode health
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import httpx

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from config.settings import (
    DATABASE_URL,
    DEV_DATA_ROOT,
    DEV_PROCESSED_DIR,
    REQUEST_TIMEOUT,
    TRACKED_COUNTRIES,
)
from ingestion.fetchers.world_bank import WorldBankFetcher
from ingestion.pipeline import EmissionsPipeline
from storage.emissions_store import EmissionsStore

logger = logging.getLogger("main")


def build_client(timeout: float) -> httpx.AsyncClient:
    """One shared transport for the whole process; closed by the caller."""
    return httpx.AsyncClient(
        timeout=timeout,
        headers={"Accept": "application/json"},
    )


async def run_etl(store: EmissionsStore, countries: list[str], timeout: float) -> bool:
    logger.info("Fetching emissions data from the World Bank API.")
    async with build_client(timeout) as client:
        pipeline = EmissionsPipeline(WorldBankFetcher(client), store, country_codes=countries)
        result = await pipeline.run()
    return result.success


async def run_health_check(timeout: float) -> bool:
    async with build_client(timeout) as client:
        healthy = await WorldBankFetcher(client).health_check()
    logger.info("World Bank API is %s", "reachable" if healthy else "NOT reachable")
    return healthy


def show_versions(store: EmissionsStore) -> bool:
    if not store.initialize_schema():
        return False
    versions = store.list_versions()
    if versions.is_empty():
        print("No snapshots stored yet.")
        return True
    print("\nStored snapshots:")
    print(versions)
    return True


def export_snapshot(store: EmissionsStore, version: int | None) -> bool:
    if not store.initialize_schema():
        return False
    snapshot = store.read_snapshot(version)
    if snapshot.is_empty():
        logger.error("No emissions rows found for version %s", version or "latest")
        return False

    exported_version = snapshot["version"][0]
    DEV_PROCESSED_DIR.mkdir(parents=True, exist_ok=True)
    output_path = DEV_PROCESSED_DIR / f"emissions_v{exported_version}.parquet"
    snapshot.write_parquet(output_path, compression="zstd")
    logger.info("Exported %d rows → %s", len(snapshot), output_path)
    return True


async def main() -> int:
    """Main entry point. Returns the process exit code."""
    parser = argparse.ArgumentParser(description="World Bank GHG emissions ETL")
    parser.add_argument(
        "--mode",
        choices=["run", "versions", "export", "health"],
        default="run",
        help="Execution mode",
    )
    parser.add_argument("--db-url", type=str, default=DATABASE_URL, help="SQLAlchemy database URL")
    parser.add_argument("--timeout", type=float, default=REQUEST_TIMEOUT, help="Per-request timeout in seconds")
    parser.add_argument(
        "--countries",
        type=str,
        default=",".join(TRACKED_COUNTRIES),
        help="Comma-separated ISO-3 codes to fetch",
    )
    parser.add_argument("--version", type=int, default=None, help="Snapshot version for export mode")
    args = parser.parse_args()

    if args.mode == "health":
        return 0 if await run_health_check(args.timeout) else 1

    # Default SQLite file lives under data/
    DEV_DATA_ROOT.mkdir(parents=True, exist_ok=True)

    store = EmissionsStore.from_url(args.db_url)
    try:
        if args.mode == "versions":
            ok = show_versions(store)
        elif args.mode == "export":
            ok = export_snapshot(store, args.version)
        else:
            countries = [c.strip().upper() for c in args.countries.split(",") if c.strip()]
            ok = await run_etl(store, countries, args.timeout)
    finally:
        store.dispose()

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
