from __future__ import annotations
import asyncio
import sys

import httpx
import polars as pl
import pytest

import main as cli


def _payload(iso3: str) -> list:
    rows = [("2021", 1057.29), ("2020", None), ("2019", 1012.4)]
    return [
        {"page": 1, "pages": 1, "per_page": 100, "total": len(rows)},
        [
            {
                "indicator": {"id": "EN.GHG.ALL.MT.CE.AR5", "value": "Total greenhouse gas emissions (Mt CO2e)"},
                "country": {"id": iso3[:2], "value": f"Country {iso3}"},
                "countryiso3code": iso3,
                "date": year,
                "value": value,
                "unit": "",
                "obs_status": "",
            }
            for year, value in rows
        ],
    ]


def _ok_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=_payload(request.url.path.split("/")[3]))


def _failing_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(500)


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the CLI at a temp database and output directory."""
    monkeypatch.setattr(cli, "DEV_DATA_ROOT", tmp_path / "data")
    monkeypatch.setattr(cli, "DEV_PROCESSED_DIR", tmp_path / "processed")
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"

    def invoke(*args: str, handler=_ok_handler) -> int:
        monkeypatch.setattr(
            cli,
            "build_client",
            lambda timeout: httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=timeout),
        )
        monkeypatch.setattr(sys, "argv", ["main.py", "--db-url", db_url, *args])
        return asyncio.run(cli.main())

    return invoke


def test_run_mode_exits_zero_on_success(cli_env):
    """A successful load returns exit code 0."""
    assert cli_env("--mode", "run", "--countries", "BRA,FRA") == 0


def test_run_mode_exits_nonzero_when_fetch_fails(cli_env):
    """A rejected fetch returns exit code 1."""
    assert cli_env("--mode", "run", "--countries", "BRA", handler=_failing_handler) == 1


def test_versions_mode_on_empty_store(cli_env, capsys):
    """Listing versions before any load reports that nothing is stored."""
    assert cli_env("--mode", "versions") == 0
    assert "No snapshots stored yet." in capsys.readouterr().out


def test_versions_mode_lists_snapshots(cli_env, capsys):
    """After two loads both versions are printed."""
    cli_env("--mode", "run", "--countries", "BRA")
    cli_env("--mode", "run", "--countries", "BRA")
    capsys.readouterr()

    assert cli_env("--mode", "versions") == 0
    assert "Stored snapshots" in capsys.readouterr().out


def test_export_mode_writes_parquet(cli_env, tmp_path):
    """Export writes the latest snapshot to the processed directory."""
    cli_env("--mode", "run", "--countries", "BRA,JPN")

    assert cli_env("--mode", "export") == 0

    exported = pl.read_parquet(tmp_path / "processed" / "emissions_v1.parquet")
    assert len(exported) == 6
    assert set(exported["country_iso3"].to_list()) == {"BRA", "JPN"}


def test_export_mode_fails_on_empty_store(cli_env, tmp_path):
    """Exporting with nothing stored returns exit code 1 and writes no file."""
    assert cli_env("--mode", "export") == 1
    assert not (tmp_path / "processed").exists()


def test_export_mode_unknown_version_fails(cli_env):
    """Asking for a version that was never loaded returns exit code 1."""
    cli_env("--mode", "run", "--countries", "BRA")
    assert cli_env("--mode", "export", "--version", "5") == 1


def test_health_mode_exit_codes(cli_env):
    """Health mode maps reachability to the exit code."""
    assert cli_env("--mode", "health") == 0
    assert cli_env("--mode", "health", handler=_failing_handler) == 1
