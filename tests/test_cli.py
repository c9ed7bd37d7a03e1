"""Tests for the spatial-collector command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from spatial_collector import cli
from spatial_collector.exceptions import AvailabilityWarning
from spatial_collector.utils.io import read_jsonl_list, write_jsonl


@pytest.fixture
def records_file(tmp_path: Path, modis_record: dict) -> Path:
    path = tmp_path / "records.jsonl.gz"
    write_jsonl(path, [{**modis_record, "download_available": False}])
    return path


@pytest.fixture
def logged_in(monkeypatch: pytest.MonkeyPatch) -> None:
    for service in ("USGS", "EARTHDATA"):
        monkeypatch.setenv(f"SPATIAL_COLLECTOR_{service}_USER", "user")
        monkeypatch.setenv(f"SPATIAL_COLLECTOR_{service}_PASSWORD", "pw")


def test_no_command_is_usage_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main([]) == cli.EXIT_USAGE
    assert "get-data" in capsys.readouterr().err


def test_get_data_writes_output_file(
    logged_in: None, records_file: Path, dir_out: Path, tmp_path: Path
) -> None:
    output = tmp_path / "result.jsonl"
    with pytest.warns(AvailabilityWarning):
        code = cli.main(
            ["get-data", "--records", str(records_file), "--dir-out", str(dir_out), "--output", str(output)]
        )
    assert code == cli.EXIT_OK
    rows = read_jsonl_list(output)
    assert len(rows) == 1
    assert rows[0]["dataset_file"] is None
    assert list(rows[0])[-1] == "dataset_file"


def test_get_data_prints_to_stdout(
    logged_in: None, records_file: Path, dir_out: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.warns(AvailabilityWarning):
        code = cli.main(["get-data", "--records", str(records_file), "--dir-out", str(dir_out)])
    assert code == cli.EXIT_OK
    row = json.loads(capsys.readouterr().out.strip())
    assert row["record_id"].startswith("MOD09GA")


def test_missing_records_file_is_usage_error(logged_in: None, dir_out: Path, tmp_path: Path) -> None:
    missing = tmp_path / "nope.jsonl"
    assert cli.main(["get-data", "--records", str(missing), "--dir-out", str(dir_out)]) == cli.EXIT_USAGE


def test_malformed_records_file_is_usage_error(logged_in: None, dir_out: Path, tmp_path: Path) -> None:
    records = tmp_path / "records.jsonl"
    records.write_text('{"record_id": "A"}\n{broken\n', encoding="utf-8")
    assert cli.main(["get-data", "--records", str(records), "--dir-out", str(dir_out)]) == cli.EXIT_USAGE


def test_missing_login_exit_code(
    monkeypatch: pytest.MonkeyPatch, records_file: Path, dir_out: Path
) -> None:
    for var in ("USGS", "EARTHDATA"):
        monkeypatch.delenv(f"SPATIAL_COLLECTOR_{var}_USER", raising=False)
    code = cli.main(["get-data", "--records", str(records_file), "--dir-out", str(dir_out)])
    assert code == cli.EXIT_CONFIG


def test_invalid_config_exit_code(
    logged_in: None, records_file: Path, dir_out: Path, tmp_path: Path
) -> None:
    config = tmp_path / "settings.yaml"
    config.write_text("workers: 0\n", encoding="utf-8")
    code = cli.main(
        ["get-data", "--records", str(records_file), "--dir-out", str(dir_out), "--config", str(config)]
    )
    assert code == cli.EXIT_CONFIG
