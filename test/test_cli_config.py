from datetime import date
from pathlib import Path
from types import MappingProxyType
from unittest.mock import patch

import pytest
from openpyxl import Workbook

from sales_sync import cli
from sales_sync.config import SyncConfig, load_config
from sales_sync.excel_reader import extract_reps
from sales_sync.model import SyncResult
from sales_sync.report import build_report_payload
from sales_sync.store import SqliteStore


# --------------------------------------------------------------------
# CONFIG
# --------------------------------------------------------------------
def test_load_config_from_mapping():
    config = load_config(
        {
            "ZOHO_CLIENT_ID": "id",
            "ZOHO_CLIENT_SECRET": "secret",
            "ZOHO_REFRESH_TOKEN": "refresh",
            "ZOHO_ORG_ID_QC": "1",
            "SYNC_RETENTION_YEARS": "2025,2026",
            "SYNC_PAGE_SIZE": "50",
        }
    )
    assert [(o.id, o.office) for o in config.organizations] == [("1", "QC"), ("815683274", "MTL")]
    assert config.retention_years == (2025, 2026)
    assert config.retention_floor == 2025
    assert config.page_size == 50
    assert config.missing_credentials() == []
    assert config.supabase_url is None


def test_config_is_immutable():
    config = load_config({})
    with pytest.raises(Exception):
        config.page_size = 1
    assert isinstance(config.department_map, MappingProxyType)
    assert config.missing_credentials() == [
        "ZOHO_CLIENT_ID",
        "ZOHO_CLIENT_SECRET",
        "ZOHO_REFRESH_TOKEN",
    ]


def test_custom_department_map_is_frozen():
    config = SyncConfig(organizations=(), department_map={"A": "B"}, retention_years=(2026,))
    with pytest.raises(TypeError):
        config.department_map["C"] = "D"


def test_unset_retention_years_roll_with_the_calendar():
    config = load_config({})
    assert config.retention_years is None
    assert config.window(date(2026, 12, 31)) == (2025, 2026)
    assert config.window(date(2027, 1, 5)) == (2026, 2027)


def test_explicit_retention_years_are_fixed():
    config = SyncConfig(organizations=(), retention_years=(2024,))
    assert config.window(date(2030, 1, 1)) == (2024,)
    assert config.retention_floor == 2024


def test_bad_retention_years():
    with pytest.raises(RuntimeError):
        load_config({"SYNC_RETENTION_YEARS": "last year"})


# --------------------------------------------------------------------
# EXCEL ROSTER
# --------------------------------------------------------------------
def make_roster(path: Path) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = "reps"
    ws.append(["ID", "Name", "Office", "Active"])
    ws.append([1, " Marie Tremblay ", "qc", "oui"])
    ws.append([None, "Jean Roy", "MTL", "non"])
    ws.append([3, None, "QC", None])
    wb.save(path)
    return path


def test_extract_reps(tmp_path):
    reps = extract_reps(make_roster(tmp_path / "reps.xlsx"))
    assert len(reps) == 2
    assert reps[0].id == "1"
    assert reps[0].name == "Marie Tremblay"
    assert reps[0].office == "QC"
    assert reps[0].active is True
    assert reps[1].id == "Jean Roy"
    assert reps[1].active is False


def test_extract_reps_missing_file():
    with pytest.raises(FileNotFoundError):
        extract_reps(Path("nonexistent.xlsx"))


def test_extract_reps_missing_sheet(tmp_path):
    path = tmp_path / "bad.xlsx"
    wb = Workbook()
    wb.create_sheet("wrong_sheet")
    wb.save(path)
    with pytest.raises(ValueError):
        extract_reps(path)


# --------------------------------------------------------------------
# CLI
# --------------------------------------------------------------------
def test_seed_reps_command(tmp_path, monkeypatch):
    db_path = tmp_path / "cli.db"
    monkeypatch.setattr(
        cli, "load_config", lambda: load_config({"SALES_DB_PATH": str(db_path)})
    )
    assert cli.main(["seed-reps", "--workbook", str(make_roster(tmp_path / "r.xlsx"))]) == 0
    names = {r.name for r in SqliteStore(str(db_path)).fetch_reps()}
    assert names == {"Marie Tremblay", "Jean Roy"}


@patch("sales_sync.cli.SyncOrchestrator")
def test_sync_command_writes_report(mock_orchestrator, tmp_path, monkeypatch):
    monkeypatch.setattr(
        cli, "load_config", lambda: load_config({"SALES_DB_PATH": str(tmp_path / "c.db")})
    )
    mock_orchestrator.return_value.run.return_value = SyncResult(upserted=4, deleted=1)
    output = tmp_path / "out" / "report.json"

    assert cli.main(["sync", "--source", "cron", "--output", str(output)]) == 0
    mock_orchestrator.return_value.run.assert_called_once_with("scheduled")
    assert '"upserted": 4' in output.read_text(encoding="utf-8")


@patch("sales_sync.cli.SyncOrchestrator")
def test_sync_command_fails_on_fatal(mock_orchestrator, tmp_path, monkeypatch):
    monkeypatch.setattr(
        cli, "load_config", lambda: load_config({"SALES_DB_PATH": str(tmp_path / "c.db")})
    )
    mock_orchestrator.return_value.run.return_value = SyncResult(fatal="boom")
    assert cli.main(["sync"]) == 1


def test_report_payload_for_failure():
    payload = build_report_payload(SyncResult(fatal="boom"), "manual")
    assert payload["status"] == "error"
    assert payload["error"] == "boom"
