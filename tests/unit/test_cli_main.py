from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from hubspot_importer.cli.__main__ import main as cli_main
from hubspot_importer.hubspot.client import HubSpotAuthError
from hubspot_importer.logging.init import reset_logging
from hubspot_importer.sources.reader import SourceReadError

CLI = "hubspot_importer.cli.__main__"


class FakeCheckClient:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.checked = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None

    async def health_check(self):
        self.checked = True
        if self.error is not None:
            raise self.error
        return {"results": []}


class FakeSheetsList:
    def __init__(self, files=None, error: Exception | None = None, tabs=None) -> None:
        self.files = files or []
        self.error = error
        self.tabs = tabs or []
        self.tab_requests: list[str] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None

    async def list_spreadsheets(self):
        if self.error is not None:
            raise self.error
        return self.files

    async def list_tabs(self, spreadsheet_id):
        self.tab_requests.append(spreadsheet_id)
        if self.error is not None:
            raise self.error
        return self.tabs


def test_cli_missing_config(temp_workdir: Path, capsys):
    reset_logging()
    code = cli_main([])
    out = capsys.readouterr().out
    assert code == 1
    assert "ERROR config: config file not found" in out


def test_cli_missing_token(write_config, write_csv, capsys):
    reset_logging()
    write_csv([("Acme", "555", "NA")])
    code = cli_main([])
    out = capsys.readouterr().out
    assert code == 1
    assert "ERROR HUBSPOT_PRIVATE_APP_TOKEN is not set" in out


def test_cli_token_from_dotenv(write_config, write_csv, temp_workdir: Path, fake_hubspot, capsys):
    reset_logging()
    write_csv([("Acme", "555", "NA")])
    (temp_workdir / ".env").write_text("HUBSPOT_PRIVATE_APP_TOKEN=pat-from-dotenv\n", encoding="utf-8")
    with patch(f"{CLI}._hubspot_client", return_value=fake_hubspot) as factory:
        code = cli_main([])
    assert code == 0
    assert factory.call_args.args[1] == "pat-from-dotenv"


def test_cli_access_token_fallback(write_config, write_csv, fake_hubspot, monkeypatch, capsys):
    reset_logging()
    write_csv([("Acme", "555", "NA")])
    monkeypatch.setenv("HUBSPOT_ACCESS_TOKEN", "pat-fallback")
    with patch(f"{CLI}._hubspot_client", return_value=fake_hubspot) as factory:
        code = cli_main([])
    assert code == 0
    assert factory.call_args.args[1] == "pat-fallback"


def test_cli_file_and_object_without_config(temp_workdir: Path, write_csv, fake_hubspot, monkeypatch, capsys):
    reset_logging()
    path = write_csv([("Acme", "555", "NA")])
    monkeypatch.setenv("HUBSPOT_PRIVATE_APP_TOKEN", "pat")
    with patch(f"{CLI}._hubspot_client", return_value=fake_hubspot):
        code = cli_main(["--file", str(path), "--object", "contacts"])
    out = capsys.readouterr().out
    assert code == 0
    assert fake_hubspot.object_types == {"contacts"}
    assert "INFO Importing leads.csv -> contacts" in out


def test_cli_object_override(write_config, write_csv, fake_hubspot, monkeypatch):
    reset_logging()
    write_csv([("Acme", "555", "NA")])
    monkeypatch.setenv("HUBSPOT_PRIVATE_APP_TOKEN", "pat")
    with patch(f"{CLI}._hubspot_client", return_value=fake_hubspot):
        assert cli_main(["--object", "deals"]) == 0
    assert fake_hubspot.object_types == {"deals"}


def test_cli_debug_mode(write_config, write_csv, fake_hubspot, monkeypatch, capsys):
    reset_logging()
    write_csv([("Acme", "555", "NA")])
    monkeypatch.setenv("HUBSPOT_PRIVATE_APP_TOKEN", "pat")
    with patch(f"{CLI}._hubspot_client", return_value=fake_hubspot):
        code = cli_main(["--debug"])
    out = capsys.readouterr().out
    assert code == 0
    assert "DEBUG debug mode enabled" in out
    assert "DEBUG batches=1" in out
    reset_logging()


def test_cli_inspect_data(write_config, write_csv, capsys):
    reset_logging()
    write_csv([("Acme", "555-1234", "NA"), ("Beta", "", "HU")])
    with patch(f"{CLI}._hubspot_client") as factory:
        code = cli_main(["--inspect-data"])
    out = capsys.readouterr().out
    assert code == 0
    factory.assert_not_called()
    assert "SOURCE: leads.csv rows=2" in out
    assert "headers=['Business', 'Number', 'Notes']" in out
    assert "row 2: {'name': 'Acme', 'phone': '555-1234', 'last_sales_call_outcome': 'no_answer'}" in out
    assert "row 3: {'name': 'Beta', 'last_sales_call_outcome': 'hung_up'}" in out


def test_cli_inspect_data_unreadable(write_config, capsys):
    reset_logging()
    code = cli_main(["--inspect-data"])
    out = capsys.readouterr().out
    assert code == 1
    assert "inspect: CSV file not found" in out


def test_cli_check_ok(temp_workdir: Path, monkeypatch, capsys):
    reset_logging()
    monkeypatch.setenv("HUBSPOT_PRIVATE_APP_TOKEN", "pat")
    fake = FakeCheckClient()
    with patch(f"{CLI}._hubspot_client", return_value=fake):
        code = cli_main(["--check"])
    assert code == 0
    assert fake.checked
    assert "INFO HubSpot token OK" in capsys.readouterr().out


def test_cli_check_auth_failure(temp_workdir: Path, monkeypatch, capsys):
    reset_logging()
    monkeypatch.setenv("HUBSPOT_PRIVATE_APP_TOKEN", "pat")
    fake = FakeCheckClient(HubSpotAuthError("Authentication credentials not found", 401))
    with patch(f"{CLI}._hubspot_client", return_value=fake):
        code = cli_main(["--check"])
    assert code == 1
    assert "ERROR HubSpot check failed (401): Authentication credentials not found" in capsys.readouterr().out


def test_cli_check_without_token(temp_workdir: Path, capsys):
    reset_logging()
    assert cli_main(["--check"]) == 1
    assert "HUBSPOT_PRIVATE_APP_TOKEN is not set" in capsys.readouterr().out


def test_cli_list_sheets(temp_workdir: Path, monkeypatch, capsys):
    reset_logging()
    monkeypatch.setenv("GOOGLE_ACCESS_TOKEN", "ya29")
    fake = FakeSheetsList([{"id": "s1", "name": "Leads", "modified_time": "2024-03-05T10:00:00Z"}])
    with patch(f"{CLI}._sheets_client", return_value=fake):
        code = cli_main(["--list-sheets"])
    assert code == 0
    assert "s1\tLeads\t2024-03-05T10:00:00Z" in capsys.readouterr().out


def test_cli_list_sheets_failure(temp_workdir: Path, monkeypatch, capsys):
    reset_logging()
    monkeypatch.setenv("GOOGLE_ACCESS_TOKEN", "ya29")
    fake = FakeSheetsList(error=SourceReadError("Failed to list spreadsheets: HTTP 401"))
    with patch(f"{CLI}._sheets_client", return_value=fake):
        code = cli_main(["--list-sheets"])
    assert code == 1
    assert "ERROR sheets: Failed to list spreadsheets: HTTP 401" in capsys.readouterr().out


def test_cli_list_sheets_without_token(temp_workdir: Path, capsys):
    reset_logging()
    assert cli_main(["--list-sheets"]) == 1
    assert "GOOGLE_ACCESS_TOKEN is not set" in capsys.readouterr().out


def test_cli_list_tabs(temp_workdir: Path, monkeypatch, capsys):
    reset_logging()
    monkeypatch.setenv("GOOGLE_ACCESS_TOKEN", "ya29")
    fake = FakeSheetsList(
        tabs=[{"title": "Leads", "sheetId": 0, "index": 0}, {"title": "Old leads", "sheetId": 7, "index": 1}]
    )
    with patch(f"{CLI}._sheets_client", return_value=fake):
        code = cli_main(["--list-tabs", "s1"])
    out = capsys.readouterr().out
    assert code == 0
    assert fake.tab_requests == ["s1"]
    assert "0\tLeads" in out
    assert "1\tOld leads" in out


def test_cli_list_tabs_failure(temp_workdir: Path, monkeypatch, capsys):
    reset_logging()
    monkeypatch.setenv("GOOGLE_ACCESS_TOKEN", "ya29")
    fake = FakeSheetsList(error=SourceReadError("Failed to get spreadsheet: HTTP 404"))
    with patch(f"{CLI}._sheets_client", return_value=fake):
        code = cli_main(["--list-tabs", "missing"])
    assert code == 1
    assert "ERROR sheets: Failed to get spreadsheet: HTTP 404" in capsys.readouterr().out


def test_cli_list_tabs_without_token(temp_workdir: Path, capsys):
    reset_logging()
    assert cli_main(["--list-tabs", "s1"]) == 1
    assert "GOOGLE_ACCESS_TOKEN is not set" in capsys.readouterr().out
