"""
Tests for the operations CLI.

Tests cover:
- status, mode, load, replay and migrate against an in-memory store
- export/import of the local dataset
- deadline command
- reset of the local cache
- Exit codes
"""

import json

import pytest

from src.services import client_service
from src.services.exceptions import DatabaseError
from src.services.remote_store import InMemoryRemoteStore
from src.services.sync_service import SyncContext
from src.utils import ops_cli


@pytest.fixture(autouse=True)
def no_app_database(test_db, monkeypatch):
    """Keep the CLI on the test database."""
    monkeypatch.setattr(ops_cli, "initialize_app_database", lambda: None)


class TestHelp:
    def test_no_command_prints_help(self, capsys):
        assert ops_cli.main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()


class TestSyncCommands:
    def test_status(self, capsys):
        assert ops_cli.main(["status"], store=InMemoryRemoteStore()) == 0

        out = capsys.readouterr().out
        assert "Mode:               local" in out
        assert "Pending saves:      0" in out

    def test_mode_switch_persists(self, capsys):
        assert ops_cli.main(["mode", "remote"], store=InMemoryRemoteStore()) == 0

        assert "Data mode set to remote" in capsys.readouterr().out
        assert SyncContext.load().mode.value == "remote"

    def test_invalid_mode_rejected_by_parser(self):
        with pytest.raises(SystemExit):
            ops_cli.main(["mode", "cloud"])

    def test_load_offline_reports_read_only(self, capsys, sample_client):
        ops_cli.main(["mode", "remote"], store=InMemoryRemoteStore())

        assert ops_cli.main(["load"], store=InMemoryRemoteStore(online=False)) == 1
        out = capsys.readouterr().out
        assert "read-only" in out
        assert "clients: 1" in out

    def test_replay_with_empty_queue(self, capsys):
        assert ops_cli.main(["replay"], store=InMemoryRemoteStore()) == 0
        assert "No pending saves" in capsys.readouterr().out

    def test_migrate(self, capsys, sample_client):
        store = InMemoryRemoteStore()

        assert ops_cli.main(["migrate"], store=store) == 0

        assert "clients" in capsys.readouterr().out
        assert [record["name"] for record in store.fetch_all("clients")] == ["Tim Brown"]

    def test_migrate_offline_fails(self, capsys, sample_client):
        assert ops_cli.main(["migrate"], store=InMemoryRemoteStore(online=False)) == 1


class TestFileCommands:
    def test_export_then_import(self, tmp_path, capsys, sample_client):
        path = tmp_path / "backup.json"

        assert ops_cli.main(["export", str(path)]) == 0
        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["clients"][0]["name"] == "Tim Brown"

        client_service.delete_client("Tim Brown")
        assert ops_cli.main(["import", str(path)]) == 0
        assert client_service.get_client("Tim Brown").display_name == "Tim B"

    def test_import_missing_file(self, tmp_path, capsys):
        assert ops_cli.main(["import", str(tmp_path / "missing.json")]) == 1
        assert "ERROR" in capsys.readouterr().out

    def test_import_invalid_json(self, tmp_path, capsys):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        assert ops_cli.main(["import", str(path)]) == 1


class TestDeadline:
    def test_deadline_for_date(self, capsys):
        assert ops_cli.main(["deadline", "2024-06-03"]) == 0
        assert "Saturday 2024-06-01 23:59:59" in capsys.readouterr().out

    def test_invalid_date(self, capsys):
        assert ops_cli.main(["deadline", "June 3rd"]) == 1
        assert "ERROR" in capsys.readouterr().out


class TestReset:
    def test_requires_confirm(self, capsys, monkeypatch):
        calls = []
        monkeypatch.setattr(ops_cli, "reset_database", lambda confirm: calls.append(confirm))

        assert ops_cli.main(["reset"]) == 1

        assert calls == []
        assert "--confirm" in capsys.readouterr().out

    def test_confirmed_reset(self, capsys, monkeypatch):
        calls = []
        monkeypatch.setattr(ops_cli, "reset_database", lambda confirm: calls.append(confirm))

        assert ops_cli.main(["reset", "--confirm"]) == 0

        assert calls == [True]
        assert "Local cache reset" in capsys.readouterr().out

    def test_failed_reset_reports_error(self, capsys, monkeypatch):
        def failing(confirm):
            raise DatabaseError("reset failed")

        monkeypatch.setattr(ops_cli, "reset_database", failing)

        assert ops_cli.main(["reset", "--confirm"]) == 1
        assert "ERROR: Database error: reset failed" in capsys.readouterr().out
