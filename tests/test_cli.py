import pytest

from pof_storage import cli
from pof_storage.settings import get_settings
from pof_storage.workflow import SessionState, StorageWorkflow

from .conftest import make_ledger


@pytest.fixture
def wired(monkeypatch, settings, store):
    """Point the CLI at fake ledger/storage and return the workflow it will use."""
    w3, _, _ = make_ledger()
    wf = StorageWorkflow(settings, w3=w3, store=store)
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "build_workflow", lambda s: wf)
    return wf


def _feed(monkeypatch, answers):
    it = iter(answers)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(it))


def test_missing_private_key_exits_1(monkeypatch, tmp_path, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("PRIVATE_KEY", raising=False)
    get_settings.cache_clear()
    try:
        assert cli.main(["check-balance"]) == 1
    finally:
        get_settings.cache_clear()
    assert "PRIVATE_KEY" in capsys.readouterr().err


def test_upload_event_command(wired, service, capsys):
    assert cli.main(["upload-event"]) == 0
    out = capsys.readouterr().out
    (cid,) = service.pieces
    assert cid in out
    assert wired.state is SessionState.CLOSED


def test_download_unknown_cid_exits_1(wired, capsys):
    assert cli.main(["download", "bafkzcibdnothing"]) == 1
    assert "No content stored" in capsys.readouterr().err


def test_full_workflow_command(wired, service, capsys):
    assert cli.main(["full-workflow"]) == 0
    out = capsys.readouterr().out
    assert "Total stored" in out
    assert len(service.pieces) == 3


def test_check_balance_command(wired, capsys):
    assert cli.main(["check-balance"]) == 0
    out = capsys.readouterr().out
    assert "USDFC: 5" in out
    assert "Ready" in out


def test_menu_round_trip(wired, monkeypatch, service, capsys):
    _feed(monkeypatch, ["1", "Test Event", "desc", "Online", "2025-01-01", "2025-01-02", "7"])
    assert cli.main([]) == 0
    (cid,) = service.pieces

    wired2 = StorageWorkflow(wired.settings, w3=make_ledger()[0], store=wired.store)
    monkeypatch.setattr(cli, "build_workflow", lambda s: wired2)
    _feed(monkeypatch, ["4", cid, "7"])
    assert cli.main(["menu"]) == 0
    assert '"name": "Test Event"' in capsys.readouterr().out


def test_menu_keeps_running_after_errors(wired, monkeypatch, capsys):
    _feed(monkeypatch, ["4", "bafkzcibdnothing", "2", "9", "5", "7"])
    assert cli.main(["menu"]) == 0
    out = capsys.readouterr().out
    assert "❌ Error: No content stored under bafkzcibdnothing" in out
    assert "Not available from the menu" in out
    assert "Invalid option" in out
    assert "Name: ezpdp" in out


def test_menu_exits_on_eof(wired, monkeypatch):
    def eof(prompt=""):
        raise EOFError

    monkeypatch.setattr("builtins.input", eof)
    assert cli.main(["menu"]) == 0
