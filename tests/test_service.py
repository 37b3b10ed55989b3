import json

import pytest

from fim.config import load_config
from fim.errors import CancelledError
from fim.recovery import RecoveryManager, recovery_path_for
from fim.service import BoardService, handle_message, respond


class FakePicker:
    def __init__(self, open_path=None, save_path=None):
        self.open_path = open_path
        self.save_path = save_path
        self.default_names = []

    def pick_open(self):
        return self.open_path

    def pick_save(self, default_name):
        self.default_names.append(default_name)
        return self.save_path


@pytest.fixture
def make_service(tmp_path):
    def make(picker=None):
        return BoardService(
            load_config(tmp_path),
            picker=picker,
            recovery=RecoveryManager([tmp_path]),
        )

    return make


def test_open_and_save_paths(tmp_path, make_service, full_doc):
    svc = make_service()
    target = tmp_path / "board.fim"
    assert svc.save_path(full_doc, target) == str(target)
    assert svc.open_path(target) == full_doc
    assert svc.recent_files() == [str(target)]
    assert svc.session.last_save_path == str(target)


def test_explicit_save_clears_recovery(tmp_path, make_service, full_doc):
    svc = make_service()
    target = tmp_path / "board.fim"
    info = svc.autosave(full_doc, target)
    assert svc.autosave_status() == info
    assert info.recovery_path.exists()

    svc.save_path(full_doc, target)
    assert not recovery_path_for(target).exists()
    assert svc.recovery_candidates() == []


def test_dialogs_use_the_picker(tmp_path, make_service, full_doc):
    target = tmp_path / "picked.json"
    picker = FakePicker(open_path=target, save_path=target)
    svc = make_service(picker)
    assert svc.save_dialog(full_doc) == str(target)
    assert picker.default_names == ["untitled.fim"]
    assert svc.open_dialog() == full_doc


def test_cancelled_dialogs(make_service, full_doc):
    svc = make_service(FakePicker())
    with pytest.raises(CancelledError, match="Operation cancelled by user"):
        svc.open_dialog()
    with pytest.raises(CancelledError, match="Save operation cancelled by user"):
        svc.save_dialog(full_doc)


def test_export_text_returns_or_writes(tmp_path, make_service, labelled_doc):
    svc = make_service()
    text = svc.export_text(labelled_doc, "txt", "connections")
    assert "1. A\n" in text and "2. C\n" in text
    out = svc.export_text(labelled_doc, "opml", "spatial", tmp_path / "out.opml")
    assert out == str(tmp_path / "out.opml")
    assert (tmp_path / "out.opml").read_text(encoding="utf-8").startswith("<?xml")


def test_export_defaults_come_from_config(tmp_path, full_doc):
    (tmp_path / "fim.toml").write_text('[export]\nformat = "rtf"\ninclude_faded = false\n')
    svc = BoardService(load_config(tmp_path), recovery=RecoveryManager([tmp_path]))
    out = svc.export_text(full_doc)
    assert out.startswith(r"{\rtf1")


# ---------------------------------------------------------------------------
# call() boundary
# ---------------------------------------------------------------------------


def test_call_round_trips_documents(tmp_path, make_service, full_doc):
    svc = make_service()
    target = str(tmp_path / "board.fim")
    saved = svc.call("save_path", {"doc": full_doc.to_dict(), "path": target})
    assert saved == {"ok": True, "result": target}
    opened = svc.call("open_path", {"path": target})
    assert opened["ok"] and opened["result"] == full_doc.to_dict()
    assert svc.call("recent_files") == {"ok": True, "result": [target]}
    assert svc.call("clear_recent_files") == {"ok": True, "result": None}
    assert svc.call("recent_files")["result"] == []


def test_call_reports_errors_as_messages(tmp_path, make_service, full_doc):
    svc = make_service(FakePicker())
    assert svc.call("open_dialog") == {"ok": False, "error": "Operation cancelled by user"}

    missing = svc.call("open_path", {"path": str(tmp_path / "nope.fim")})
    assert missing["ok"] is False and "nope.fim" in missing["error"]

    bad_ext = svc.call("save_path", {"doc": full_doc.to_dict(), "path": str(tmp_path / "x.txt")})
    assert bad_ext["error"].startswith("Unsupported file format")

    future = dict(full_doc.to_dict(), schemaVersion=5)
    assert "Please update" in svc.call("save_path", {"doc": future, "path": str(tmp_path / "x.fim")})["error"]


def test_call_argument_validation(make_service):
    svc = make_service()
    assert svc.call("open_path", {}) == {"ok": False, "error": "Missing required argument 'path'"}
    assert svc.call("save_path", {"doc": [], "path": "x.fim"})["error"] == "Argument 'doc' must be a document object"
    assert svc.call("save_path", {"doc": {"notes": [{}]}, "path": "x.fim"})["error"].startswith(
        "Invalid document argument"
    )
    assert svc.call("export_text", {"doc": {"schemaVersion": 1}, "ordering": "random"})["ok"] is False
    assert svc.call("explode") == {"ok": False, "error": "Unknown command: explode"}


def test_call_session_flags(make_service):
    svc = make_service()
    assert svc.call("set_dirty", {"dirty": True})["ok"]
    assert svc.session.dirty
    assert svc.call("set_current_path", {"path": "a.fim"})["ok"]
    assert svc.session.current_path == "a.fim"
    assert svc.call("autosave_status") == {"ok": True, "result": None}


def test_call_autosave_and_recover(tmp_path, make_service, full_doc):
    svc = make_service()
    original = str(tmp_path / "board.fim")
    info = svc.call("autosave", {"doc": full_doc.to_dict(), "original_path": original})["result"]
    assert info["original_path"] == original

    [candidate] = svc.call("recovery_candidates")["result"]
    assert candidate["recovery_path"] == info["recovery_path"]
    recovered = svc.call("recover", {"recovery_path": candidate["recovery_path"]})
    assert recovered["result"] == full_doc.to_dict()

    assert svc.call("clear_recovery", {"original_path": original})["ok"]
    assert svc.call("recovery_candidates")["result"] == []


def test_commands_are_listed(make_service):
    assert make_service().commands() == sorted([
        "autosave",
        "autosave_status",
        "clear_recent_files",
        "clear_recovery",
        "export_text",
        "open_dialog",
        "open_path",
        "recent_files",
        "recover",
        "recovery_candidates",
        "save_dialog",
        "save_path",
        "set_current_path",
        "set_dirty",
    ])


# ---------------------------------------------------------------------------
# JSON-RPC framing
# ---------------------------------------------------------------------------


def test_handle_message(make_service):
    svc = make_service()
    init = handle_message(svc, {"jsonrpc": "2.0", "id": 1, "method": "initialize"})
    assert init["result"]["serverInfo"]["name"] == "fim"

    listed = handle_message(svc, {"jsonrpc": "2.0", "id": 2, "method": "commands/list"})
    assert "save_path" in listed["result"]["commands"]

    called = handle_message(
        svc,
        {"jsonrpc": "2.0", "id": 3, "method": "commands/call", "params": {"name": "recent_files"}},
    )
    assert called == {"jsonrpc": "2.0", "id": 3, "result": {"ok": True, "result": []}}
    json.dumps(called)

    unknown = handle_message(svc, {"jsonrpc": "2.0", "id": 4, "method": "nope"})
    assert unknown["error"]["code"] == -32601
    assert handle_message(svc, {"jsonrpc": "2.0", "method": "notifications/initialized"}) is None


@pytest.mark.parametrize(
    ("name", "arguments", "error"),
    [
        ("open_path", {"path": 123}, "Argument 'path' must be of type str, got int"),
        ("open_path", ["x.fim"], "Arguments must be an object"),
        ("set_dirty", {"dirty": "yes"}, "Argument 'dirty' must be of type bool, got str"),
        ("set_current_path", {"path": ["a"]}, "Argument 'path' must be of type str, got list"),
        ("export_text", {"doc": {"schemaVersion": 1}, "path": 5}, "Argument 'path' must be of type str, got int"),
        ("recover", {"recovery_path": {}}, "Argument 'recovery_path' must be of type str, got dict"),
        (["open_path"], {}, "Unknown command: ['open_path']"),
    ],
)
def test_call_rejects_wrongly_typed_arguments(make_service, name, arguments, error):
    assert make_service().call(name, arguments) == {"ok": False, "error": error}


def test_handle_message_with_malformed_params(make_service):
    svc = make_service()
    listed = handle_message(svc, {"jsonrpc": "2.0", "id": 1, "method": "commands/call", "params": ["recent_files"]})
    assert listed["error"]["code"] == -32602

    wrong_args = handle_message(
        svc,
        {"jsonrpc": "2.0", "id": 2, "method": "commands/call", "params": {"name": "open_path", "arguments": [1]}},
    )
    assert wrong_args["result"] == {"ok": False, "error": "Arguments must be an object"}

    wrong_path = handle_message(
        svc,
        {"jsonrpc": "2.0", "id": 3, "method": "commands/call",
         "params": {"name": "open_path", "arguments": {"path": 123}}},
    )
    assert wrong_path["result"]["ok"] is False


def test_respond_reports_unexpected_failures(make_service, monkeypatch, caplog):
    svc = make_service()

    def explode(name, arguments=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(svc, "call", explode)
    msg = {"jsonrpc": "2.0", "id": 9, "method": "commands/call", "params": {"name": "recent_files"}}
    with caplog.at_level("ERROR", logger="fim.service"):
        response = respond(svc, msg)
    assert response == {"jsonrpc": "2.0", "id": 9, "error": {"code": -32603, "message": "Internal error: boom"}}
    assert "failed" in caplog.text
    del msg["id"]
    assert respond(svc, msg) is None
    # Healthy requests pass straight through.
    monkeypatch.undo()
    assert respond(svc, {"jsonrpc": "2.0", "id": 1, "method": "commands/list"})["result"]["commands"]
