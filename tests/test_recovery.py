import json
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from fim.errors import FormatError, NotFoundError, SchemaError
from fim.recovery import (
    METADATA_SUFFIX,
    RECOVERY_SUFFIX,
    RecoveryManager,
    RecoveryState,
    default_search_dirs,
    metadata_path_for,
    recovery_path_for,
)

T0 = datetime(2026, 5, 1, 12, 0, 0, tzinfo=UTC)


def clock(*times):
    it = iter(times)
    return lambda: next(it)


def test_recovery_path_replaces_extension():
    assert recovery_path_for("/tmp/foo.fim") == Path("/tmp/foo" + RECOVERY_SUFFIX)
    assert recovery_path_for(Path("/docs/plan.json")) == Path("/docs/plan" + RECOVERY_SUFFIX)
    assert recovery_path_for("/docs/noext") == Path("/docs/noext" + RECOVERY_SUFFIX)
    assert metadata_path_for("/tmp/foo.fim-recovery") == Path("/tmp/foo.fim-recovery" + METADATA_SUFFIX)


def test_checkpoint_then_recover_round_trip(tmp_path, full_doc):
    manager = RecoveryManager([tmp_path], now=clock(T0))
    original = tmp_path / "foo.fim"
    info = manager.checkpoint(full_doc, original)

    assert info.original_path == original
    assert info.recovery_path == recovery_path_for(original)
    assert info.timestamp == T0
    assert manager.recover(recovery_path_for(original)) == full_doc

    meta = json.loads(metadata_path_for(info.recovery_path).read_text())
    assert meta == {
        "original_path": str(original),
        "recovery_path": str(info.recovery_path),
        "timestamp": T0.isoformat(),
    }
    assert manager.read_metadata(info.recovery_path) == info


def test_checkpoint_rejects_invalid_schema(tmp_path, full_doc):
    full_doc.schema_version = 7
    manager = RecoveryManager([tmp_path])
    with pytest.raises(SchemaError):
        manager.checkpoint(full_doc, tmp_path / "foo.fim")
    assert list(tmp_path.iterdir()) == []


def test_checkpoint_writes_payload_before_metadata(tmp_path, full_doc, monkeypatch):
    manager = RecoveryManager([tmp_path])
    order = []
    import fim.recovery as recovery_mod

    real_write = recovery_mod.write_container
    monkeypatch.setattr(recovery_mod, "write_container", lambda d, p: (order.append("payload"), real_write(d, p)))
    real_meta = manager._write_metadata
    monkeypatch.setattr(manager, "_write_metadata", lambda i: (order.append("metadata"), real_meta(i)))
    manager.checkpoint(full_doc, tmp_path / "foo.fim")
    assert order == ["payload", "metadata"]


def test_clear_recovery_removes_both_files(tmp_path, full_doc):
    manager = RecoveryManager([tmp_path])
    info = manager.checkpoint(full_doc, tmp_path / "foo.fim")
    manager.clear_recovery(tmp_path / "foo.fim")
    assert not info.recovery_path.exists()
    assert not metadata_path_for(info.recovery_path).exists()
    # Nothing left to delete: still no error.
    manager.clear_recovery(tmp_path / "foo.fim")


def test_clear_recovery_swallows_failures(tmp_path, full_doc, monkeypatch, caplog):
    manager = RecoveryManager([tmp_path])
    manager.checkpoint(full_doc, tmp_path / "foo.fim")

    def refuse(self, missing_ok=False):
        raise PermissionError("read-only")

    monkeypatch.setattr(Path, "unlink", refuse)
    with caplog.at_level("WARNING", logger="fim.recovery"):
        manager.clear_recovery(tmp_path / "foo.fim")
    assert "could not remove recovery file" in caplog.text


def test_recover_missing_file(tmp_path):
    with pytest.raises(NotFoundError, match="gone"):
        RecoveryManager([tmp_path]).recover(tmp_path / "gone.fim-recovery")


def test_recover_corrupt_payload(tmp_path):
    path = tmp_path / f"bad{RECOVERY_SUFFIX}"
    path.write_text("not an archive")
    with pytest.raises(FormatError):
        RecoveryManager([tmp_path]).recover(path)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def test_discovery_orders_by_metadata_timestamp(tmp_path, full_doc):
    t1, t2 = T0, T0 + timedelta(minutes=5)
    manager = RecoveryManager([tmp_path], now=clock(t2, t1))
    newer = manager.checkpoint(full_doc, tmp_path / "newer.fim")
    older = manager.checkpoint(full_doc, tmp_path / "older.fim")
    # mtimes say the opposite; metadata wins.
    os.utime(newer.recovery_path, (1_000, 1_000))
    os.utime(older.recovery_path, (2_000_000_000, 2_000_000_000))

    found = manager.discover_recovery_files()
    assert [i.recovery_path for i in found] == [newer.recovery_path, older.recovery_path]
    assert found[0].timestamp == t2
    assert found[0].original_path == tmp_path / "newer.fim"


def test_discovery_without_metadata_uses_name_and_mtime(tmp_path, full_doc):
    manager = RecoveryManager([tmp_path])
    info = manager.checkpoint(full_doc, tmp_path / "draft.json")
    metadata_path_for(info.recovery_path).unlink()
    os.utime(info.recovery_path, (1_700_000_000, 1_700_000_000))

    [found] = manager.discover_recovery_files()
    assert found.recovery_path == info.recovery_path
    assert found.original_path == tmp_path / "draft.fim"
    assert found.timestamp == datetime.fromtimestamp(1_700_000_000, tz=UTC)


def test_discovery_tolerates_bad_metadata_and_orphans(tmp_path, full_doc):
    manager = RecoveryManager([tmp_path])
    info = manager.checkpoint(full_doc, tmp_path / "a.fim")
    metadata_path_for(info.recovery_path).write_text("{broken")
    # Metadata with no payload: not recoverable, not listed.
    orphan = metadata_path_for(tmp_path / f"orphan{RECOVERY_SUFFIX}")
    orphan.write_text(json.dumps({"original_path": "x", "recovery_path": "y", "timestamp": T0.isoformat()}))
    (tmp_path / f"dir{RECOVERY_SUFFIX}").mkdir()
    (tmp_path / "unrelated.fim").write_text("x")

    found = manager.discover_recovery_files()
    assert [i.recovery_path for i in found] == [info.recovery_path]


def test_discovery_skips_missing_dirs_and_deduplicates(tmp_path, full_doc):
    manager = RecoveryManager([tmp_path / "nope", tmp_path, tmp_path / "."], now=clock(T0))
    manager.checkpoint(full_doc, tmp_path / "a.fim")
    assert len(manager.discover_recovery_files()) == 1


def test_discovery_spans_directories(tmp_path, full_doc):
    one, two = tmp_path / "one", tmp_path / "two"
    one.mkdir()
    two.mkdir()
    manager = RecoveryManager([one, two], now=clock(T0, T0 + timedelta(seconds=1)))
    manager.checkpoint(full_doc, one / "a.fim")
    manager.checkpoint(full_doc, two / "b.fim")
    assert [i.original_path.name for i in manager.discover_recovery_files()] == ["b.fim", "a.fim"]


def test_default_search_dirs():
    dirs = default_search_dirs()
    assert Path.cwd() in dirs
    assert Path.home() / "Documents" in dirs
    assert RecoveryManager().search_dirs == dirs


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


def test_state_transitions(tmp_path, full_doc):
    manager = RecoveryManager([tmp_path])
    original = tmp_path / "foo.fim"
    assert manager.state(original) is RecoveryState.CLEAN

    info = manager.checkpoint(full_doc, original)
    assert manager.state(original, info) is RecoveryState.CHECKPOINTED
    # Same file seen by a fresh session that never autosaved it.
    assert manager.state(original) is RecoveryState.STALE_RECOVERY_PRESENT

    manager.clear_recovery(original)
    assert manager.state(original, info) is RecoveryState.CLEAN
