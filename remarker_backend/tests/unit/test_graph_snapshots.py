import json
from pathlib import Path

import pytest

from remarker_backend.services import graph_snapshots


def _document():
    return {
        "nodes": {
            "root": {"parent_id": None, "thread_id": "T1", "content": "Claim", "child_ids": ["a"]},
            "a": {"parent_id": "root", "thread_id": "T1", "content": "Yes", "child_ids": []},
        },
        "retired_ids": ["gone"],
    }


def test_write_snapshot_with_backend_local(tmp_path):
    target = tmp_path / "snapshots" / "graph.json"

    result = graph_snapshots.write_snapshot_with_backend(_document(), backend="local", path=target)

    assert result["storage"] == "local"
    assert Path(result["location"]) == target
    assert json.loads(target.read_text()) == _document()
    assert not target.with_name("graph.json.tmp").exists()


def test_write_snapshot_with_backend_auto_falls_back_to_local(tmp_path, monkeypatch):
    target = tmp_path / "graph.json"

    def _raise_gcs(*_args, **_kwargs):
        raise RuntimeError("missing gcs credentials")

    monkeypatch.setattr(graph_snapshots, "write_snapshot_gcs", _raise_gcs)

    result = graph_snapshots.write_snapshot_with_backend(_document(), backend="auto", path=target)

    assert result["storage"] == "local_fallback"
    assert target.exists()


def test_write_snapshot_gcs_requires_bucket(monkeypatch):
    monkeypatch.setattr(graph_snapshots, "GCS_BUCKET_NAME", None)

    with pytest.raises(ValueError, match="GCS_BUCKET_NAME"):
        graph_snapshots.write_snapshot_with_backend(_document(), backend="gcs")


def test_invalid_backend_raises():
    with pytest.raises(ValueError, match="SNAPSHOT_BACKEND must be one of"):
        graph_snapshots.write_snapshot_with_backend(_document(), backend="s3")

    with pytest.raises(ValueError, match="SNAPSHOT_BACKEND must be one of"):
        graph_snapshots.GraphSnapshotter(backend="dropbox")


def test_load_snapshot_auto_prefers_gcs_then_local(tmp_path, monkeypatch):
    target = tmp_path / "graph.json"
    graph_snapshots.write_snapshot_local(_document(), target)

    monkeypatch.setattr(graph_snapshots, "load_snapshot_gcs", lambda: None)
    assert graph_snapshots.load_snapshot_with_backend("auto", target) == _document()

    def _raise_gcs():
        raise RuntimeError("no credentials")

    monkeypatch.setattr(graph_snapshots, "load_snapshot_gcs", _raise_gcs)
    assert graph_snapshots.load_snapshot_with_backend("auto", target) == _document()


def test_load_snapshot_local_missing_file(tmp_path):
    assert graph_snapshots.load_snapshot_local(tmp_path / "absent.json") is None


def test_normalize_document_accepts_legacy_mapping():
    legacy = {"111": {"parent": None, "threadId": "T1", "children": []}}

    assert graph_snapshots.normalize_document(legacy) == {"nodes": legacy, "retired_ids": []}


def test_normalize_document_rejects_non_objects():
    with pytest.raises(ValueError):
        graph_snapshots.normalize_document(["not", "a", "mapping"])


def test_gcs_object_path_uses_folder(monkeypatch):
    monkeypatch.setattr(graph_snapshots, "GCS_FOLDER", "/remarker/prod/")
    assert graph_snapshots._gcs_object_path() == "remarker/prod/discourse_graph.json"

    monkeypatch.setattr(graph_snapshots, "GCS_FOLDER", None)
    assert graph_snapshots._gcs_object_path() == "discourse_graph.json"


@pytest.mark.asyncio
async def test_snapshotter_coalesces_and_keeps_last_document(tmp_path):
    target = tmp_path / "graph.json"
    snapshotter = graph_snapshots.GraphSnapshotter(backend="local", path=target)

    for revision in range(5):
        snapshotter.schedule({"nodes": {}, "retired_ids": [f"rev-{revision}"]})
    await snapshotter.flush()

    assert json.loads(target.read_text())["retired_ids"] == ["rev-4"]
    assert 1 <= snapshotter.writes_completed <= 5
    assert snapshotter.last_error is None


@pytest.mark.asyncio
async def test_snapshotter_logs_and_keeps_write_failures(tmp_path, monkeypatch):
    snapshotter = graph_snapshots.GraphSnapshotter(backend="local", path=tmp_path / "graph.json")

    def _fail(*_args, **_kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(graph_snapshots, "write_snapshot_with_backend", _fail)

    snapshotter.schedule(_document())
    await snapshotter.flush()

    assert isinstance(snapshotter.last_error, OSError)
    assert snapshotter.writes_completed == 0


def test_snapshotter_load_returns_empty_document(tmp_path):
    snapshotter = graph_snapshots.GraphSnapshotter(backend="local", path=tmp_path / "graph.json")

    assert snapshotter.load() == graph_snapshots.empty_document()


def test_load_snapshot_local_flags_corrupt_file(tmp_path):
    target = tmp_path / "graph.json"
    target.write_text("{not json", encoding="utf-8")

    with pytest.raises(graph_snapshots.CorruptSnapshotError) as exc_info:
        graph_snapshots.load_snapshot_local(target)

    assert exc_info.value.storage_kind == "local"
    assert isinstance(exc_info.value, ValueError)


def test_snapshotter_load_moves_corrupt_file_aside(tmp_path):
    target = tmp_path / "graph.json"
    target.write_text("{not json", encoding="utf-8")
    snapshotter = graph_snapshots.GraphSnapshotter(backend="local", path=target)

    assert snapshotter.load() == graph_snapshots.empty_document()

    assert not target.exists()
    preserved = list(tmp_path.glob("graph.json.corrupt-*"))
    assert len(preserved) == 1
    assert preserved[0].read_text(encoding="utf-8") == "{not json"


def test_snapshotter_load_moves_non_object_snapshot_aside(tmp_path):
    target = tmp_path / "graph.json"
    target.write_text('["not", "a", "graph"]', encoding="utf-8")

    assert graph_snapshots.GraphSnapshotter(backend="local", path=target).load() == graph_snapshots.empty_document()
    assert len(list(tmp_path.glob("graph.json.corrupt-*"))) == 1


def test_auto_backend_does_not_hide_corrupt_gcs_snapshot(tmp_path, monkeypatch):
    def _corrupt_gcs():
        raise graph_snapshots.CorruptSnapshotError("gcs", "discourse_graph.json", "truncated")

    quarantined = []
    monkeypatch.setattr(graph_snapshots, "load_snapshot_gcs", _corrupt_gcs)
    monkeypatch.setattr(graph_snapshots, "quarantine_snapshot_gcs", lambda: quarantined.append(True) or "moved")

    snapshotter = graph_snapshots.GraphSnapshotter(backend="auto", path=tmp_path / "graph.json")

    assert snapshotter.load() == graph_snapshots.empty_document()
    assert quarantined == [True]
