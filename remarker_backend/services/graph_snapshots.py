"""Durable snapshots of the discourse graph (local JSON file or Google Cloud Storage)."""

import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from google.cloud import storage

from remarker_backend.config import GCS_BUCKET_NAME, GCS_FOLDER, GRAPH_SNAPSHOT_PATH

logger = logging.getLogger("remarker_backend")

LOCAL_SNAPSHOT_PATH = Path(GRAPH_SNAPSHOT_PATH).expanduser()
SNAPSHOT_OBJECT_NAME = "discourse_graph.json"


class CorruptSnapshotError(ValueError):
    """A stored snapshot exists but cannot be decoded into a graph document."""

    def __init__(self, storage_kind: str, location: str, reason: str):
        self.storage_kind = storage_kind
        self.location = location
        super().__init__(f"Corrupt {storage_kind} snapshot at {location}: {reason}")


def empty_document() -> Dict[str, Any]:
    return {"nodes": {}, "retired_ids": []}


def _corrupt_suffix() -> str:
    return f"corrupt-{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ')}"


def _normalize_backend(backend: str) -> str:
    normalized = str(backend or "auto").strip().lower()
    if normalized not in {"auto", "gcs", "local"}:
        raise ValueError("SNAPSHOT_BACKEND must be one of: auto, gcs, local")
    return normalized


def _gcs_object_path() -> str:
    object_prefix = str(GCS_FOLDER or "").strip().strip("/")
    return f"{object_prefix}/{SNAPSHOT_OBJECT_NAME}" if object_prefix else SNAPSHOT_OBJECT_NAME


def normalize_document(data: Any) -> Dict[str, Any]:
    """
    Coerce a loaded snapshot into ``{"nodes": {...}, "retired_ids": [...]}``.

    A bare ``id -> record`` mapping (the legacy bot format) is accepted as the
    node mapping with no retired ids.
    """
    if not isinstance(data, dict):
        raise ValueError("Snapshot must be a JSON object")
    if isinstance(data.get("nodes"), dict):
        return {
            "nodes": data["nodes"],
            "retired_ids": [str(node_id) for node_id in data.get("retired_ids", []) or []],
        }
    return {"nodes": data, "retired_ids": []}


def _decode_document(raw: Any, storage_kind: str, location: str) -> Dict[str, Any]:
    try:
        return normalize_document(json.loads(raw))
    except ValueError as exc:
        raise CorruptSnapshotError(storage_kind, location, str(exc)) from exc


def write_snapshot_local(document: Dict[str, Any], path: Optional[Path] = None) -> str:
    target = Path(path or LOCAL_SNAPSHOT_PATH)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_name(f"{target.name}.tmp")
    tmp_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
    os.replace(tmp_path, target)
    return str(target)


def write_snapshot_gcs(document: Dict[str, Any]) -> str:
    if not GCS_BUCKET_NAME:
        raise ValueError("GCS_BUCKET_NAME is not configured.")

    object_path = _gcs_object_path()
    client = storage.Client()
    bucket = client.bucket(GCS_BUCKET_NAME)
    blob = bucket.blob(object_path)
    blob.upload_from_string(json.dumps(document, indent=2), content_type="application/json")
    return object_path


def write_snapshot_with_backend(
    document: Dict[str, Any],
    backend: str = "auto",
    path: Optional[Path] = None,
) -> Dict[str, str]:
    resolved_backend = _normalize_backend(backend)

    if resolved_backend == "local":
        return {"storage": "local", "location": write_snapshot_local(document, path)}

    if resolved_backend == "gcs":
        return {"storage": "gcs", "location": write_snapshot_gcs(document)}

    # auto: try GCS first, then local fallback
    try:
        return {"storage": "gcs", "location": write_snapshot_gcs(document)}
    except Exception as exc:  # noqa: BLE001
        logger.warning("[SNAPSHOT] GCS save failed; using local fallback: %s", exc)
        return {"storage": "local_fallback", "location": write_snapshot_local(document, path)}


def load_snapshot_local(path: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    target = Path(path or LOCAL_SNAPSHOT_PATH)
    if not target.exists():
        return None
    return _decode_document(target.read_text(encoding="utf-8"), "local", str(target))


def load_snapshot_gcs() -> Optional[Dict[str, Any]]:
    if not GCS_BUCKET_NAME:
        raise ValueError("GCS_BUCKET_NAME is not configured.")

    client = storage.Client()
    bucket = client.bucket(GCS_BUCKET_NAME)
    object_path = _gcs_object_path()
    blob = bucket.blob(object_path)
    if not blob.exists():
        return None
    return _decode_document(blob.download_as_string(), "gcs", object_path)


def quarantine_snapshot_local(path: Optional[Path] = None) -> Optional[str]:
    """Rename an unreadable snapshot so the next write cannot overwrite it."""
    target = Path(path or LOCAL_SNAPSHOT_PATH)
    if not target.exists():
        return None
    quarantined = target.with_name(f"{target.name}.{_corrupt_suffix()}")
    os.replace(target, quarantined)
    return str(quarantined)


def quarantine_snapshot_gcs() -> Optional[str]:
    if not GCS_BUCKET_NAME:
        return None

    client = storage.Client()
    bucket = client.bucket(GCS_BUCKET_NAME)
    blob = bucket.blob(_gcs_object_path())
    if not blob.exists():
        return None
    quarantined = f"{blob.name}.{_corrupt_suffix()}"
    bucket.copy_blob(blob, bucket, quarantined)
    blob.delete()
    return quarantined


def load_snapshot_with_backend(backend: str = "auto", path: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    resolved_backend = _normalize_backend(backend)

    if resolved_backend == "local":
        return load_snapshot_local(path)

    if resolved_backend == "gcs":
        return load_snapshot_gcs()

    try:
        document = load_snapshot_gcs()
    except CorruptSnapshotError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.warning("[SNAPSHOT] GCS load failed; using local fallback: %s", exc)
        return load_snapshot_local(path)
    if document is None:
        return load_snapshot_local(path)
    return document


class GraphSnapshotter:
    """
    Fire-and-forget snapshot writer.

    ``schedule`` records the latest document and makes sure a single writer
    task is draining it; intermediate documents are coalesced so the last
    scheduled document always lands last. ``flush`` waits for the writer.
    """

    def __init__(self, backend: str = "local", path: Optional[Path] = None):
        self.backend = _normalize_backend(backend)
        self.path = Path(path) if path else None
        self.writes_completed = 0
        self.last_error: Optional[BaseException] = None
        self._pending: Optional[Dict[str, Any]] = None
        self._writer: Optional[asyncio.Task] = None

    def load(self) -> Dict[str, Any]:
        """Read the stored snapshot; an unreadable one is moved aside and the graph starts empty."""
        try:
            document = load_snapshot_with_backend(self.backend, self.path)
        except CorruptSnapshotError as exc:
            logger.exception("[SNAPSHOT] %s; starting with empty graph", exc)
            if exc.storage_kind == "gcs":
                moved_to = quarantine_snapshot_gcs()
            else:
                moved_to = quarantine_snapshot_local(self.path)
            logger.warning("[SNAPSHOT] Unreadable snapshot preserved at %s", moved_to)
            return empty_document()
        if document is None:
            logger.info("[SNAPSHOT] No existing snapshot; starting with empty graph")
            return empty_document()
        logger.info("[SNAPSHOT] Loaded %d node record(s)", len(document["nodes"]))
        return document

    def schedule(self, document: Dict[str, Any]) -> None:
        self._pending = document
        if self._writer is None or self._writer.done():
            self._writer = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._pending is not None:
            document, self._pending = self._pending, None
            try:
                result = await asyncio.to_thread(write_snapshot_with_backend, document, self.backend, self.path)
                self.writes_completed += 1
                logger.debug("[SNAPSHOT] Saved to %s (%s)", result["location"], result["storage"])
            except Exception as exc:  # noqa: BLE001
                self.last_error = exc
                logger.exception("[SNAPSHOT] Failed to write graph snapshot: %s", exc)

    async def flush(self) -> None:
        while self._writer is not None and not self._writer.done():
            await self._writer
