# artifacts.py
from __future__ import annotations

import hashlib
import json
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Protocol, runtime_checkable

from .errors import ArtifactNotFoundError, DuplicateArtifactError

# ---------------------------------------------------------------------
# Artifacts are key-addressed byte blobs handed from a producing job to
# consuming jobs within one pipeline run. Keys are write-once per run.
# Ordering (producer before consumer) is enforced by the job graph only;
# a store never blocks waiting for a key.
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class Artifact:
    key: str
    payload: bytes
    producer: str


@runtime_checkable
class ArtifactStore(Protocol):
    def reset(self) -> None: ...

    def put(self, key: str, payload: bytes, producer: str) -> None: ...

    def get(self, key: str) -> bytes: ...

    def __contains__(self, key: object) -> bool: ...

    def keys(self) -> List[str]: ...


class MemoryArtifactStore:
    """Thread-safe in-process store. Lives for one run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: Dict[str, Artifact] = {}

    def reset(self) -> None:
        with self._lock:
            self._items.clear()

    def put(self, key: str, payload: bytes, producer: str) -> None:
        with self._lock:
            existing = self._items.get(key)
            if existing is not None:
                raise DuplicateArtifactError(key, producer, existing.producer)
            self._items[key] = Artifact(key, bytes(payload), producer)

    def get(self, key: str) -> bytes:
        with self._lock:
            item = self._items.get(key)
        if item is None:
            raise ArtifactNotFoundError(key)
        return item.payload

    def producer_of(self, key: str) -> str:
        with self._lock:
            item = self._items.get(key)
        if item is None:
            raise ArtifactNotFoundError(key)
        return item.producer

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._items)


class DirectoryArtifactStore:
    """
    File-based store:
      root/
        <sha256(key)>.bin
        manifest.json      {key: {"file": ..., "producer": ..., "size": ...}}

    reset() removes only the blobs listed in the manifest and the manifest
    itself, so `root` may be shared with other files.
    """

    MANIFEST = "manifest.json"

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _blob_path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.root / f"{digest}.bin"

    def _read_manifest(self) -> Dict[str, Dict]:
        man = self.root / self.MANIFEST
        if not man.exists():
            return {}
        return json.loads(man.read_text(encoding="utf-8"))

    def _write_manifest(self, manifest: Dict[str, Dict]) -> None:
        man = self.root / self.MANIFEST
        tmp = man.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(manifest, sort_keys=True, indent=2), encoding="utf-8")
        tmp.replace(man)

    def reset(self) -> None:
        with self._lock:
            for entry in self._read_manifest().values():
                (self.root / entry["file"]).unlink(missing_ok=True)
            (self.root / self.MANIFEST).unlink(missing_ok=True)
            self.root.mkdir(parents=True, exist_ok=True)

    def put(self, key: str, payload: bytes, producer: str) -> None:
        with self._lock:
            manifest = self._read_manifest()
            if key in manifest:
                raise DuplicateArtifactError(key, producer, manifest[key]["producer"])

            blob = self._blob_path(key)
            # "xb" makes the write itself exclusive
            with open(blob, "xb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())

            manifest[key] = {"file": blob.name, "producer": producer, "size": len(payload)}
            self._write_manifest(manifest)

    def get(self, key: str) -> bytes:
        with self._lock:
            manifest = self._read_manifest()
        if key not in manifest:
            raise ArtifactNotFoundError(key)
        return (self.root / manifest[key]["file"]).read_bytes()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._read_manifest()

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._read_manifest())
