"""Persistent key-value stores for session, user and project records.

Architectural role:
    Backs `MemoryStore` with a minimal read/write contract keyed by record kind and
    id. Last write wins; callers serialize writes per key.

Implementations:
    - `JsonFileStore`: one JSON document per record under
      `<base_dir>/<kind>/<id>.json`, written atomically through a temp file.
    - `InMemoryStore`: dict-backed store for tests and ephemeral deployments.

Failure behavior:
    Unreadable documents are logged and treated as missing so a corrupt file never
    blocks a request; write failures propagate to the caller.
"""

import hashlib
import json
import logging
import os
import re
import threading
from typing import Any, Protocol


logger = logging.getLogger(__name__)

RECORD_KINDS = ("session", "user", "project")
_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


class PersistentStore(Protocol):
    def read(self, kind: str, record_id: str) -> dict[str, Any] | None:
        ...

    def write(self, kind: str, record_id: str, record: dict[str, Any]) -> None:
        ...

    def delete(self, kind: str, record_id: str) -> None:
        ...


def atomic_json_save(path: str, data: Any) -> None:
    """Persist JSON data atomically via temporary file replacement."""
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp, path)


def _check_kind(kind: str) -> None:
    if kind not in RECORD_KINDS:
        raise ValueError(f"Unknown record kind: {kind!r}")


class JsonFileStore:
    def __init__(self, base_dir: str):
        self.base_dir = base_dir

    def _path(self, kind: str, record_id: str) -> str:
        _check_kind(kind)
        if _SAFE_ID.match(record_id) and record_id not in (".", ".."):
            name = record_id
        else:
            name = hashlib.sha256(record_id.encode("utf-8")).hexdigest()
        directory = os.path.join(self.base_dir, kind)
        os.makedirs(directory, exist_ok=True)
        return os.path.join(directory, f"{name}.json")

    def read(self, kind: str, record_id: str) -> dict[str, Any] | None:
        path = self._path(kind, record_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            logger.exception("Failed to load %s record from %s", kind, path)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object %s record at %s", kind, path)
            return None
        return data

    def write(self, kind: str, record_id: str, record: dict[str, Any]) -> None:
        atomic_json_save(self._path(kind, record_id), record)

    def delete(self, kind: str, record_id: str) -> None:
        path = self._path(kind, record_id)
        if os.path.exists(path):
            os.remove(path)


class InMemoryStore:
    def __init__(self):
        self._records: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def read(self, kind: str, record_id: str) -> dict[str, Any] | None:
        _check_kind(kind)
        with self._lock:
            record = self._records.get((kind, record_id))
            return json.loads(json.dumps(record)) if record is not None else None

    def write(self, kind: str, record_id: str, record: dict[str, Any]) -> None:
        _check_kind(kind)
        with self._lock:
            self._records[(kind, record_id)] = json.loads(json.dumps(record))

    def delete(self, kind: str, record_id: str) -> None:
        _check_kind(kind)
        with self._lock:
            self._records.pop((kind, record_id), None)
