from __future__ import annotations

import json
import logging
import os
import shutil
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

STORAGE_KINDS = ("request_queues", "datasets", "key_value_stores")


class FrontierStore(ABC):
    """Durable ordered collection of pending request records plus handled ids.

    Records are plain dicts carrying at least an "id" key. Callers serialize
    access; implementations only need to be consistent per call.
    """

    @abstractmethod
    def append(self, record: Record) -> None:
        """Add a record at the back of the pending order."""

    @abstractmethod
    def prepend(self, record: Record) -> None:
        """Add a record at the front of the pending order."""

    @abstractmethod
    def pop(self) -> Optional[Record]:
        """Remove and return the front record, or None when empty."""

    @abstractmethod
    def contains(self, request_id: str) -> bool:
        """True if the id is pending or handled."""

    @abstractmethod
    def mark_handled(self, request_id: str) -> bool:
        """Record the id as handled; False if it already was."""

    @abstractmethod
    def pending_count(self) -> int:
        ...

    @abstractmethod
    def handled_count(self) -> int:
        ...


class MemoryFrontierStore(FrontierStore):
    def __init__(self) -> None:
        self._pending: Deque[Record] = deque()
        self._handled: Set[str] = set()

    def append(self, record: Record) -> None:
        self._pending.append(dict(record))

    def prepend(self, record: Record) -> None:
        self._pending.appendleft(dict(record))

    def pop(self) -> Optional[Record]:
        if not self._pending:
            return None
        return self._pending.popleft()

    def contains(self, request_id: str) -> bool:
        if request_id in self._handled:
            return True
        return any(r.get("id") == request_id for r in self._pending)

    def mark_handled(self, request_id: str) -> bool:
        if request_id in self._handled:
            return False
        self._handled.add(request_id)
        return True

    def pending_count(self) -> int:
        return len(self._pending)

    def handled_count(self) -> int:
        return len(self._handled)


def _read_json(path: str, default: Any) -> Any:
    if not os.path.exists(path):
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.debug("Unreadable state file %s treated as empty: %s", path, exc)
        return default
    if not isinstance(data, type(default)):
        logger.debug("Unexpected content in %s treated as empty", path)
        return default
    return data


def _write_json(path: str, data: Any) -> None:
    tmp_path = path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    os.replace(tmp_path, path)


class JsonFrontierStore(FrontierStore):
    """Keeps queue.json (pending records) and handled.json (ids) in a directory.

    Every operation re-reads the files, so a store survives process restarts
    and corrupted files degrade to an empty collection.
    """

    def __init__(self, directory: str) -> None:
        self._dir = directory
        os.makedirs(self._dir, exist_ok=True)
        self._queue_file = os.path.join(self._dir, "queue.json")
        self._handled_file = os.path.join(self._dir, "handled.json")
        if not os.path.exists(self._queue_file):
            _write_json(self._queue_file, [])
        if not os.path.exists(self._handled_file):
            _write_json(self._handled_file, [])

    def _queue(self) -> List[Record]:
        return [r for r in _read_json(self._queue_file, []) if isinstance(r, dict) and "id" in r]

    def _handled(self) -> List[str]:
        return [h for h in _read_json(self._handled_file, []) if isinstance(h, str)]

    def append(self, record: Record) -> None:
        queue = self._queue()
        queue.append(dict(record))
        _write_json(self._queue_file, queue)

    def prepend(self, record: Record) -> None:
        queue = self._queue()
        queue.insert(0, dict(record))
        _write_json(self._queue_file, queue)

    def pop(self) -> Optional[Record]:
        queue = self._queue()
        if not queue:
            return None
        record = queue.pop(0)
        _write_json(self._queue_file, queue)
        return record

    def contains(self, request_id: str) -> bool:
        if request_id in self._handled():
            return True
        return any(r["id"] == request_id for r in self._queue())

    def mark_handled(self, request_id: str) -> bool:
        handled = self._handled()
        if request_id in handled:
            return False
        handled.append(request_id)
        _write_json(self._handled_file, handled)
        return True

    def pending_count(self) -> int:
        return len(self._queue())

    def handled_count(self) -> int:
        return len(self._handled())


class RecordSink(ABC):
    """Destination for records extracted by route handlers."""

    def push(self, record: Record) -> Record:
        """Stamp the record with an id and creation time, then persist it."""
        stored = dict(record)
        stored["id"] = str(uuid.uuid4())
        stored["created_at"] = int(time.time())
        self._store(stored)
        return stored

    @abstractmethod
    def _store(self, record: Record) -> None:
        ...

    @abstractmethod
    def all(self) -> List[Record]:
        """Return every stored record in insertion order."""

    def info(self) -> Dict[str, int]:
        return {"count": len(self.all())}


class MemoryRecordSink(RecordSink):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: List[Record] = []

    def _store(self, record: Record) -> None:
        with self._lock:
            self._records.append(record)

    def all(self) -> List[Record]:
        with self._lock:
            return [dict(r) for r in self._records]


class JsonlRecordSink(RecordSink):
    """Stores records as JSON Lines (.jsonl), one object per line."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.Lock()
        parent = os.path.dirname(os.path.abspath(path))
        os.makedirs(parent, exist_ok=True)

    def _store(self, record: Record) -> None:
        with self._lock:
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
                f.flush()

    def all(self) -> List[Record]:
        with self._lock:
            if not os.path.exists(self._path):
                return []
            records: List[Record] = []
            with open(self._path, "r", encoding="utf-8") as f:
                for lineno, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        item = json.loads(line)
                    except ValueError:
                        logger.debug("Skipping corrupted record at %s:%d", self._path, lineno)
                        continue
                    if isinstance(item, dict):
                        records.append(item)
            return records


def open_storage(
    base_dir: str,
    queue_name: str = "default",
    dataset_name: str = "default",
) -> Tuple[JsonFrontierStore, JsonlRecordSink]:
    """Open the on-disk frontier store and record sink under base_dir."""
    store = JsonFrontierStore(os.path.join(base_dir, "request_queues", queue_name))
    sink = JsonlRecordSink(os.path.join(base_dir, "datasets", dataset_name, "data.jsonl"))
    return store, sink


class KeyValueStore(ABC):
    """Named JSON-serializable values, such as run state or snapshots."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> Any:
        """Store value under key and return it."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key; False if it was not present."""

    @abstractmethod
    def all(self) -> Dict[str, Any]:
        ...


_MISSING = object()


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: Dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: str, value: Any) -> Any:
        with self._lock:
            self._values[key] = value
        return value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._values.pop(key, _MISSING) is not _MISSING

    def all(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._values)


class JsonKeyValueStore(KeyValueStore):
    """Keeps every key in one store.json file under a directory."""

    def __init__(self, directory: str) -> None:
        self._dir = directory
        self._lock = threading.Lock()
        os.makedirs(self._dir, exist_ok=True)
        self._store_file = os.path.join(self._dir, "store.json")
        if not os.path.exists(self._store_file):
            _write_json(self._store_file, {})

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return _read_json(self._store_file, {}).get(key, default)

    def set(self, key: str, value: Any) -> Any:
        with self._lock:
            values = _read_json(self._store_file, {})
            values[key] = value
            _write_json(self._store_file, values)
        return value

    def delete(self, key: str) -> bool:
        with self._lock:
            values = _read_json(self._store_file, {})
            if key not in values:
                return False
            del values[key]
            _write_json(self._store_file, values)
            return True

    def all(self) -> Dict[str, Any]:
        with self._lock:
            return _read_json(self._store_file, {})


def open_key_value_store(base_dir: str, name: str = "default") -> JsonKeyValueStore:
    return JsonKeyValueStore(os.path.join(base_dir, "key_value_stores", name))


def clear_storage(base_dir: str, kind: Optional[str] = None) -> None:
    """Delete everything of one storage kind under base_dir, or every kind.

    The emptied directories are recreated so stores can be reopened.
    """
    if kind is None:
        for each in STORAGE_KINDS:
            clear_storage(base_dir, each)
        return
    if kind not in STORAGE_KINDS:
        raise ValueError(f"Unknown storage kind: {kind} (expected one of {', '.join(STORAGE_KINDS)})")
    directory = os.path.join(base_dir, kind)
    shutil.rmtree(directory, ignore_errors=True)
    os.makedirs(directory, exist_ok=True)
    logger.info("Cleared %s", directory)
