# catalog_sync/utils/deadletter.py
import json
import os
import threading
from typing import Any, Iterable, List

from .logger import info

# =========================================================
# Dead-letter sinks
# ---------------------------------------------------------
# Failed records land here for manual inspection. Nothing in the
# service replays them; a replay job only needs read().
# =========================================================


class DeadLetterSink:
    def append(self, records: Iterable[Any]) -> None:
        raise NotImplementedError

    def read(self) -> List[Any]:
        raise NotImplementedError


class NullSink(DeadLetterSink):
    def append(self, records):
        pass

    def read(self):
        return []


class MemorySink(DeadLetterSink):
    def __init__(self):
        self.records: List[Any] = []

    def append(self, records):
        self.records.extend(records)

    def read(self):
        return list(self.records)


def _load(path: str) -> list:
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    return data if isinstance(data, list) else []


def _dump(path: str, data: list):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2, ensure_ascii=False, default=str)
    os.replace(tmp, path)


class JsonFileSink(DeadLetterSink):
    """Single JSON array file, no rotation (audit dumps read back later)."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def append(self, records):
        records = list(records)
        if not records:
            return
        with self._lock:
            _dump(self.path, _load(self.path) + records)
        info(f"[deadletter] added {len(records)} records to {self.path}")

    def read(self):
        return _load(self.path)

    def clear(self):
        if os.path.exists(self.path):
            os.remove(self.path)


class RotatingJsonSink(DeadLetterSink):
    """
    JSON array files named ``<stream>_<n>.json`` under ``directory``.
    Once the current file holds ``rotate_at`` records or more, the next
    append starts ``<stream>_<n+1>.json``.
    """

    def __init__(self, directory: str, stream: str, rotate_at: int = 50):
        self.directory = directory
        self.stream = stream
        self.rotate_at = rotate_at
        self._lock = threading.Lock()
        self.file_number = self._last_file_number()

    def _path(self, n: int) -> str:
        return os.path.join(self.directory, f"{self.stream}_{n}.json")

    def _last_file_number(self) -> int:
        n = 1
        while os.path.exists(self._path(n + 1)):
            n += 1
        return n

    @property
    def current_path(self) -> str:
        return self._path(self.file_number)

    def append(self, records):
        records = list(records)
        if not records:
            return
        with self._lock:
            current = _load(self.current_path)
            if len(current) >= self.rotate_at:
                self.file_number += 1
                current = []
            _dump(self.current_path, current + records)
        info(f"[deadletter] added {len(records)} records to {self.current_path}")

    def read(self):
        out = []
        for n in range(1, self.file_number + 1):
            out.extend(_load(self._path(n)))
        return out


def rotating_sink(stream: str) -> RotatingJsonSink:
    from ..config import LOG_DIR, LOG_ROTATE_AT
    return RotatingJsonSink(LOG_DIR, stream, LOG_ROTATE_AT)
