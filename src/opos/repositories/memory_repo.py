from __future__ import annotations

import copy
import threading
from typing import Iterable, Optional

from opos.repositories.sqlite_repo import entity_key, partition_key_field


class MemoryStore:
    """Non-durable store with the same contract as ``SqliteStore``.

    Used where no durable storage is available to the hosting process.
    Nothing survives the process.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, dict]] = {}

    def init_db(self) -> None:
        return None

    def _partition(self, partition: str) -> dict[str, dict]:
        partition_key_field(partition)
        return self._data.setdefault(partition, {})

    def put(self, partition: str, entity: dict) -> None:
        key = entity_key(partition, entity)
        with self._lock:
            self._partition(partition)[key] = copy.deepcopy(entity)

    def put_many(self, partition: str, entities: Iterable[dict]) -> int:
        staged = {entity_key(partition, e): copy.deepcopy(e) for e in entities}
        with self._lock:
            self._partition(partition).update(staged)
        return len(staged)

    def get(self, partition: str, key: object) -> Optional[dict]:
        with self._lock:
            found = self._partition(partition).get(str(key))
            return copy.deepcopy(found) if found is not None else None

    def get_all(self, partition: str) -> list[dict]:
        with self._lock:
            return [copy.deepcopy(e) for e in self._partition(partition).values()]

    def delete(self, partition: str, key: object) -> None:
        with self._lock:
            self._partition(partition).pop(str(key), None)

    def clear(self, partition: str) -> None:
        with self._lock:
            self._partition(partition).clear()

    def count(self, partition: str) -> int:
        with self._lock:
            return len(self._partition(partition))

    def integrity_check(self) -> str:
        return "ok"
