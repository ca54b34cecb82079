from __future__ import annotations

import json
import shutil
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from opos.domain.errors import StorageUnavailable, ValidationError
from opos.repositories.contracts import PARTITION_KEYS


def entity_key(partition: str, entity: dict) -> str:
    key_field = partition_key_field(partition)
    if not isinstance(entity, dict) or entity.get(key_field) in (None, ""):
        raise ValidationError(f"Entity for '{partition}' must carry '{key_field}'.")
    return str(entity[key_field])


def partition_key_field(partition: str) -> str:
    try:
        return PARTITION_KEYS[partition]
    except KeyError:
        raise ValidationError(f"Unknown partition: {partition}") from None


class SqliteStore:
    """Durable partitioned key-value store.

    Every entity is a JSON document stored under ``(partition, key)``. Each
    public call runs in its own connection and transaction, so a single
    ``put`` is atomic and ``put_many`` is all-or-nothing.
    """

    def __init__(self, db_path: Path | str, timeout: float = 5.0):
        self.db_path = str(db_path)
        self.timeout = timeout

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.execute("PRAGMA journal_mode = WAL;")
        conn.execute("PRAGMA synchronous = FULL;")
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Cursor]:
        try:
            conn = self._conn()
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Cannot open local store at {self.db_path}: {exc}") from exc
        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageUnavailable(f"Local store operation failed: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = self._conn()
        except (OSError, sqlite3.Error) as exc:
            raise StorageUnavailable(f"Cannot open local store at {self.db_path}: {exc}") from exc
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_partition_index),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise StorageUnavailable(
                "Local store migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS entities (
            partition TEXT NOT NULL,
            key TEXT NOT NULL,
            body TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            PRIMARY KEY (partition, key)
        )
        """
        )

    def _migration_v2_partition_index(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS idx_entities_partition_updated ON entities(partition, updated_at)")

    # ---------- Entities ----------
    def put(self, partition: str, entity: dict) -> None:
        key = entity_key(partition, entity)
        body = json.dumps(entity, ensure_ascii=False)
        with self._session() as cur:
            cur.execute(
                """
                INSERT INTO entities (partition, key, body, updated_at)
                VALUES (?, ?, ?, datetime('now'))
                ON CONFLICT(partition, key) DO UPDATE SET body=excluded.body, updated_at=excluded.updated_at
                """,
                (partition, key, body),
            )

    def put_many(self, partition: str, entities: Iterable[dict]) -> int:
        rows = [(partition, entity_key(partition, e), json.dumps(e, ensure_ascii=False)) for e in entities]
        if not rows:
            return 0
        with self._session() as cur:
            cur.executemany(
                """
                INSERT INTO entities (partition, key, body, updated_at)
                VALUES (?, ?, ?, datetime('now'))
                ON CONFLICT(partition, key) DO UPDATE SET body=excluded.body, updated_at=excluded.updated_at
                """,
                rows,
            )
        return len(rows)

    def get(self, partition: str, key: object) -> Optional[dict]:
        partition_key_field(partition)
        with self._session() as cur:
            cur.execute("SELECT body FROM entities WHERE partition=? AND key=?", (partition, str(key)))
            row = cur.fetchone()
        return json.loads(row[0]) if row else None

    def get_all(self, partition: str) -> list[dict]:
        partition_key_field(partition)
        with self._session() as cur:
            cur.execute("SELECT body FROM entities WHERE partition=? ORDER BY updated_at, rowid", (partition,))
            rows = cur.fetchall()
        return [json.loads(r[0]) for r in rows]

    def delete(self, partition: str, key: object) -> None:
        partition_key_field(partition)
        with self._session() as cur:
            cur.execute("DELETE FROM entities WHERE partition=? AND key=?", (partition, str(key)))

    def clear(self, partition: str) -> None:
        partition_key_field(partition)
        with self._session() as cur:
            cur.execute("DELETE FROM entities WHERE partition=?", (partition,))

    def count(self, partition: str) -> int:
        partition_key_field(partition)
        with self._session() as cur:
            cur.execute("SELECT COUNT(*) FROM entities WHERE partition=?", (partition,))
            return int(cur.fetchone()[0])

    def integrity_check(self) -> str:
        with self._session() as cur:
            cur.execute("PRAGMA integrity_check")
            row = cur.fetchone()
        return str(row[0]) if row else "unknown"
