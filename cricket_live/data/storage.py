"""
Persistence backends for the match store.

EntityStore keeps the four entity collections in SQLite, one table per
collection: the JSON document plus indexed foreign-key columns for
secondary lookups. KeyValueStore holds the handful of small scalar/JSON
values (current match pointer, preferences, live score snapshot, career
tables) in a single JSON file.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

# collection -> indexed columns (document key == column name)
COLLECTIONS: dict[str, tuple[str, ...]] = {
    "players": ("team_id", "name", "role"),
    "teams": ("name",),
    "matches": ("status", "team_a_id", "team_b_id", "created_at"),
    "ball_events": ("match_id", "batsman_id", "bowler_id", "timestamp"),
}


class DuplicateEntityError(ValueError):
    """Insert of an id that already exists in the collection."""


class EntityStore:
    """SQLite-backed document store for players, teams, matches and ball events."""

    def __init__(self, database_path: Union[str, Path] = ":memory:"):
        self.database_path = str(database_path)
        if self.database_path != ":memory:":
            Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.database_path)
        self._conn.row_factory = sqlite3.Row
        self._initialize_database()

    def _initialize_database(self) -> None:
        cursor = self._conn.cursor()
        for collection, indexes in COLLECTIONS.items():
            columns = "".join(f", {col} TEXT" for col in indexes)
            cursor.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {collection} (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    data TEXT NOT NULL{columns}
                )
                """
            )
            for col in indexes:
                cursor.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{collection}_{col} "
                    f"ON {collection} ({col})"
                )
        self._conn.commit()
        logger.debug("Entity store ready at %s", self.database_path)

    @staticmethod
    def _check(collection: str) -> tuple[str, ...]:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        return COLLECTIONS[collection]

    @staticmethod
    def _index_values(doc: dict[str, Any], indexes: tuple[str, ...]) -> list[Any]:
        values = []
        for col in indexes:
            value = doc.get(col)
            values.append(None if value is None else str(value))
        return values

    # ── Reads ────────────────────────────────────────────────────────

    def get(self, collection: str, entity_id: str) -> Optional[dict[str, Any]]:
        self._check(collection)
        row = self._conn.execute(
            f"SELECT data FROM {collection} WHERE id = ?", (entity_id,)
        ).fetchone()
        return json.loads(row["data"]) if row else None

    def all(self, collection: str) -> list[dict[str, Any]]:
        self._check(collection)
        rows = self._conn.execute(
            f"SELECT data FROM {collection} ORDER BY seq"
        ).fetchall()
        return [json.loads(r["data"]) for r in rows]

    def query_by(self, collection: str, index: str, value: Any) -> list[dict[str, Any]]:
        """All documents whose indexed column equals value, in insertion order."""
        indexes = self._check(collection)
        if index not in indexes:
            raise ValueError(f"{collection} has no index on {index}")
        if value is None:
            rows = self._conn.execute(
                f"SELECT data FROM {collection} WHERE {index} IS NULL ORDER BY seq"
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT data FROM {collection} WHERE {index} = ? ORDER BY seq",
                (str(value),),
            ).fetchall()
        return [json.loads(r["data"]) for r in rows]

    def count(self, collection: str) -> int:
        self._check(collection)
        row = self._conn.execute(f"SELECT COUNT(*) AS n FROM {collection}").fetchone()
        return int(row["n"])

    # ── Writes ───────────────────────────────────────────────────────

    def add(self, collection: str, doc: dict[str, Any]) -> None:
        indexes = self._check(collection)
        columns = ", ".join(("id", "data") + indexes)
        placeholders = ", ".join("?" for _ in range(2 + len(indexes)))
        try:
            self._conn.execute(
                f"INSERT INTO {collection} ({columns}) VALUES ({placeholders})",
                [doc["id"], json.dumps(doc)] + self._index_values(doc, indexes),
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateEntityError(
                f"{collection} already contains id {doc['id']}"
            ) from e
        self._conn.commit()

    def put(self, collection: str, doc: dict[str, Any]) -> None:
        """Replace an existing document in full, keeping its insertion order."""
        indexes = self._check(collection)
        assignments = ", ".join(f"{col} = ?" for col in ("data",) + indexes)
        cursor = self._conn.execute(
            f"UPDATE {collection} SET {assignments} WHERE id = ?",
            [json.dumps(doc)] + self._index_values(doc, indexes) + [doc["id"]],
        )
        if cursor.rowcount == 0:
            self._conn.rollback()
            raise KeyError(f"{collection} has no id {doc['id']}")
        self._conn.commit()

    def delete(self, collection: str, entity_id: str) -> bool:
        self._check(collection)
        cursor = self._conn.execute(
            f"DELETE FROM {collection} WHERE id = ?", (entity_id,)
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def clear(self, collection: str) -> None:
        self._check(collection)
        self._conn.execute(f"DELETE FROM {collection}")
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()


class KeyValueStore:
    """Small JSON-file store for independently settable keys."""

    CURRENT_MATCH_ID = "current_match_id"
    PREFERENCES = "preferences"
    LIVE_SCORE = "live_score"
    CAREER_STATS = "career_stats"
    LEADERBOARDS = "leaderboards"

    def __init__(self, path: Optional[Union[str, Path]] = None):
        # path=None keeps values in memory only
        self.path = Path(path) if path is not None else None
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Corrupt key-value file %s, starting empty: %s", self.path, e)
            return {}

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, default=str)
        os.replace(tmp, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._flush()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._flush()

    def clear(self) -> None:
        self._data = {}
        self._flush()

    def __contains__(self, key: str) -> bool:
        return key in self._data


@dataclass
class Preferences:
    default_overs: int = 20
    auto_save_interval_ms: int = 5000
    enable_camera_detection: bool = True
    confidence_threshold: float = 0.7  # for CV detections


def load_preferences(kv: KeyValueStore) -> Preferences:
    """Stored preferences merged over defaults; unknown keys are ignored."""
    stored = kv.get(KeyValueStore.PREFERENCES) or {}
    known = {f.name for f in fields(Preferences)}
    return Preferences(**{k: v for k, v in stored.items() if k in known})


def save_preferences(kv: KeyValueStore, **changes: Any) -> Preferences:
    """Merge changes into the stored preferences."""
    current = asdict(load_preferences(kv))
    unknown = set(changes) - set(current)
    if unknown:
        raise ValueError(f"Unknown preference(s): {', '.join(sorted(unknown))}")
    current.update(changes)
    kv.set(KeyValueStore.PREFERENCES, current)
    return Preferences(**current)
