# Durable document store for delivery state, keyed by path
import json
import sqlite3
from typing import Any, Dict, List, Optional

from core.errors import NotFoundError, StorageError
from core.models import DeliveryState

NONE_YET = -1


class StateRepository:
    """SQLite-backed key/value store holding one JSON document per path.

    Paths look like ``/tiltify/<campaign>/lastId``. ``get`` raises
    ``NotFoundError`` for paths that were never written.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open state database {self.db_path}: {exc}") from exc

    def _init_db(self):
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    path TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def get(self, path: str) -> Any:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM documents WHERE path = ?", (path,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc
        finally:
            conn.close()
        if row is None:
            raise NotFoundError(path)
        try:
            return json.loads(row[0])
        except ValueError as exc:
            raise StorageError(f"Corrupt document at {path}: {exc}") from exc

    def set(self, path: str, value: Any):
        self.set_many({path: value})

    def set_many(self, values: Dict[str, Any]):
        # One transaction, so readers never see half of a write
        conn = self._connect()
        try:
            with conn:
                conn.executemany(
                    """
                    INSERT INTO documents (path, value) VALUES (?, ?)
                    ON CONFLICT(path) DO UPDATE SET value = excluded.value
                    """,
                    ((path, json.dumps(value)) for path, value in values.items()),
                )
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise StorageError(f"Failed to write {', '.join(values)}: {exc}") from exc
        finally:
            conn.close()

    def append(self, path: str, value: Any):
        conn = self._connect()
        try:
            with conn:
                row = conn.execute("SELECT value FROM documents WHERE path = ?", (path,)).fetchone()
                current = json.loads(row[0]) if row else []
                if not isinstance(current, list):
                    raise StorageError(f"Cannot append to non-list document at {path}")
                current.append(value)
                conn.execute(
                    """
                    INSERT INTO documents (path, value) VALUES (?, ?)
                    ON CONFLICT(path) DO UPDATE SET value = excluded.value
                    """,
                    (path, json.dumps(current)),
                )
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise StorageError(f"Failed to append to {path}: {exc}") from exc
        finally:
            conn.close()


class DeliveryStateRepository:
    def __init__(self, store: StateRepository):
        self.store = store

    @staticmethod
    def last_id_path(campaign_id: str) -> str:
        return f"/tiltify/{campaign_id}/lastId"

    @staticmethod
    def ids_path(campaign_id: str) -> str:
        return f"/tiltify/{campaign_id}/ids"

    def load(self, campaign_id: str) -> DeliveryState:
        try:
            last_id: Optional[int] = self.store.get(self.last_id_path(campaign_id))
        except NotFoundError:
            last_id = None
        if last_id == NONE_YET:
            last_id = None

        try:
            ids: List[int] = list(self.store.get(self.ids_path(campaign_id)))
        except NotFoundError:
            ids = []
        return DeliveryState(campaign_id=campaign_id, last_id=last_id, delivered_ids=ids)

    def save(self, state: DeliveryState):
        self.store.set_many({
            self.last_id_path(state.campaign_id): NONE_YET if state.last_id is None else state.last_id,
            self.ids_path(state.campaign_id): list(state.delivered_ids),
        })
