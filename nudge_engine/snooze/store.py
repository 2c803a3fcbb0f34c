"""
Snooze Store — durable, TTL-bounded suppression of individual nudges.

Behavioral Contract:
- One JSON array of {"nudgeId", "expiresAt"} under a single well-known key.
- Reads are fail-open: an unreadable or corrupt list means nothing is snoozed,
  whatever the backend raises.
- Expired entries are ignored at read time; pruning is a separate, idempotent
  compaction and never a precondition for a read.
- Single writer per device. Read-modify-write is not atomic across processes.

Lifecycle per entry: absent -> active (snooze) -> expired (time passes)
-> absent (prune_expired).
"""

import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from pydantic import TypeAdapter, ValidationError

from nudge_engine.config import SNOOZED_NUDGES_KEY
from nudge_engine.exceptions import SnoozeStoreError
from nudge_engine.models.snooze import SnoozeEntry, to_epoch_millis

logger = logging.getLogger(__name__)

_ENTRY_LIST = TypeAdapter(List[SnoozeEntry])


class KeyValueBackend:
    """Minimal string key/value persistence."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError


class InMemoryKeyValueBackend(KeyValueBackend):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SQLiteKeyValueBackend(KeyValueBackend):
    """
    Key/value table in SQLite.
    Use a file path to survive restarts; ":memory:" for tests.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.commit()

    def get(self, key: str) -> Optional[str]:
        row = self._conn.execute(
            "SELECT value FROM kv_store WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO kv_store (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = datetime('now')
            """,
            (key, value),
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()


class SnoozeStore:
    """Suppression entries over a KeyValueBackend."""

    def __init__(
        self,
        backend: Optional[KeyValueBackend] = None,
        key: str = SNOOZED_NUDGES_KEY,
    ):
        self.backend = backend or InMemoryKeyValueBackend()
        self.key = key

    # --- Persistence ---

    @staticmethod
    def _parse(raw: Optional[str]) -> List[SnoozeEntry]:
        """Decode the persisted list. Raises on malformed payloads."""
        if not raw:
            return []
        return _ENTRY_LIST.validate_json(raw)

    def _load_or_empty(self) -> List[SnoozeEntry]:
        try:
            return self._parse(self.backend.get(self.key))
        except Exception:
            logger.warning(
                "Unreadable snooze entries, treating as empty",
                extra={"context": {"key": self.key}},
                exc_info=True,
            )
            return []

    def _save(self, entries: List[SnoozeEntry]) -> None:
        payload = json.dumps(
            [e.model_dump(by_alias=True) for e in entries], separators=(",", ":")
        )
        try:
            self.backend.set(self.key, payload)
        except SnoozeStoreError:
            raise
        except Exception as e:
            raise SnoozeStoreError(f"Failed to write snooze entries: {e}") from e

    # --- Reads ---

    def entries(self) -> List[SnoozeEntry]:
        """All persisted entries, expired ones included."""
        return self._load_or_empty()

    def active_entries(self, now: Optional[datetime] = None) -> List[SnoozeEntry]:
        now = now or datetime.now(timezone.utc)
        return [e for e in self._load_or_empty() if e.is_active(now)]

    def active_ids(self, now: Optional[datetime] = None) -> Set[str]:
        """Ids currently suppressed. Used by the Aggregator once per cycle."""
        return {e.nudge_id for e in self.active_entries(now)}

    def is_snoozed(self, nudge_id: str, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return any(
            e.nudge_id == nudge_id and e.is_active(now)
            for e in self._load_or_empty()
        )

    # --- Writes ---

    def snooze(
        self,
        nudge_id: str,
        duration: timedelta,
        now: Optional[datetime] = None,
    ) -> SnoozeEntry:
        """Upsert a suppression entry expiring at now + duration."""
        now = now or datetime.now(timezone.utc)
        entry = SnoozeEntry(
            nudge_id=nudge_id,
            expires_at=to_epoch_millis(now + duration),
        )

        entries = [e for e in self._load_or_empty() if e.nudge_id != nudge_id]
        entries.append(entry)
        self._save(entries)

        logger.debug(
            "Snoozed nudge",
            extra={"context": {"nudge_id": nudge_id, "expires_at": entry.expires_at}},
        )
        return entry

    def unsnooze(self, nudge_id: str, now: Optional[datetime] = None) -> SnoozeEntry:
        """Lift a suppression by snoozing for zero time."""
        return self.snooze(nudge_id, timedelta(0), now)

    def prune_expired(self, now: Optional[datetime] = None) -> int:
        """
        Rewrite the persisted list keeping only entries still in force.
        Returns the number of entries removed. A corrupt list is reset to
        empty; a failed backend read leaves the stored list untouched.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = to_epoch_millis(now)

        try:
            raw = self.backend.get(self.key)
        except Exception:
            logger.warning(
                "Snooze entries unreadable, prune skipped",
                extra={"context": {"key": self.key}},
                exc_info=True,
            )
            return 0

        try:
            entries = self._parse(raw)
        except (ValidationError, ValueError) as e:
            logger.warning(
                "Resetting corrupt snooze entries",
                extra={"context": {"key": self.key, "error": str(e)}},
            )
            self._save([])
            return 0

        kept = [e for e in entries if e.expires_at > cutoff]
        removed = len(entries) - len(kept)
        if removed:
            self._save(kept)
            logger.debug("Pruned expired snoozes", extra={"context": {"removed": removed}})
        return removed
