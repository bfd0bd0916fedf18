"""
Conversion history storage.

A small key-value store of expanded BOM results, keyed by a numeric id (epoch
milliseconds at save time) and ordered by conversion timestamp. Writes are
last-write-wins; after every save only the newest `keep_last` results are
kept.

HistoryStore defines the interface. InMemoryHistoryStore backs tests and
one-shot CLI runs; PostgresHistoryStore (postgres_store.py) persists to
Postgres.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

DEFAULT_KEEP_LAST = 10


@dataclass
class HistoryRecord:
    """One saved conversion result."""
    id: int
    filename: str
    headers: List[str]
    rows: List[List[Any]]
    converted_at: str  # ISO 8601, UTC
    row_count: int

    def metadata(self) -> Dict[str, Any]:
        """Lightweight view for history listings (no row data)."""
        return {
            "id": self.id,
            "filename": self.filename,
            "converted_at": self.converted_at,
            "row_count": self.row_count,
            "column_count": len(self.headers or []),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "headers": self.headers,
            "rows": self.rows,
            "converted_at": self.converted_at,
            "row_count": self.row_count,
        }


class HistoryStore:
    """
    Abstract history store interface.

    Subclasses implement put/get/get_latest/list/delete/clear/prune; save() is
    shared and builds the record.
    """

    def __init__(self, keep_last: int = DEFAULT_KEEP_LAST):
        """
        Args:
            keep_last: Number of most recent results retained after each save
        """
        self.keep_last = keep_last
        self._last_id = 0

    def save(self, table: Any, filename: str) -> HistoryRecord:
        """
        Store an expanded table.

        Args:
            table: Object with `headers` and `rows` (e.g. ExpandedTable)
            filename: Name of the file the table was converted from

        Returns:
            The stored HistoryRecord
        """
        rows = [list(row) for row in table.rows]
        record = HistoryRecord(
            id=self._next_id(),
            filename=filename,
            headers=list(table.headers),
            rows=rows,
            converted_at=datetime.now(timezone.utc).isoformat(),
            row_count=len(rows),
        )
        self.put(record)
        self.prune(self.keep_last)
        return record

    def _next_id(self) -> int:
        # Millisecond timestamps collide on fast consecutive saves
        new_id = max(int(time.time() * 1000), self._last_id + 1)
        self._last_id = new_id
        return new_id

    def put(self, record: HistoryRecord) -> None:
        """Insert or overwrite a record by id."""
        raise NotImplementedError

    def get(self, record_id: int) -> Optional[HistoryRecord]:
        """Fetch one record, or None if it does not exist."""
        raise NotImplementedError

    def get_latest(self) -> Optional[HistoryRecord]:
        """Fetch the most recently converted record, or None if empty."""
        raise NotImplementedError

    def list(self) -> List[Dict[str, Any]]:
        """Metadata of all records, newest first."""
        raise NotImplementedError

    def delete(self, record_id: int) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def prune(self, keep: int) -> None:
        """Delete everything except the `keep` newest records."""
        raise NotImplementedError


class InMemoryHistoryStore(HistoryStore):
    """History store held in a dict; contents die with the process."""

    def __init__(self, keep_last: int = DEFAULT_KEEP_LAST):
        super().__init__(keep_last)
        self._records: Dict[int, HistoryRecord] = {}

    def _newest_first(self) -> List[HistoryRecord]:
        return sorted(
            self._records.values(),
            key=lambda r: (r.converted_at, r.id),
            reverse=True,
        )

    def put(self, record: HistoryRecord) -> None:
        self._records[record.id] = record

    def get(self, record_id: int) -> Optional[HistoryRecord]:
        return self._records.get(int(record_id))

    def get_latest(self) -> Optional[HistoryRecord]:
        ordered = self._newest_first()
        return ordered[0] if ordered else None

    def list(self) -> List[Dict[str, Any]]:
        return [record.metadata() for record in self._newest_first()]

    def delete(self, record_id: int) -> None:
        self._records.pop(int(record_id), None)

    def clear(self) -> None:
        self._records.clear()

    def prune(self, keep: int) -> None:
        for record in self._newest_first()[keep:]:
            del self._records[record.id]
