"""
Persistence interface and local implementations.

The pipeline persists through three table-level operations, so any
document store can sit behind it:

    upsert(table, record, conflict_key) -> record
    insert(table, records) -> records
    select(table, filters) -> records

InMemoryStore backs tests and dry runs; JsonFileStore keeps one JSON file per
table under a directory (read-modify-write, single process).
"""

import copy
import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union, runtime_checkable

from src.config.run_context import utc_now_iso
from src.legal.exceptions import StoreError

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
ConflictKey = Union[str, Sequence[str]]

LEGAL_ANALYSES_TABLE = 'legal_analyses'
LEGAL_TERM_SOURCES_TABLE = 'legal_term_sources'
LEGAL_CONFIG_TABLE = 'legal_config'


@runtime_checkable
class DocumentStore(Protocol):
    def upsert(self, table: str, record: Record, conflict_key: ConflictKey) -> Record:
        ...

    def insert(self, table: str, records: List[Record]) -> List[Record]:
        ...

    def select(self, table: str, filters: Optional[Record] = None) -> List[Record]:
        ...


def _key_fields(conflict_key: ConflictKey) -> List[str]:
    return [conflict_key] if isinstance(conflict_key, str) else list(conflict_key)


def _matches(record: Record, filters: Optional[Record]) -> bool:
    return all(record.get(field) == value for field, value in (filters or {}).items())


def _stamp(record: Record) -> Record:
    stored = copy.deepcopy(record)
    stored.setdefault('id', str(uuid.uuid4()))
    stored.setdefault('created_at', utc_now_iso())
    return stored


class InMemoryStore:
    """
    DocumentStore held in a dict of lists.

    Records are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self._tables: Dict[str, List[Record]] = {}
        self._lock = threading.Lock()

    def _rows(self, table: str) -> List[Record]:
        return self._tables.setdefault(table, [])

    def upsert(self, table: str, record: Record, conflict_key: ConflictKey) -> Record:
        with self._lock:
            return copy.deepcopy(_upsert_rows(self._rows(table), record, conflict_key))

    def insert(self, table: str, records: List[Record]) -> List[Record]:
        with self._lock:
            stored = [_stamp(record) for record in records]
            self._rows(table).extend(stored)
            return copy.deepcopy(stored)

    def select(self, table: str, filters: Optional[Record] = None) -> List[Record]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._tables.get(table, []) if _matches(r, filters)]


def _upsert_rows(rows: List[Record], record: Record, conflict_key: ConflictKey) -> Record:
    fields = _key_fields(conflict_key)
    missing = [field for field in fields if field not in record]
    if missing:
        raise StoreError(f"upsert record is missing conflict key field(s): {', '.join(missing)}")
    key = {field: record[field] for field in fields}
    for row in rows:
        if _matches(row, key):
            row.update(copy.deepcopy(record))
            row['updated_at'] = utc_now_iso()
            return row
    stored = _stamp(record)
    rows.append(stored)
    return stored


class JsonFileStore:
    """
    DocumentStore persisted as `<root>/<table>.json` files.

    Args:
        root: Directory holding the table files (created on first write)

    Example:
        >>> store = JsonFileStore(settings.paths.store_dir)
        >>> store.upsert('legal_config', {'key': 'economics_prompt', 'content': '...'}, 'key')
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self._lock = threading.Lock()

    def _path(self, table: str) -> Path:
        return self.root / f"{table}.json"

    def _load(self, table: str) -> List[Record]:
        path = self._path(table)
        if not path.exists():
            return []
        try:
            with open(path, 'r', encoding='utf-8') as f:
                rows = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"cannot read table {table} from {path}: {exc}") from exc
        if not isinstance(rows, list):
            raise StoreError(f"table file {path} does not hold a list")
        return rows

    def _save(self, table: str, rows: List[Record]) -> None:
        path = self._path(table)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(rows, f, indent=2, ensure_ascii=False, default=str)
        except (OSError, TypeError) as exc:
            raise StoreError(f"cannot write table {table} to {path}: {exc}") from exc

    def upsert(self, table: str, record: Record, conflict_key: ConflictKey) -> Record:
        with self._lock:
            rows = self._load(table)
            stored = _upsert_rows(rows, record, conflict_key)
            self._save(table, rows)
            return copy.deepcopy(stored)

    def insert(self, table: str, records: List[Record]) -> List[Record]:
        with self._lock:
            rows = self._load(table)
            stored = [_stamp(record) for record in records]
            rows.extend(stored)
            self._save(table, rows)
            logger.debug("Inserted %d record(s) into %s", len(stored), table)
            return copy.deepcopy(stored)

    def select(self, table: str, filters: Optional[Record] = None) -> List[Record]:
        with self._lock:
            return [row for row in self._load(table) if _matches(row, filters)]


class StorePromptProvider:
    """
    Prompt overrides read from the `legal_config` table (`key`, `content`).

    Lookups are cached per provider instance; build a new provider to pick
    up edits.
    """

    def __init__(self, store: DocumentStore, table: str = LEGAL_CONFIG_TABLE):
        self.store = store
        self.table = table
        self._cache: Dict[str, Optional[str]] = {}

    def get(self, key: str) -> Optional[str]:
        if key not in self._cache:
            try:
                rows = self.store.select(self.table, {'key': key})
            except StoreError as exc:
                logger.warning("Prompt override lookup for %s failed: %s", key, exc)
                rows = []
            content = rows[0].get('content') if rows else None
            self._cache[key] = content if isinstance(content, str) and content.strip() else None
        return self._cache[key]
