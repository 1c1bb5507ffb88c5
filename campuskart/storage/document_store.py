"""File-based JSON document store.

Schemaless documents grouped into collections, persisted in a single
``documents.json`` under ``~/.campuskart/data/``.  Every document carries a
version number that is bumped on each write; :meth:`DocumentStore.run_transaction`
uses those versions for optimistic read-modify-write transactions.  Loads
and commits hold a lock file next to ``documents.json`` so several CLI
processes can share one data directory.

Committed writes are reported to the store's :class:`TriggerRegistry` so
that reactive handlers (moderation, admin-claim sync) run after the fact.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, TypeVar

from filelock import FileLock

from campuskart.config import default_home
from campuskart.storage.triggers import ChangeEvent, TriggerRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5

# One in-process lock per backing file, shared by every store instance on it.
# Other processes are excluded by the FileLock on the sibling ".lock" file.
_FILE_LOCKS: dict[str, threading.RLock] = {}
_FILE_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _FILE_LOCKS_GUARD:
        if key not in _FILE_LOCKS:
            _FILE_LOCKS[key] = threading.RLock()
        return _FILE_LOCKS[key]


class _DeleteField:
    def __repr__(self) -> str:
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()
"""Pass as a field value to :meth:`DocumentStore.update` to remove the field."""


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class DocumentNotFound(LookupError):
    """Raised when updating a document that does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"{collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class StorageCorrupted(RuntimeError):
    """The backing file exists but does not hold a document map."""


class TransactionError(RuntimeError):
    """A transaction function used the transaction incorrectly."""


class TransactionConflict(Exception):
    """A document read by a transaction changed before it could commit."""


class TransactionAborted(RuntimeError):
    """A transaction kept conflicting and ran out of attempts."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _matches(data: dict[str, Any], filters: dict[str, Any]) -> bool:
    return all(data.get(k) == v for k, v in filters.items())


def _apply_fields(data: dict[str, Any], fields: dict[str, Any]) -> None:
    for key, value in fields.items():
        if value is DELETE_FIELD:
            data.pop(key, None)
        else:
            data[key] = copy.deepcopy(value)


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


class Transaction:
    """Reads from a snapshot and stages writes for an atomic commit.

    All reads must happen before the first write.
    Reads do not observe the transaction's own staged writes.
    """

    def __init__(self, snapshot: dict[str, dict[str, dict]]) -> None:
        self._snapshot = snapshot
        self._reads: dict[tuple[str, str], Optional[int]] = {}
        self._queries: list[tuple[str, dict[str, Any], frozenset[str]]] = []
        self._writes: list[tuple[str, str, str, dict[str, Any]]] = []

    def _check_read_allowed(self) -> None:
        if self._writes:
            raise TransactionError("Transactions require all reads before any writes")

    # -- reads ---------------------------------------------------------------

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        self._check_read_allowed()
        entry = self._snapshot.get(collection, {}).get(doc_id)
        self._reads[(collection, doc_id)] = entry["version"] if entry else None
        return copy.deepcopy(entry["data"]) if entry else None

    def query(self, collection: str, **filters: Any) -> list[tuple[str, dict[str, Any]]]:
        """Return ``(doc_id, data)`` pairs whose fields equal *filters*."""
        self._check_read_allowed()
        results = []
        for doc_id, entry in self._snapshot.get(collection, {}).items():
            if _matches(entry["data"], filters):
                self._reads[(collection, doc_id)] = entry["version"]
                results.append((doc_id, copy.deepcopy(entry["data"])))
        self._queries.append((collection, dict(filters), frozenset(d for d, _ in results)))
        return results

    # -- writes --------------------------------------------------------------

    def create(self, collection: str, data: dict[str, Any], doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or _new_id()
        self._writes.append(("create", collection, doc_id, dict(data)))
        return doc_id

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Stage a partial update; the commit fails if the document is gone."""
        self._writes.append(("update", collection, doc_id, dict(fields)))

    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        self._writes.append(("merge" if merge else "set", collection, doc_id, dict(data)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes.append(("delete", collection, doc_id, {}))


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class DocumentStore:
    """File-based document storage.

    Storage path: ``~/.campuskart/data/documents.json`` (or *base_dir*),
    laid out as ``{collection: {doc_id: {"version": n, "data": {...}}}}``.
    """

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        if base_dir is None:
            self._base = default_home() / "data"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._path = self._base / "documents.json"
        self._lock = _lock_for(self._path)
        self._file_lock = FileLock(str(self._path) + ".lock")
        self.triggers = TriggerRegistry()

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold the commit lock for this file, across threads and processes."""
        with self._lock, self._file_lock:
            yield

    def _load(self) -> dict[str, dict[str, dict]]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StorageCorrupted(f"{self._path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageCorrupted(f"{self._path} does not contain a document map")
        return data

    def _save(self, data: dict[str, dict[str, dict]]) -> None:
        fd, tmp = tempfile.mkstemp(dir=self._base, prefix="documents.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, default=str)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _commit(
        self,
        writes: list[tuple[str, str, str, dict[str, Any]]],
        reads: Optional[dict[tuple[str, str], Optional[int]]] = None,
        queries: Optional[list[tuple[str, dict[str, Any], frozenset[str]]]] = None,
    ) -> list[ChangeEvent]:
        """Validate reads and apply *writes* all-or-nothing.

        Returns one :class:`ChangeEvent` per applied write.
        """
        with self._locked():
            data = self._load()

            for (collection, doc_id), version in (reads or {}).items():
                entry = data.get(collection, {}).get(doc_id)
                current = entry["version"] if entry else None
                if current != version:
                    raise TransactionConflict(f"{collection}/{doc_id} changed during transaction")
            for collection, filters, ids in queries or []:
                now_ids = frozenset(
                    doc_id
                    for doc_id, entry in data.get(collection, {}).items()
                    if _matches(entry["data"], filters)
                )
                if now_ids != ids:
                    raise TransactionConflict(f"query on {collection} {filters} changed during transaction")

            if not writes:
                return []

            events: list[ChangeEvent] = []
            for op, collection, doc_id, fields in writes:
                docs = data.setdefault(collection, {})
                entry = docs.get(doc_id)
                before = copy.deepcopy(entry["data"]) if entry else None

                if op == "delete":
                    if entry is None:
                        continue
                    del docs[doc_id]
                    events.append(ChangeEvent(collection, doc_id, before, None))
                    continue

                if op == "update":
                    if entry is None:
                        raise DocumentNotFound(collection, doc_id)
                    new = copy.deepcopy(entry["data"])
                elif op == "merge":
                    new = copy.deepcopy(entry["data"]) if entry else {}
                elif op == "create":
                    if entry is not None:
                        raise ValueError(f"{collection}/{doc_id} already exists")
                    new = {}
                else:
                    new = {}
                _apply_fields(new, fields)

                version = (entry["version"] if entry else 0) + 1
                docs[doc_id] = {"version": version, "data": new}
                events.append(ChangeEvent(collection, doc_id, before, copy.deepcopy(new)))

            self._save(data)
            return events

    def _write(self, op: str, collection: str, doc_id: str, fields: dict[str, Any]) -> list[ChangeEvent]:
        events = self._commit([(op, collection, doc_id, fields)])
        self.triggers.dispatch(events)
        return events

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        with self._locked():
            entry = self._load().get(collection, {}).get(doc_id)
        return entry["data"] if entry else None

    def query(self, collection: str, **filters: Any) -> list[tuple[str, dict[str, Any]]]:
        """Return ``(doc_id, data)`` pairs whose fields equal *filters*."""
        with self._locked():
            docs = self._load().get(collection, {})
        return [
            (doc_id, entry["data"])
            for doc_id, entry in docs.items()
            if _matches(entry["data"], filters)
        ]

    # ------------------------------------------------------------------
    # Single-document writes
    # ------------------------------------------------------------------

    def create(self, collection: str, data: dict[str, Any], doc_id: Optional[str] = None) -> str:
        """Insert a new document and return its id."""
        doc_id = doc_id or _new_id()
        self._write("create", collection, doc_id, dict(data))
        return doc_id

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Apply a partial update. Raises DocumentNotFound if absent."""
        events = self._write("update", collection, doc_id, dict(fields))
        return events[-1].after or {}

    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        self._write("merge" if merge else "set", collection, doc_id, dict(data))

    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False if it did not exist."""
        return bool(self._write("delete", collection, doc_id, {}))

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def run_transaction(
        self,
        fn: Callable[[Transaction], T],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> T:
        """Run *fn* inside an optimistic transaction and return its result.

        *fn* may be called more than once: when a document it read changes
        before commit, the staged writes are discarded and *fn* is re-run on
        a fresh snapshot.  Gives up with TransactionAborted after
        *max_attempts* conflicts.
        """
        for attempt in range(1, max_attempts + 1):
            with self._locked():
                snapshot = self._load()
            txn = Transaction(snapshot)
            result = fn(txn)
            try:
                events = self._commit(txn._writes, txn._reads, txn._queries)
            except TransactionConflict as exc:
                logger.debug("Transaction attempt %d/%d conflicted: %s", attempt, max_attempts, exc)
                continue
            self.triggers.dispatch(events)
            return result
        raise TransactionAborted(f"Transaction gave up after {max_attempts} attempts")
