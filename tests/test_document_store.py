"""Tests for the JSON document store, its transactions and triggers."""

import logging
import multiprocessing

import pytest

from campuskart.config import ModerationConfig
from campuskart.storage import (
    DELETE_FIELD,
    DocumentNotFound,
    DocumentStore,
    StorageCorrupted,
    TransactionAborted,
    TransactionError,
)
from campuskart.trust.ledger import TrustLedger


def test_create_get_and_persist(tmp_path):
    store = DocumentStore(tmp_path)
    doc_id = store.create("listings", {"title": "Desk lamp"})

    assert store.get("listings", doc_id) == {"title": "Desk lamp"}
    # A second instance on the same directory sees the same data
    assert DocumentStore(tmp_path).get("listings", doc_id) == {"title": "Desk lamp"}


def test_update_missing_document_raises(tmp_path):
    store = DocumentStore(tmp_path)
    with pytest.raises(DocumentNotFound):
        store.update("users", "nobody", {"banned": True})
    assert store.get("users", "nobody") is None


def test_delete_field_and_merge(tmp_path):
    store = DocumentStore(tmp_path)
    store.set("users", "u1", {"banned": True, "banned_at": "2024-01-01T00:00:00+00:00"})
    store.update("users", "u1", {"banned": False, "banned_at": DELETE_FIELD})
    assert store.get("users", "u1") == {"banned": False}

    store.set("users", "u1", {"points": 5}, merge=True)
    assert store.get("users", "u1") == {"banned": False, "points": 5}

    store.set("users", "u1", {"points": 7})
    assert store.get("users", "u1") == {"points": 7}


def test_query_filters_on_equality(tmp_path):
    store = DocumentStore(tmp_path)
    a = store.create("listings", {"owner_id": "u1", "active": True})
    store.create("listings", {"owner_id": "u1", "active": False})
    store.create("listings", {"owner_id": "u2", "active": True})

    assert [doc_id for doc_id, _ in store.query("listings", owner_id="u1", active=True)] == [a]
    assert len(store.query("listings")) == 3


def test_delete_reports_existence(tmp_path):
    store = DocumentStore(tmp_path)
    doc_id = store.create("listings", {"title": "Bike"})
    assert store.delete("listings", doc_id)
    assert not store.delete("listings", doc_id)


def test_triggers_receive_before_and_after(tmp_path):
    store = DocumentStore(tmp_path)
    created, written = [], []
    store.triggers.on_create("users", created.append)
    store.triggers.on_write("users", written.append)

    store.set("users", "u1", {"is_admin": False})
    store.update("users", "u1", {"is_admin": True})
    store.delete("users", "u1")

    assert len(created) == 1
    assert created[0].before is None and created[0].after == {"is_admin": False}
    assert [(e.before, e.after) for e in written] == [
        (None, {"is_admin": False}),
        ({"is_admin": False}, {"is_admin": True}),
        ({"is_admin": True}, None),
    ]
    assert written[2].deleted


def test_failing_trigger_does_not_reach_writer(tmp_path, caplog):
    store = DocumentStore(tmp_path)

    def broken(event):
        raise RuntimeError("boom")

    store.triggers.on_create("listings", broken)
    with caplog.at_level(logging.ERROR):
        doc_id = store.create("listings", {"title": "Kettle"})

    assert store.get("listings", doc_id) == {"title": "Kettle"}
    assert "Trigger" in caplog.text


def test_transaction_commits_all_writes(tmp_path):
    store = DocumentStore(tmp_path)
    store.set("users", "u1", {"points": 10})

    def move_points(txn):
        user = txn.get("users", "u1")
        txn.update("users", "u1", {"points": user["points"] - 3})
        txn.set("users", "u2", {"points": 3})
        return "done"

    assert store.run_transaction(move_points) == "done"
    assert store.get("users", "u1") == {"points": 7}
    assert store.get("users", "u2") == {"points": 3}


def test_transaction_is_all_or_nothing(tmp_path):
    store = DocumentStore(tmp_path)
    store.set("users", "u1", {"points": 10})

    def partial(txn):
        txn.get("users", "u1")
        txn.update("users", "u1", {"points": 0})
        txn.update("users", "ghost", {"points": 1})

    with pytest.raises(DocumentNotFound):
        store.run_transaction(partial)
    assert store.get("users", "u1") == {"points": 10}


def test_transaction_retries_after_concurrent_write(tmp_path):
    store = DocumentStore(tmp_path)
    store.set("users", "u1", {"strike_count": 0})
    attempts = []

    def add_strike(txn):
        data = txn.get("users", "u1")
        if not attempts:
            # Another writer sneaks in between our read and our commit
            store.update("users", "u1", {"strike_count": 10})
        attempts.append(data["strike_count"])
        txn.update("users", "u1", {"strike_count": data["strike_count"] + 1})

    store.run_transaction(add_strike)

    assert attempts == [0, 10]
    assert store.get("users", "u1") == {"strike_count": 11}


def test_transaction_detects_new_query_match(tmp_path):
    store = DocumentStore(tmp_path)
    attempts = []

    def count_active(txn):
        rows = txn.query("listings", owner_id="u1", active=True)
        if not attempts:
            store.create("listings", {"owner_id": "u1", "active": True})
        attempts.append(len(rows))
        txn.set("stats", "u1", {"active": len(rows)})

    store.run_transaction(count_active)
    assert attempts == [0, 1]
    assert store.get("stats", "u1") == {"active": 1}


def test_transaction_gives_up_after_max_attempts(tmp_path):
    store = DocumentStore(tmp_path)
    store.set("users", "u1", {"n": 0})
    calls = []

    def always_contended(txn):
        data = txn.get("users", "u1")
        calls.append(1)
        store.update("users", "u1", {"n": data["n"] + 100})
        txn.update("users", "u1", {"n": data["n"] + 1})

    with pytest.raises(TransactionAborted):
        store.run_transaction(always_contended, max_attempts=3)
    assert len(calls) == 3


def test_reads_after_writes_are_rejected(tmp_path):
    store = DocumentStore(tmp_path)

    def misuse(txn):
        txn.set("users", "u1", {"x": 1})
        txn.get("users", "u1")

    with pytest.raises(TransactionError):
        store.run_transaction(misuse)
    assert store.get("users", "u1") is None


def test_corrupt_file_is_not_overwritten(tmp_path):
    store = DocumentStore(tmp_path)
    (tmp_path / "documents.json").write_text("{not json")

    with pytest.raises(StorageCorrupted):
        store.get("users", "u1")
    with pytest.raises(StorageCorrupted):
        store.create("users", {"points": 1})
    assert (tmp_path / "documents.json").read_text() == "{not json"


def _strike_repeatedly(base_dir, times):
    config = ModerationConfig(strike_threshold=1000, transaction_attempts=200)
    ledger = TrustLedger(DocumentStore(base_dir), config)
    for _ in range(times):
        ledger.record_violation("u1")


def test_separate_processes_do_not_lose_writes(tmp_path):
    store = DocumentStore(tmp_path)
    store.set("users", "u1", {"strike_count": 0, "banned": False})

    workers = [
        multiprocessing.Process(target=_strike_repeatedly, args=(str(tmp_path), 10))
        for _ in range(4)
    ]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=120)

    assert [w.exitcode for w in workers] == [0, 0, 0, 0]
    assert store.get("users", "u1")["strike_count"] == 40
    assert not list(tmp_path.glob("*.tmp"))
