import os
import sys
import threading
import time
from dataclasses import replace
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from inboxsync import models  # noqa: F401
from inboxsync.database import Base
from inboxsync.errors import PersistenceError, ReconciliationInProgressError
from inboxsync.models.notification import NotificationInbox, NotificationTopic
from inboxsync.models.payable import Payable
from inboxsync.models.store import Store
from inboxsync.services import signal_sources
from inboxsync.services.batch_runner import (
    clamp_cron_limit,
    reconciliation_lock,
    run_reconciliation_cron,
)
from inboxsync.services.signal_sources import PurchaseApDueSource, SignalBatch
from inboxsync.services.timeutils import utcnow

TOPIC = NotificationTopic.PURCHASE_AP_DUE


def _make_session_factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine)


def _due_in(days):
    return (utcnow().date() + timedelta(days=days)).isoformat()


def _seed_store(session_factory, store_id, payables):
    db = session_factory()
    db.add(Store(id=store_id, name=f"Store {store_id}"))
    for po_id, days, outstanding in payables:
        db.add(Payable(
            store_id=store_id,
            po_id=po_id,
            po_number=f"N-{po_id}",
            supplier_name="Acme",
            payment_status="UNPAID",
            due_date=_due_in(days),
            outstanding_base=outstanding,
        ))
    db.commit()
    db.close()


def _run(session_factory, **kwargs):
    kwargs.setdefault("max_workers", 1)
    return run_reconciliation_cron(session_factory=session_factory, topics=[TOPIC], **kwargs)


def _by_store(result):
    return {s["store_id"]: s for s in result["stores"]}


def _use_source(monkeypatch, source):
    definition = replace(signal_sources.get_topic(TOPIC), source=source)
    monkeypatch.setitem(signal_sources._registry, TOPIC, definition)


class _BrokenForStore:
    def __init__(self, broken_store_id):
        self.broken_store_id = broken_store_id
        self.inner = PurchaseApDueSource(due_soon_days=7)

    def list_signals(self, db, store_id, limit):
        if store_id == self.broken_store_id:
            raise RuntimeError("ledger offline")
        return self.inner.list_signals(db, store_id, limit)


class _SlowSource:
    def __init__(self, delay, empty=False):
        self.delay = delay
        self.empty = empty
        self.inner = PurchaseApDueSource(due_soon_days=7)

    def list_signals(self, db, store_id, limit):
        time.sleep(self.delay)
        if self.empty:
            return SignalBatch(items=[])
        return self.inner.list_signals(db, store_id, limit)


class _BlockingSource:
    def __init__(self):
        self.release = threading.Event()

    def list_signals(self, db, store_id, limit):
        self.release.wait(timeout=10)
        return SignalBatch(items=[])


class _RendezvousSource:
    """Only returns once every store is fetching at the same time."""

    def __init__(self, parties):
        self.barrier = threading.Barrier(parties, timeout=5)
        self.inner = PurchaseApDueSource(due_soon_days=7)

    def list_signals(self, db, store_id, limit):
        self.barrier.wait()
        return self.inner.list_signals(db, store_id, limit)


@pytest.mark.parametrize("value, expected", [
    (None, 200),
    ("", 200),
    ("abc", 200),
    ("3", 10),
    (10_000, 500),
    ("250", 250),
])
def test_clamp_cron_limit(value, expected):
    assert clamp_cron_limit(value) == expected


def test_run_reconciles_every_store_and_sums_counters():
    factory = _make_session_factory()
    _seed_store(factory, "store-a", [("PO-1", -2, 100.0), ("PO-2", 3, 50.0), ("PO-3", 30, 10.0)])
    _seed_store(factory, "store-b", [("PO-9", 1, 75.0)])

    result = _run(factory)

    assert result["total_stores"] == 2
    assert result["total_failed"] == 0
    assert result["total_created"] == 3
    stores = _by_store(result)
    assert stores["store-a"]["created"] == 2
    assert stores["store-a"]["source_signal_count"] == 2
    assert stores["store-a"]["topics"][0]["context"] == {
        "store_currency": "LAK",
        "overdue_count": 1,
        "due_soon_count": 1,
        "overdue_outstanding_base": 100.0,
        "due_soon_outstanding_base": 50.0,
    }
    assert stores["store-b"]["created"] == 1

    again = _run(factory)
    assert again["total_created"] == 0
    assert again["total_updated"] == 0
    assert again["total_resolved"] == 0


def test_paid_payable_resolves_on_next_run():
    factory = _make_session_factory()
    _seed_store(factory, "store-a", [("PO-1", -2, 100.0)])
    _run(factory)

    db = factory()
    db.query(Payable).update({"payment_status": "PAID", "outstanding_base": 0.0})
    db.commit()
    db.close()

    result = _run(factory)

    assert result["total_resolved"] == 1
    db = factory()
    assert db.query(NotificationInbox).one().status == "RESOLVED"
    db.close()


def test_single_store_run_ignores_other_stores():
    factory = _make_session_factory()
    _seed_store(factory, "store-a", [("PO-1", -2, 100.0)])
    _seed_store(factory, "store-b", [("PO-9", 1, 75.0)])

    result = _run(factory, store_id="  store-b ")

    assert result["total_stores"] == 1
    assert result["stores"][0]["store_id"] == "store-b"
    db = factory()
    assert {row.store_id for row in db.query(NotificationInbox).all()} == {"store-b"}
    db.close()


def test_failed_store_is_reported_and_rolled_back(monkeypatch):
    factory = _make_session_factory()
    _seed_store(factory, "store-a", [("PO-1", -2, 100.0)])
    _seed_store(factory, "store-b", [("PO-9", 1, 75.0)])
    _use_source(monkeypatch, _BrokenForStore("store-a"))

    result = _run(factory)

    stores = _by_store(result)
    assert stores["store-a"]["status"] == "failed"
    assert "ledger offline" in stores["store-a"]["error"]
    assert stores["store-a"]["created"] == 0
    assert stores["store-b"]["status"] == "ok"
    assert result["total_failed"] == 1
    assert result["total_created"] == 1

    db = factory()
    assert db.query(NotificationInbox).filter(NotificationInbox.store_id == "store-a").count() == 0
    db.close()


def test_timed_out_store_commits_nothing(monkeypatch):
    factory = _make_session_factory()
    _seed_store(factory, "store-a", [("PO-1", -2, 100.0), ("PO-2", 2, 10.0)])
    _use_source(monkeypatch, _SlowSource(delay=0.7))

    result = _run(factory, timeout_seconds=0.5)

    store = result["stores"][0]
    assert store["status"] == "failed"
    assert "timed out" in store["error"]
    db = factory()
    assert db.query(NotificationInbox).count() == 0
    db.close()


def test_store_already_being_reconciled_is_skipped_as_failed():
    factory = _make_session_factory()
    _seed_store(factory, "store-a", [("PO-1", -2, 100.0)])

    with reconciliation_lock("store-a", TOPIC.value):
        result = _run(factory)

    assert result["stores"][0]["status"] == "failed"
    assert result["total_failed"] == 1

    # Lock is released afterwards
    assert _run(factory)["total_created"] == 1


def test_lock_rejects_concurrent_claim():
    with reconciliation_lock("store-x", TOPIC.value):
        with pytest.raises(ReconciliationInProgressError):
            with reconciliation_lock("store-x", TOPIC.value):
                pass

    with reconciliation_lock("store-x", TOPIC.value):
        pass


def _add_active_row(session_factory, store_id, entity_id):
    db = session_factory()
    now_iso = utcnow().isoformat(timespec="microseconds")
    row = NotificationInbox(
        store_id=store_id,
        topic=TOPIC.value,
        entity_type="PURCHASE_ORDER",
        entity_id=entity_id,
        dedupe_key=f"ap_due:{entity_id}:OVERDUE:2026-01-01",
        title=f"PO overdue {entity_id}",
        message="Acme · overdue by 3 days · outstanding 10.00",
        severity="CRITICAL",
        status="UNREAD",
        due_status="OVERDUE",
        due_date="2026-01-01",
        first_detected_at=now_iso,
        last_detected_at=now_iso,
    )
    db.add(row)
    db.commit()
    row_id = row.id
    db.close()
    return row_id


def test_slow_empty_fetch_past_deadline_resolves_nothing(monkeypatch):
    factory = _make_session_factory()
    _seed_store(factory, "store-a", [])
    row_id = _add_active_row(factory, "store-a", "PO-1")
    _use_source(monkeypatch, _SlowSource(delay=0.7, empty=True))

    result = _run(factory, timeout_seconds=0.5)

    store = result["stores"][0]
    assert store["status"] == "failed"
    assert "timed out" in store["error"]
    assert result["total_resolved"] == 0
    db = factory()
    row = db.get(NotificationInbox, row_id)
    assert row.status == "UNREAD"
    assert row.resolved_at is None
    db.close()


def test_hung_fetch_does_not_block_the_batch(monkeypatch):
    factory = _make_session_factory()
    _seed_store(factory, "store-hung", [])
    source = _BlockingSource()
    _use_source(monkeypatch, source)

    started = time.monotonic()
    try:
        result = _run(factory, timeout_seconds=0.05)
    finally:
        source.release.set()

    assert time.monotonic() - started < 5
    assert result["total_failed"] == 1
    assert result["stores"][0]["status"] == "failed"
    assert "timed out" in result["stores"][0]["error"]


def test_stores_run_in_parallel_with_their_own_sessions(monkeypatch, tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'inbox.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine)
    _seed_store(factory, "store-a", [("PO-1", -2, 100.0), ("PO-2", 3, 50.0)])
    _seed_store(factory, "store-b", [("PO-3", -1, 20.0)])
    _seed_store(factory, "store-c", [("PO-4", 1, 5.0), ("PO-5", 2, 5.0), ("PO-6", -9, 5.0)])
    _use_source(monkeypatch, _RendezvousSource(parties=3))

    result = _run(factory, max_workers=3)

    assert [s["status"] for s in result["stores"]] == ["ok", "ok", "ok"]
    assert result["total_failed"] == 0
    for name in ("created", "updated", "reopened", "resolved", "suppressed"):
        assert result[f"total_{name}"] == sum(s[name] for s in result["stores"])
    assert result["total_created"] == 6
    db = factory()
    assert db.query(NotificationInbox).count() == 6
    db.close()
    engine.dispose()


def test_store_listing_failure_is_a_persistence_error():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    factory = sessionmaker(bind=engine)  # no tables

    with pytest.raises(PersistenceError, match="Failed to list stores"):
        _run(factory)
