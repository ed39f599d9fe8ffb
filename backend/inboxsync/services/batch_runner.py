"""Scheduled reconciliation across stores.

Each store is reconciled in its own session and transaction on a bounded
worker pool. A failure or timeout in one store is recorded in that store's
summary and never stops the others.
"""
import logging
import math
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import ExitStack, contextmanager
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inboxsync.config import get_settings
from inboxsync.errors import (
    PersistenceError,
    ReconciliationInProgressError,
    ReconciliationTimeoutError,
)
from inboxsync.models.notification import NotificationTopic
from inboxsync.models.store import Store
from inboxsync.services.reconciler import reconcile_store_topic
from inboxsync.services.signal_sources import list_topics

logger = logging.getLogger(__name__)

MIN_CRON_LIMIT_PER_STORE = 10
MAX_CRON_LIMIT_PER_STORE = 500
COUNTERS = ("created", "updated", "reopened", "resolved", "suppressed")

_running: set[tuple[str, str]] = set()
_running_lock = threading.Lock()


def clamp_cron_limit(value: Any, fallback: int | None = None) -> int:
    if fallback is None:
        fallback = get_settings().cron_default_limit
    try:
        limit = int(value)
    except (TypeError, ValueError):
        limit = fallback
    return min(MAX_CRON_LIMIT_PER_STORE, max(MIN_CRON_LIMIT_PER_STORE, limit))


@contextmanager
def reconciliation_lock(store_id: str, topic: str) -> Iterator[None]:
    """Hold the in-process claim on a store+topic for the duration of a pass."""
    key = (store_id, topic)
    with _running_lock:
        if key in _running:
            raise ReconciliationInProgressError(f"{topic} is already being reconciled for store {store_id}")
        _running.add(key)
    try:
        yield
    finally:
        with _running_lock:
            _running.discard(key)


def _resolve_store_ids(session_factory: Callable[[], Session], store_id: str | None) -> list[str]:
    if store_id and store_id.strip():
        return [store_id.strip()]

    db = session_factory()
    try:
        return [row.id for row in db.query(Store.id).order_by(Store.id).all()]
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to list stores: {e}") from e
    finally:
        db.close()


def _empty_store_summary(store_id: str) -> dict:
    summary = {
        "store_id": store_id,
        "status": "ok",
        "error": None,
        "source_signal_count": 0,
        "topics": [],
    }
    summary.update({name: 0 for name in COUNTERS})
    return summary


def _batch_wait_budget(timeout_seconds: float, store_count: int, workers: int) -> float:
    """Seconds to wait for all stores before giving up on the stragglers.

    Stores run in rounds of `workers`; each round gets twice the per-store
    timeout.
    """
    rounds = max(1, math.ceil(store_count / workers))
    return rounds * timeout_seconds * 2


def sync_store(
    session_factory: Callable[[], Session],
    store_id: str,
    topics: list[NotificationTopic],
    limit_per_store: int,
    timeout_seconds: float | None = None,
) -> dict:
    """Reconcile every topic for one store in a single transaction."""
    deadline = time.monotonic() + timeout_seconds if timeout_seconds else None
    summary = _empty_store_summary(store_id)
    db = session_factory()
    try:
        with ExitStack() as locks:
            for topic in topics:
                locks.enter_context(reconciliation_lock(store_id, topic.value))

            for topic in topics:
                result = reconcile_store_topic(
                    db,
                    store_id,
                    topic,
                    limit=limit_per_store,
                    deadline=deadline,
                )
                summary["topics"].append(result.to_dict())
                summary["source_signal_count"] += result.source_signal_count
                for name in COUNTERS:
                    summary[name] += getattr(result, name)

            if deadline is not None and time.monotonic() > deadline:
                raise ReconciliationTimeoutError(f"Reconciliation for store {store_id} timed out before commit")
            db.commit()
    except Exception as e:
        db.rollback()
        if isinstance(e, ReconciliationInProgressError):
            logger.warning(f"Skipped store {store_id}: {e}")
        else:
            logger.exception(f"Reconciliation failed for store {store_id}")
        failed = _empty_store_summary(store_id)
        failed.update({"status": "failed", "error": str(e)})
        return failed
    finally:
        db.close()

    logger.info(
        f"Reconciled store {store_id}: signals={summary['source_signal_count']} "
        + " ".join(f"{name}={summary[name]}" for name in COUNTERS)
    )
    return summary


def run_reconciliation_cron(
    store_id: str | None = None,
    limit_per_store: Any = None,
    topics: list[NotificationTopic] | None = None,
    session_factory: Callable[[], Session] | None = None,
    max_workers: int | None = None,
    timeout_seconds: float | None = None,
) -> dict:
    """Reconcile one store, or every store, and aggregate the counters.

    Call this from a scheduler/cron.
    """
    settings = get_settings()
    if session_factory is None:
        from inboxsync.database import SessionLocal
        session_factory = SessionLocal
    limit = clamp_cron_limit(limit_per_store)
    topic_list = [NotificationTopic(t) for t in topics] if topics else [d.topic for d in list_topics()]
    timeout = timeout_seconds if timeout_seconds is not None else settings.tenant_timeout_seconds
    workers = max(1, max_workers or settings.cron_max_workers)

    store_ids = _resolve_store_ids(session_factory, store_id)
    logger.info(
        f"Starting notification reconciliation for {len(store_ids)} store(s), "
        f"topics={[t.value for t in topic_list]}, limit={limit}"
    )

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="inbox-sync")
    futures = [
        (sid, executor.submit(sync_store, session_factory, sid, topic_list, limit, timeout))
        for sid in store_ids
    ]
    wait_until = time.monotonic() + _batch_wait_budget(timeout, len(store_ids), workers) if timeout else None

    stores_summary = []
    try:
        for sid, future in futures:
            remaining = None if wait_until is None else max(0.0, wait_until - time.monotonic())
            try:
                stores_summary.append(future.result(timeout=remaining))
            except FutureTimeoutError:
                # The worker may still be running; its own deadline check keeps it from committing
                future.cancel()
                logger.error(f"Store {sid} did not finish within the batch time budget")
                failed = _empty_store_summary(sid)
                failed.update({"status": "failed", "error": f"Reconciliation for store {sid} timed out"})
                stores_summary.append(failed)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    succeeded = [s for s in stores_summary if s["status"] == "ok"]
    result = {
        "total_stores": len(stores_summary),
        "total_failed": len(stores_summary) - len(succeeded),
    }
    for name in COUNTERS:
        result[f"total_{name}"] = sum(s[name] for s in succeeded)
    result["stores"] = stores_summary

    logger.info(
        f"Finished notification reconciliation: stores={result['total_stores']} "
        f"failed={result['total_failed']} created={result['total_created']} "
        f"resolved={result['total_resolved']}"
    )
    return result
