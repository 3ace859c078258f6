"""Record sinks and the validation gate in front of them."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog
from pymongo import UpdateOne
from pymongo.errors import PyMongoError

from .errors import SinkError, ValidationError
from .models import Record
from .normalize import ensure_valid_nsr_number

logger = structlog.get_logger(__name__)


class RecordSink(Protocol):
    """Upsert-by-id store for finished records."""

    def upsert(self, record: Record) -> None: ...

    def get_all(self) -> list[dict[str, Any]]: ...

    def flush(self) -> None: ...


class MemorySink:
    """Keeps the latest record per id in a dict."""

    def __init__(self) -> None:
        self._items: dict[str, dict[str, Any]] = {}

    def upsert(self, record: Record) -> None:
        self._items[record.nsr_no] = record.to_document()

    def get_all(self) -> list[dict[str, Any]]:
        return list(self._items.values())

    def flush(self) -> None:
        return None


class MongoSink:
    """Buffered upserts into a MongoDB collection keyed by ``nsr_no``.

    ``collection`` is a :class:`pymongo.collection.Collection` (or anything
    with ``bulk_write``, ``create_index`` and ``find``).
    """

    def __init__(self, collection: Any, *, batch_size: int = 50) -> None:
        self.collection = collection
        self.batch_size = max(1, batch_size)
        self._ops: list[UpdateOne] = []
        self._lock = threading.Lock()
        self.collection.create_index("nsr_no", unique=True, name="nsr_no_unique")

    def upsert(self, record: Record) -> None:
        doc = record.to_document()
        doc["last_scraped"] = datetime.now(timezone.utc)
        op = UpdateOne(
            {"nsr_no": record.nsr_no},
            {"$set": doc, "$setOnInsert": {"scraped_at": doc["last_scraped"]}},
            upsert=True,
        )
        with self._lock:
            self._ops.append(op)
            full = len(self._ops) >= self.batch_size
        if full:
            self.flush()

    def flush(self) -> None:
        """Write the pending batch; on failure the batch is put back in front."""
        with self._lock:
            ops, self._ops = self._ops, []
        if not ops:
            return
        try:
            self.collection.bulk_write(ops, ordered=False)
        except PyMongoError as exc:
            with self._lock:
                self._ops[:0] = ops
            logger.warning("bulk_write_failed", error=str(exc), operations=len(ops))
            raise SinkError(str(exc)) from exc

    def get_all(self) -> list[dict[str, Any]]:
        self.flush()
        return list(self.collection.find({}, {"_id": False}))


class RecordGate:
    """Drop records with invalid ids; forward the rest to the sink.

    The sink contract is upsert-by-id, so a record seen twice overwrites the
    earlier one; the gate only counts it. Workers call :meth:`emit` from
    threads, so the counters sit behind a lock. A failed batch write stays
    buffered in the sink and is retried with the next flush.
    """

    def __init__(self, sink: RecordSink) -> None:
        self.sink = sink
        self.emitted = 0
        self.dropped = 0
        self.overwritten = 0
        self.store_failures = 0
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    def emit(self, record: Record) -> bool:
        try:
            ensure_valid_nsr_number(record.nsr_no)
        except ValidationError as exc:
            with self._lock:
                self.dropped += 1
            logger.warning("record_dropped", nsr_no=record.nsr_no, error=str(exc))
            return False
        with self._lock:
            if record.nsr_no in self._seen:
                self.overwritten += 1
                logger.info("record_overwritten", nsr_no=record.nsr_no)
            self._seen.add(record.nsr_no)
            self.emitted += 1
        try:
            self.sink.upsert(record)
        except SinkError as exc:
            with self._lock:
                self.store_failures += 1
            logger.warning("record_store_deferred", nsr_no=record.nsr_no, error=str(exc))
        return True


def validate_export(sink: RecordSink, expected: int) -> dict[str, Any]:
    """Compare the sink's row count with ``expected``.

    The tolerance is 1% of ``expected`` or 10 rows, whichever is larger.
    """

    actual = len(sink.get_all())
    difference = abs(actual - expected)
    threshold = max(10, expected * 0.01)
    return {
        "expected": expected,
        "actual": actual,
        "difference": difference,
        "threshold": threshold,
        "within_threshold": difference <= threshold,
    }
