"""
Asana Connector Logging — Structured JSON-lines records of what the connector did.

Three streams, one directory each:
    webhooks/execution   reconciliation outcomes, notification deliveries
    webhooks/security    X-Hook-Secret handshakes
    events/execution     one record per dispatch onto the host bus
    system/execution     connector startup

Files land in {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl.
Entries are pushed onto an AsyncLogQueue from the request path and written
by a background thread, so a slow disk never delays an Asana acknowledgment.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger("asana_connector.engine.logging")

# object_type → categories; the first category is the fallback
OBJECT_TYPE_CATEGORIES = {
    "webhooks": ["execution", "security"],
    "events": ["execution"],
    "system": ["execution"],
}


@dataclass(frozen=True)
class LogEntry:
    """One record plus the stream it belongs to."""

    object_type: str
    category: str
    data: Dict[str, Any]

    @property
    def level(self) -> str:
        return self.data.get("level", "INFO")

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Appends LogEntry records to daily JSON-lines files and reads them back.

    Unknown object types are written to the system stream and unknown
    categories to the type's first category, so a record is never lost
    because of a typo in a builder.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._locks: Dict[Path, threading.Lock] = defaultdict(threading.Lock)
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for category in categories:
                (self._log_dir / obj_type / category).mkdir(parents=True, exist_ok=True)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def write(self, entry: LogEntry) -> None:
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        """Append entries, opening each target file once per batch."""
        by_path: Dict[Path, List[str]] = defaultdict(list)
        for entry in entries:
            by_path[self._resolve_path(entry.object_type, entry.category)].append(entry.to_json())

        for path, lines in by_path.items():
            with self._locks[path], open(path, "a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")

    def _stream(self, object_type: str, category: str) -> Path:
        categories = OBJECT_TYPE_CATEGORIES.get(object_type)
        if categories is None:
            object_type, categories = "system", OBJECT_TYPE_CATEGORIES["system"]
        if category not in categories:
            category = categories[0]
        return self._log_dir / object_type / category

    def _resolve_path(self, object_type: str, category: str) -> Path:
        directory = self._stream(object_type, category)
        directory.mkdir(parents=True, exist_ok=True)
        return directory / f"{date.today().isoformat()}.jsonl"

    def _iter_records(self, directory: Path, since: date) -> Iterator[Dict[str, Any]]:
        for path in sorted(directory.glob("*.jsonl")):
            try:
                if date.fromisoformat(path.stem) < since:
                    continue
            except ValueError:
                continue
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        yield json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping unreadable log line in {path}")

    def query(
        self,
        object_type: str,
        category: str,
        *,
        days: int = 7,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        Records of the last ``days`` days, oldest first.

        ``filters`` keeps only records whose top-level keys equal the given
        values, e.g. ``{"subscription_id": "s1", "success": False}``.
        """
        directory = self._log_dir / object_type / category
        if not directory.is_dir():
            return []

        results: List[Dict[str, Any]] = []
        for record in self._iter_records(directory, date.today() - timedelta(days=days)):
            if filters and any(record.get(k) != v for k, v in filters.items()):
                continue
            results.append(record)
            if len(results) >= limit:
                break
        return results


class AsyncLogQueue:
    """
    Bounded hand-off between the connector and a FileLogger.

    push() never blocks; when the queue is full the entry is counted as
    dropped. The writer thread waits up to flush_interval_ms for the first
    entry, then takes whatever else is already queued (at most
    flush_batch_size) and writes it in one go. stop() writes what is left,
    whether or not the thread was ever started.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._file_logger = file_logger
        self._interval = flush_interval_ms / 1000.0
        self._batch_size = max(1, flush_batch_size)
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._stop_event = threading.Event()
        self._writer: Optional[threading.Thread] = None
        self._dropped = 0

    def start(self) -> None:
        if self._writer is not None and self._writer.is_alive():
            return
        self._stop_event.clear()
        self._writer = threading.Thread(
            target=self._run, name="asana-connector-log-writer", daemon=True,
        )
        self._writer.start()
        logger.info(f"Structured logging to {self._file_logger.log_dir}")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._writer is not None:
            self._writer.join(timeout=timeout)
            self._writer = None
        self._write(self._take(block=False, limit=None))
        if self._dropped:
            logger.warning(f"Structured logging stopped, {self._dropped} entries dropped")

    def push(self, entry: LogEntry) -> bool:
        """Queue an entry. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(entry)
        except Full:
            self._dropped += 1
            return False
        return True

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self._write(self._take(block=True, limit=self._batch_size))

    def _take(self, block: bool, limit: Optional[int]) -> List[LogEntry]:
        batch: List[LogEntry] = []
        if block:
            try:
                batch.append(self._queue.get(timeout=self._interval))
            except Empty:
                return batch
        while limit is None or len(batch) < limit:
            try:
                batch.append(self._queue.get_nowait())
            except Empty:
                break
        return batch

    def _write(self, batch: List[LogEntry]) -> None:
        if not batch:
            return
        try:
            self._file_logger.write_batch(batch)
        except OSError as e:
            logger.error(f"Failed to write {len(batch)} log entries: {e}")

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(
    event: str,
    level: str,
    connector_id: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    if connector_id:
        entry["connector_id"] = connector_id
    entry.update(extra)
    return entry


def log_webhook_registration(
    status: str,
    resource_gid: str,
    target: str,
    connector_id: Optional[str] = None,
    subscription_id: Optional[str] = None,
    webhook_gid: Optional[str] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Build a reconciliation outcome entry (existing/created/inactive/failed)."""
    data = _base_entry(
        event=f"webhook_{status}",
        level="ERROR" if status in ("inactive", "failed") else "INFO",
        connector_id=connector_id,
        status=status,
        resource_gid=resource_gid,
        target=target,
    )
    if subscription_id:
        data["subscription_id"] = subscription_id
    if webhook_gid:
        data["webhook_gid"] = webhook_gid
    if error:
        data["error"] = error
    return LogEntry("webhooks", "execution", data)


def log_webhook_request(
    kind: str,
    path: str,
    status_code: int,
    connector_id: Optional[str] = None,
    event_count: Optional[int] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Build an inbound delivery entry (handshake / notification / rejected)."""
    data = _base_entry(
        event=f"webhook_{kind}",
        level="INFO" if status_code < 400 else "WARNING",
        connector_id=connector_id,
        path=path,
        status_code=status_code,
    )
    if event_count is not None:
        data["event_count"] = event_count
    if error:
        data["error"] = error
    category = "security" if kind == "handshake" else "execution"
    return LogEntry("webhooks", category, data)


def log_event_dispatch(
    subscription_id: str,
    action: str,
    duration_ms: float,
    success: bool,
    connector_id: Optional[str] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Build an event dispatch entry (one per matched subscription)."""
    data = _base_entry(
        event="event_dispatched",
        level="INFO" if success else "ERROR",
        connector_id=connector_id,
        subscription_id=subscription_id,
        action=action,
        duration_ms=round(duration_ms, 2),
        success=success,
    )
    if error:
        data["error"] = error
    return LogEntry("events", "execution", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Build a system event entry (startup, shutdown)."""
    data = _base_entry(event=event, level=level)
    if details:
        data["details"] = details
    return LogEntry("system", "execution", data)


# ---------------------------------------------------------------------------
# Convenience: Global Log Queue Singleton
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = "logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
) -> AsyncLogQueue:
    """Start the process-wide queue. The CLI calls this with config.logging values."""
    global _global_queue
    _global_queue = AsyncLogQueue(
        file_logger=FileLogger(log_dir=log_dir),
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    """The process-wide queue, or None before init_logging()."""
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push onto the process-wide queue. Dropped when logging was never started."""
    if _global_queue is None:
        logger.debug("Log queue not initialized — entry dropped")
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    """Write pending entries and forget the process-wide queue."""
    global _global_queue
    if _global_queue:
        _global_queue.stop()
        _global_queue = None
