"""
doccatalog Event Log — structured JSONL audit trail with a background writer.

Regular diagnostics go through ``logging.getLogger("doccatalog.<module>")``.
The entries built here record what the catalog *did*: subscriptions opened,
failed and disposed, writes attempted, access decisions that excluded a
document. They land in

    <log_dir>/<object_type>/<category>/<YYYY-MM-DD>.jsonl

Pushing an entry never blocks the caller. When no writer has been started
(``init_logging``), entries are discarded.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger("doccatalog.engine.logging")

# object_type → categories it may be filed under
OBJECT_TYPE_CATEGORIES = {
    "subscriptions": ["execution", "performance"],
    "documents": ["execution", "security"],
    "categories": ["execution", "security"],
    "tags": ["execution"],
    "system": ["execution", "security"],
}

FALLBACK_OBJECT_TYPE = "system"


class LogEntry:
    """One event, addressed to an (object_type, category) file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))

    def __repr__(self) -> str:
        return f"LogEntry({self.object_type}/{self.category}: {self.data.get('event')})"


class FileLogger:
    """
    Appends entries to daily JSONL files under ``log_dir``.

    A single lock serializes appends; entries of one batch that share a file
    are written with one open().
    """

    def __init__(self, log_dir: str = "logs"):
        self._root = Path(log_dir)
        self._lock = threading.Lock()
        for object_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for category in categories:
                (self._root / object_type / category).mkdir(parents=True, exist_ok=True)

    @property
    def log_dir(self) -> Path:
        return self._root

    def path_for(self, object_type: str, category: str, day: Optional[date] = None) -> Path:
        """File for one object type/category on *day* (default today)."""
        if object_type not in OBJECT_TYPE_CATEGORIES:
            object_type = FALLBACK_OBJECT_TYPE
        folder = self._root / object_type / category
        folder.mkdir(parents=True, exist_ok=True)
        return folder / f"{(day or date.today()).isoformat()}.jsonl"

    def write(self, entry: LogEntry) -> None:
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        by_path: Dict[Path, List[str]] = {}
        for entry in entries:
            by_path.setdefault(self.path_for(entry.object_type, entry.category), []).append(entry.to_json())
        with self._lock:
            for path, lines in by_path.items():
                with open(path, "a", encoding="utf-8") as f:
                    f.write("\n".join(lines) + "\n")

    def read_today(self, object_type: str, category: str) -> List[Dict[str, Any]]:
        """Today's entries for one file, oldest first. Corrupt lines are skipped."""
        path = self.path_for(object_type, category)
        if not path.exists():
            return []
        with open(path, "r", encoding="utf-8") as f:
            raw_lines = [line for line in (l.strip() for l in f) if line]
        parsed = []
        for line in raw_lines:
            try:
                parsed.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug(f"Skipping corrupt log line in {path}")
        return parsed


class AsyncLogQueue:
    """
    Bounded buffer drained by a daemon thread.

    The writer wakes when ``flush_batch_size`` entries are waiting or
    ``flush_interval_ms`` has passed, whichever is first. A full buffer
    drops the new entry and counts it.
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
        self._capacity = max_queue_size
        self._buffer: Deque[LogEntry] = deque()
        self._wakeup = threading.Condition()
        self._stopping = False
        self._worker: Optional[threading.Thread] = None
        self._dropped = 0

    @property
    def file_logger(self) -> FileLogger:
        return self._file_logger

    @property
    def pending_count(self) -> int:
        with self._wakeup:
            return len(self._buffer)

    @property
    def dropped_count(self) -> int:
        return self._dropped

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stopping = False
        self._worker = threading.Thread(target=self._run, name="doccatalog-event-log", daemon=True)
        self._worker.start()
        logger.debug("Event log writer started")

    def push(self, entry: LogEntry) -> bool:
        """Queue *entry*. Returns False when it was dropped."""
        with self._wakeup:
            if len(self._buffer) >= self._capacity:
                self._dropped += 1
                return False
            self._buffer.append(entry)
            if len(self._buffer) >= self._batch_size:
                self._wakeup.notify()
        return True

    def _take(self, limit: Optional[int]) -> List[LogEntry]:
        taken: List[LogEntry] = []
        while self._buffer and (limit is None or len(taken) < limit):
            taken.append(self._buffer.popleft())
        return taken

    def _flush(self, batch: List[LogEntry]) -> None:
        if not batch:
            return
        try:
            self._file_logger.write_batch(batch)
        except OSError as e:
            logger.error(f"Event log write failed ({len(batch)} entries lost): {e}")

    def _run(self) -> None:
        while True:
            with self._wakeup:
                self._wakeup.wait_for(
                    lambda: self._stopping or len(self._buffer) >= self._batch_size,
                    timeout=self._interval,
                )
                if self._stopping:
                    return
                batch = self._take(self._batch_size)
            self._flush(batch)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the writer and write whatever is still buffered."""
        with self._wakeup:
            self._stopping = True
            self._wakeup.notify_all()
        if self._worker is not None:
            self._worker.join(timeout=timeout)
            self._worker = None
        with self._wakeup:
            remaining = self._take(None)
        self._flush(remaining)
        if self._dropped:
            logger.warning(f"Event log stopped; {self._dropped} entries were dropped")


# ---------------------------------------------------------------------------
# Entry builders
# ---------------------------------------------------------------------------

def _event(event: str, level: str, object_ref: str, **extra: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "level": level,
        "object_ref": object_ref,
    }
    data.update((k, v) for k, v in extra.items() if v is not None)
    return data


def _plural(kind: str) -> str:
    return "categories" if kind == "category" else f"{kind}s"


def log_subscription_event(
    event: str,
    kind: str,
    generation: Optional[int] = None,
    query: Optional[Dict[str, Any]] = None,
    snapshot_size: Optional[int] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """opened / failed / disposed for one collection stream."""
    data = _event(
        f"subscription_{event}",
        "ERROR" if error else "INFO",
        f"subscriptions.{kind}",
        kind=kind,
        generation=generation,
        query=query,
        snapshot_size=snapshot_size,
        error=error,
    )
    return LogEntry("subscriptions", "execution", data)


def log_write_operation(
    operation: str,
    kind: str,
    entity_id: Optional[str],
    success: bool,
    duration_ms: Optional[float] = None,
    fields_changed: Optional[List[str]] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """A create/update/delete attempt against the store."""
    object_type = _plural(kind)
    data = _event(
        f"{kind}_{operation}",
        "INFO" if success else "ERROR",
        f"{object_type}.{entity_id}" if entity_id else object_type,
        operation=operation,
        entity_id=entity_id,
        success=success,
        duration_ms=round(duration_ms, 3) if duration_ms is not None else None,
        fields_changed=fields_changed or None,
        error=error,
    )
    return LogEntry(object_type, "execution", data)


def log_access_event(
    event: str,
    document_id: str,
    role: str,
    reason: str,
    level: str = "WARNING",
) -> LogEntry:
    """An access decision worth auditing (e.g. a document excluded as unevaluable)."""
    data = _event(event, level, f"documents.{document_id}", role=role, reason=reason)
    return LogEntry("documents", "security", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    data = _event(event, level, "system", details=details)
    return LogEntry("system", "execution", data)


# ---------------------------------------------------------------------------
# Process-wide writer
# ---------------------------------------------------------------------------

_writer: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = "logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
) -> AsyncLogQueue:
    """Start the process-wide event log writer (replacing a running one)."""
    global _writer
    if _writer is not None:
        _writer.stop()
    _writer = AsyncLogQueue(
        FileLogger(log_dir=log_dir),
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _writer.start()
    return _writer


def get_log_queue() -> Optional[AsyncLogQueue]:
    return _writer


def log(entry: LogEntry) -> bool:
    """Queue *entry* on the process-wide writer; False when none is running."""
    writer = _writer
    return writer.push(entry) if writer is not None else False


def shutdown_logging() -> None:
    """Stop the process-wide writer, flushing what is buffered."""
    global _writer
    writer, _writer = _writer, None
    if writer is not None:
        writer.stop()
